import math
from typing import Any, Callable, List, Union

import attr
import numpy as np
from pydrake.trajectories import (
    FunctionHandleTrajectory,
    PiecewisePolynomial,
    Trajectory,
)
from scipy.interpolate import CubicSpline

from common.custom_types import NpArrayKMNf64, NpArrayMNf64, NpArrf64, TimesVector


def make_function_trajectory(
    function: Callable[[float], Any],
    start_time: float,
    end_time: float,
    rows: int,
) -> FunctionHandleTrajectory:
    """
    Column vector trajectory defined by an arbitrary function of time over
    [start_time, end_time]. Times outside the span are clamped, like
    PiecewisePolynomial.value().
    """
    assert rows > 0
    assert end_time >= start_time

    def _clamped_function(t: float) -> NpArrf64:
        clamped_t = min(max(t, start_time), end_time)
        return np.asarray(function(clamped_t), dtype=np.float64).reshape(rows, 1)

    return FunctionHandleTrajectory(_clamped_function, rows, 1, start_time, end_time)


def is_trajectory(value: Any) -> bool:
    return isinstance(value, Trajectory)


def linspace_trajectory_times(
    trajectory: Trajectory,
    num_samples: int,
) -> TimesVector:
    assert num_samples >= 2
    return np.linspace(
        trajectory.start_time(),
        trajectory.end_time(),
        num_samples,
        dtype=np.float64,
    )


@attr.frozen
class PiecewisePolynomialCoefficients:
    """
    Raw form of a vector valued piecewise polynomial.
    coefficients[k, i, j] is the coefficient of (t - breaks[k])^j for the
    i'th output on the k'th segment.
    """

    breaks: NpArrf64
    coefficients: NpArrayKMNf64

    def __attrs_post_init__(self) -> None:
        assert self.coefficients.ndim == 3
        assert self.breaks.size == self.coefficients.shape[0] + 1

    def num_segments(self) -> int:
        return self.coefficients.shape[0]

    def dim(self) -> int:
        return self.coefficients.shape[1]

    def order(self) -> int:
        return self.coefficients.shape[2]

    def row(self, index: int) -> NpArrayMNf64:
        """
        Coefficients of a single output, of size num_segments x order.
        """
        assert 0 <= index < self.dim()
        return self.coefficients[:, index, :]


def decompose_piecewise_polynomial(
    pp: PiecewisePolynomial,
) -> PiecewisePolynomialCoefficients:
    """
    Breaks a vector valued PiecewisePolynomial into its breaks and per segment
    coefficients in the local (t - t_k) basis.
    The coefficients are recovered from the derivatives at the segment start
    times: c_j = p^(j)(t_k) / j!
    """
    assert pp.cols() == 1

    num_segments = pp.get_number_of_segments()
    breaks = np.array(pp.get_segment_times(), dtype=np.float64)
    degree = max(
        pp.getSegmentPolynomialDegree(segment_index, row, 0)
        for segment_index in range(num_segments)
        for row in range(pp.rows())
    )
    # Evaluating at a break picks the segment that starts there.
    segment_start_times = breaks[:-1].tolist()

    coefficients = np.zeros((num_segments, pp.rows(), degree + 1), dtype=np.float64)
    derivative_pp = pp
    for j in range(degree + 1):
        if j > 0:
            derivative_pp = derivative_pp.derivative(1)
        coefficients[:, :, j] = derivative_pp.vector_values(
            segment_start_times
        ).T / math.factorial(j)

    return PiecewisePolynomialCoefficients(
        breaks=breaks,
        coefficients=coefficients,
    )


def make_spline(
    breaks: Union[List[float], TimesVector],
    knots: NpArrf64,
) -> PiecewisePolynomial:
    """
    Not-a-knot cubic spline through the knots (dim x num_breaks, or a vector
    for a scalar spline). Two knots give a line and three a parabola.
    The spline is handed to drake as a cubic Hermite polynomial using the
    spline's own slopes at the breaks, which reproduces it exactly.
    """
    breaks = np.asarray(breaks, dtype=np.float64)
    knots = np.asarray(knots, dtype=np.float64)
    if knots.ndim == 1:
        knots = knots.reshape(1, -1)

    assert breaks.ndim == 1
    assert breaks.size >= 2
    assert knots.shape[1] == breaks.size
    assert np.all(np.diff(breaks) > 0.0)

    spline = CubicSpline(breaks, knots, axis=1, bc_type="not-a-knot")
    knots_dot = spline(breaks, 1)

    return PiecewisePolynomial.CubicHermite(
        breaks.tolist(),
        knots,
        knots_dot,
    )
