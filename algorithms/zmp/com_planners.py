from typing import Sequence

import attr
import numpy as np
from numpy.polynomial import polynomial as npp
from pydrake.trajectories import PiecewisePolynomial

from common.attr_utils import AttrsValidators
from common.constants import ACC_DUE_TO_GRAVITY
from common.custom_types import (
    NpArrayMNf64,
    NpArrf64,
    NpVectorNf64,
    TimesVector,
    XYPoint,
)
from common.logging_utils import LZLogger
from numeric.trajectories.trajectory_utils import (
    decompose_piecewise_polynomial,
    make_spline,
)


@attr.frozen
class AnalyticZMPSolution:
    """
    Exact single axis COM trajectory for a piecewise polynomial ZMP (Harada06).
    On segment j, with dt = t - breaks[j] and T_j the segment duration:
        x(t) = P[j] exp(-dt/Tc) + Q[j] exp((dt - T_j)/Tc) + sum_i A[j, i] dt^i
    Both exponentials are at most one inside the segment, so long segments
    do not overflow.
    """

    breaks: TimesVector
    P: NpVectorNf64
    Q: NpVectorNf64
    A: NpArrayMNf64
    Tc: float

    def num_segments(self) -> int:
        return self.P.size

    def segment_index(self, t: float) -> int:
        index = np.searchsorted(self.breaks, t, side="right") - 1
        return int(np.clip(index, 0, self.num_segments() - 1))

    def derivative_value(self, t: float, derivative_order: int = 0) -> float:
        assert derivative_order >= 0
        j = self.segment_index(t)
        dt = t - self.breaks[j]
        duration = self.breaks[j + 1] - self.breaks[j]

        decaying = self.P[j] * np.exp(-dt / self.Tc) * (-1.0) ** derivative_order
        growing = self.Q[j] * np.exp((dt - duration) / self.Tc)
        exponential = (decaying + growing) / self.Tc**derivative_order

        polynomial = npp.polyval(dt, npp.polyder(self.A[j], derivative_order))
        return float(exponential + polynomial)

    def value(self, t: float) -> float:
        return self.derivative_value(t, derivative_order=0)

    def segment_start_values(self) -> NpVectorNf64:
        a = np.exp(-np.diff(self.breaks) / self.Tc)
        return self.P + a * self.Q + self.A[:, 0]


def solve_analytic_zmp(
    h: float,
    com0: float,
    comf: float,
    breaks: TimesVector,
    zmp_coefficients: NpArrayMNf64,
    g: float = ACC_DUE_TO_GRAVITY,
) -> AnalyticZMPSolution:
    """
    Single axis boundary value problem of the cart-table model
        zmp = x - Tc^2 xddot,  Tc = sqrt(h/g)
    for a ZMP given as num_segments x order coefficients in the local basis,
    with x(t0) = com0 and x(tf) = comf. Position and velocity are continuous
    at the interior breaks.
    """
    num_segments, order = zmp_coefficients.shape
    assert breaks.size == num_segments + 1
    Tc = np.sqrt(h / g)

    # Particular solution. A_i = b_i + (i + 1)(i + 2) Tc^2 A_{i+2}
    A = np.zeros((num_segments, max(order, 2)), dtype=np.float64)
    A[:, :order] = zmp_coefficients
    for i in reversed(range(order - 2)):
        A[:, i] += (i + 1) * (i + 2) * Tc**2 * A[:, i + 2]

    durations = np.diff(breaks)
    # Value of each exponential at the far end of its segment.
    a = np.exp(-durations / Tc)
    p_end = np.array(
        [npp.polyval(durations[j], A[j]) for j in range(num_segments)],
    )
    pdot_end = np.array(
        [npp.polyval(durations[j], npp.polyder(A[j])) for j in range(num_segments)],
    )

    # Unknowns are [P_0, Q_0, P_1, Q_1, ...].
    M = np.zeros((2 * num_segments, 2 * num_segments), dtype=np.float64)
    rhs = np.zeros(2 * num_segments, dtype=np.float64)

    M[0, :2] = [1.0, a[0]]
    rhs[0] = com0 - A[0, 0]
    for j in range(num_segments - 1):
        row = 1 + 2 * j
        M[row, 2 * j : 2 * j + 4] = [a[j], 1.0, -1.0, -a[j + 1]]
        rhs[row] = A[j + 1, 0] - p_end[j]
        # Velocity continuity, scaled by Tc.
        M[row + 1, 2 * j : 2 * j + 4] = [-a[j], 1.0, 1.0, -a[j + 1]]
        rhs[row + 1] = Tc * (A[j + 1, 1] - pdot_end[j])
    M[-1, -2:] = [a[-1], 1.0]
    rhs[-1] = comf - p_end[-1]

    PQ = np.linalg.solve(M, rhs)

    return AnalyticZMPSolution(
        breaks=np.copy(breaks),
        P=PQ[0::2],
        Q=PQ[1::2],
        A=A,
        Tc=Tc,
    )


def _solve_analytic_zmp_xy(
    h: float,
    com0: XYPoint,
    comf: XYPoint,
    zmp_trajectory: PiecewisePolynomial,
) -> Sequence[AnalyticZMPSolution]:
    zmp_coefficients = decompose_piecewise_polynomial(zmp_trajectory)
    return [
        solve_analytic_zmp(
            h=h,
            com0=com0[i],
            comf=comf[i],
            breaks=zmp_coefficients.breaks,
            zmp_coefficients=zmp_coefficients.row(i),
        )
        for i in range(2)
    ]


def com_spline_from_zmp(
    h: float,
    com0: XYPoint,
    comf: XYPoint,
    zmp_trajectory: PiecewisePolynomial,
) -> PiecewisePolynomial:
    """
    Fast closed form COM trajectory for the desired ZMP trajectory.
    The exact solution is sampled at the ZMP breaks and re-splined.
    No error checking is done here, use LinearInvertedPendulum.zmp_plan for
    that.
    """
    solutions = _solve_analytic_zmp_xy(
        h=h,
        com0=com0,
        comf=comf,
        zmp_trajectory=zmp_trajectory,
    )
    com_knots = np.vstack(
        [
            np.hstack((solution.segment_start_values(), comf[i]))
            for i, solution in enumerate(solutions)
        ]
    )
    return make_spline(breaks=solutions[0].breaks, knots=com_knots)


def com_acceleration_from_zmp(
    h: float,
    com0: XYPoint,
    comf: XYPoint,
    zmp_trajectory: PiecewisePolynomial,
) -> XYPoint:
    """
    Fast instantaneous COM acceleration at the start of the desired ZMP
    trajectory. No error checking.
    """
    solutions = _solve_analytic_zmp_xy(
        h=h,
        com0=com0,
        comf=comf,
        zmp_trajectory=zmp_trajectory,
    )
    return np.array(
        [
            solution.derivative_value(solution.breaks[0], derivative_order=2)
            for solution in solutions
        ],
        dtype=np.float64,
    )


@attr.frozen
class AnalyticCOMTrajectory:
    """
    Exact (exponential plus polynomial) xy COM trajectory. Evaluates like a
    2x1 trajectory.
    """

    x_solution: AnalyticZMPSolution
    y_solution: AnalyticZMPSolution

    def start_time(self) -> float:
        return float(self.x_solution.breaks[0])

    def end_time(self) -> float:
        return float(self.x_solution.breaks[-1])

    def rows(self) -> int:
        return 2

    def derivative_value(self, t: float, derivative_order: int = 0) -> XYPoint:
        return np.array(
            [
                self.x_solution.derivative_value(t, derivative_order),
                self.y_solution.derivative_value(t, derivative_order),
            ],
            dtype=np.float64,
        )

    def value(self, t: float) -> NpArrf64:
        return self.derivative_value(t).reshape(2, 1)

    def vector_values(self, times: Sequence[float]) -> NpArrayMNf64:
        return np.vstack([self.derivative_value(t) for t in times]).T


def exact_com_trajectory_from_zmp(
    h: float,
    com0: XYPoint,
    comf: XYPoint,
    zmp_trajectory: PiecewisePolynomial,
) -> AnalyticCOMTrajectory:
    x_solution, y_solution = _solve_analytic_zmp_xy(
        h=h,
        com0=com0,
        comf=comf,
        zmp_trajectory=zmp_trajectory,
    )
    return AnalyticCOMTrajectory(x_solution=x_solution, y_solution=y_solution)


@attr.frozen
class AnalyticCOMPlanner:
    """
    Closed form COM planner for a constant COM height under standard gravity.
    """

    com_height_m: float = attr.ib(
        validator=AttrsValidators.positive_validator(),
    )
    g: float = attr.ib(init=False, default=ACC_DUE_TO_GRAVITY)

    def plan_com_trajectory(
        self,
        com0: XYPoint,
        comf: XYPoint,
        zmp_trajectory: PiecewisePolynomial,
    ) -> PiecewisePolynomial:
        LZLogger("AnalyticCOMPlanner").info(
            f"Planning COM over {zmp_trajectory.get_number_of_segments()} ZMP segments."
        )
        return com_spline_from_zmp(
            h=self.com_height_m,
            com0=com0,
            comf=comf,
            zmp_trajectory=zmp_trajectory,
        )

    def plan_exact_com_trajectory(
        self,
        com0: XYPoint,
        comf: XYPoint,
        zmp_trajectory: PiecewisePolynomial,
    ) -> AnalyticCOMTrajectory:
        return exact_com_trajectory_from_zmp(
            h=self.com_height_m,
            com0=com0,
            comf=comf,
            zmp_trajectory=zmp_trajectory,
        )

    def compute_com_acceleration(
        self,
        com0: XYPoint,
        comf: XYPoint,
        zmp_trajectory: PiecewisePolynomial,
    ) -> XYPoint:
        return com_acceleration_from_zmp(
            h=self.com_height_m,
            com0=com0,
            comf=comf,
            zmp_trajectory=zmp_trajectory,
        )
