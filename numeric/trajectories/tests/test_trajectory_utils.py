import numpy as np
import pytest
from pydrake.trajectories import FunctionHandleTrajectory, PiecewisePolynomial

from common.testing_utils import execute_pytest_file
from numeric.trajectories.trajectory_utils import (
    PiecewisePolynomialCoefficients,
    decompose_piecewise_polynomial,
    is_trajectory,
    linspace_trajectory_times,
    make_function_trajectory,
    make_spline,
)


def _cubic(t: np.ndarray) -> np.ndarray:
    return 1.0 + 2.0 * t - t**2 + 0.5 * t**3


def test_function_trajectory() -> None:

    ft = make_function_trajectory(
        function=lambda t: [t, 2.0 * t],
        start_time=0.0,
        end_time=2.0,
        rows=2,
    )
    assert isinstance(ft, FunctionHandleTrajectory)
    assert ft.start_time() == 0.0
    assert ft.end_time() == 2.0
    assert ft.rows() == 2
    assert ft.cols() == 1
    np.testing.assert_array_equal(ft.value(1.0), np.array([[1.0], [2.0]]))

    # Clamped outside the span.
    np.testing.assert_array_equal(ft.value(5.0), np.array([[2.0], [4.0]]))
    np.testing.assert_array_equal(ft.value(-1.0), np.zeros((2, 1)))

    values = ft.vector_values([0.0, 0.5, 1.0])
    assert values.shape == (2, 3)
    np.testing.assert_array_equal(values[1], np.array([0.0, 1.0, 2.0]))

    with pytest.raises(AssertionError):
        make_function_trajectory(
            function=lambda t: t,
            start_time=1.0,
            end_time=0.0,
            rows=1,
        )
    with pytest.raises(AssertionError):
        make_function_trajectory(
            function=lambda t: t,
            start_time=0.0,
            end_time=1.0,
            rows=0,
        )


def test_is_trajectory() -> None:

    pp = PiecewisePolynomial.FirstOrderHold(
        breaks=[0.0, 1.0],
        samples=np.array([[0.0, 1.0]]),
    )
    ft = make_function_trajectory(
        function=lambda t: t,
        start_time=0.0,
        end_time=1.0,
        rows=1,
    )

    assert is_trajectory(pp)
    assert is_trajectory(ft)
    assert not is_trajectory(np.zeros(2))
    assert not is_trajectory(1.0)


def test_linspace_trajectory_times() -> None:

    pp = PiecewisePolynomial.FirstOrderHold(
        breaks=[1.0, 2.0, 4.0],
        samples=np.array([[0.0, 1.0, 0.0]]),
    )
    times = linspace_trajectory_times(pp, 10)
    assert times.size == 10
    assert times[0] == 1.0
    assert times[-1] == 4.0

    with pytest.raises(AssertionError):
        linspace_trajectory_times(pp, 1)


def test_decompose_first_order_hold() -> None:

    pp = PiecewisePolynomial.FirstOrderHold(
        breaks=[0.0, 1.0, 3.0],
        samples=np.array([[0.0, 2.0, 2.0], [1.0, 1.0, -3.0]]),
    )
    ppc = decompose_piecewise_polynomial(pp)

    assert isinstance(ppc, PiecewisePolynomialCoefficients)
    assert ppc.num_segments() == 2
    assert ppc.dim() == 2
    assert ppc.order() == 2
    np.testing.assert_array_equal(ppc.breaks, np.array([0.0, 1.0, 3.0]))

    np.testing.assert_allclose(ppc.row(0), np.array([[0.0, 2.0], [2.0, 0.0]]))
    np.testing.assert_allclose(ppc.row(1), np.array([[1.0, 0.0], [1.0, -2.0]]))

    with pytest.raises(AssertionError):
        ppc.row(2)


def test_decompose_cubic() -> None:

    breaks = np.array([0.0, 0.5, 1.5, 2.0])
    # Not-a-knot splines reproduce cubics exactly.
    pp = make_spline(breaks=breaks, knots=_cubic(breaks))
    ppc = decompose_piecewise_polynomial(pp)

    assert ppc.order() == 4
    for k, t in enumerate(breaks[:-1]):
        expected_coefficients = np.array(
            [
                _cubic(t),
                2.0 - 2.0 * t + 1.5 * t**2,
                0.5 * (-2.0 + 3.0 * t),
                0.5,
            ]
        )
        np.testing.assert_allclose(
            ppc.row(0)[k],
            expected_coefficients,
            atol=1e-9,
        )


def test_make_spline() -> None:

    # Line through two knots.
    pp = make_spline(breaks=[0.0, 2.0], knots=np.array([1.0, 3.0]))
    assert pp.rows() == 1
    np.testing.assert_allclose(pp.value(1.0), np.array([[2.0]]))

    # Parabola through three knots.
    pp = make_spline(breaks=[0.0, 1.0, 2.0], knots=np.array([0.0, 1.0, 4.0]))
    np.testing.assert_allclose(pp.value(0.5), np.array([[0.25]]), atol=1e-12)
    np.testing.assert_allclose(pp.value(1.5), np.array([[2.25]]), atol=1e-12)

    # Vector valued spline interpolates its knots.
    breaks = np.linspace(0.0, 1.0, 6)
    knots = np.vstack((np.sin(breaks), np.cos(breaks)))
    pp = make_spline(breaks=breaks, knots=knots)
    assert pp.rows() == 2
    assert pp.get_number_of_segments() == 5
    np.testing.assert_allclose(pp.vector_values(breaks.tolist()), knots, atol=1e-12)

    # Continuous second derivative at the interior breaks.
    ddpp = pp.derivative(2)
    for t in breaks[1:-1]:
        np.testing.assert_allclose(
            ddpp.value(t - 1e-9),
            ddpp.value(t + 1e-9),
            atol=1e-6,
        )

    with pytest.raises(AssertionError):
        make_spline(breaks=[0.0, 1.0, 1.0], knots=np.zeros(3))
    with pytest.raises(AssertionError):
        make_spline(breaks=[0.0, 1.0], knots=np.zeros(3))


if __name__ == "__main__":
    execute_pytest_file()
