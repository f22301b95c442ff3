import warnings

import numpy as np
import pytest

from common.testing_utils import execute_pytest_file
from numeric.control.lqr_utils import (
    LQRResult,
    NegativeCostToGoWarning,
    TimeVaryingLQRResult,
    compute_quadratic_cost_terms,
    linear_quadratic_regulator,
    time_varying_linear_quadratic_regulator,
)
from numeric.control.state_space import LinearStateSpace
from numeric.trajectories.trajectory_utils import make_function_trajectory


@pytest.fixture(scope="module")
def double_integrator() -> LinearStateSpace:
    return LinearStateSpace(
        A=[[0.0, 1.0], [0.0, 0.0]],
        B=[[0.0], [1.0]],
        C=np.eye(2),
        D=np.zeros((2, 1)),
    )


@pytest.fixture(scope="module")
def single_integrator() -> LinearStateSpace:
    return LinearStateSpace(A=[[0.0]], B=[[1.0]], C=[[1.0]], D=[[0.0]])


def test_quadratic_cost_terms(double_integrator: LinearStateSpace) -> None:

    Qy = np.diag([2.0, 3.0])
    desired_output = make_function_trajectory(
        function=lambda t: [1.0, -1.0],
        start_time=0.0,
        end_time=1.0,
        rows=2,
    )
    terms = compute_quadratic_cost_terms(
        system=double_integrator,
        t=0.0,
        Q=np.eye(2),
        R=np.eye(1),
        Qy=Qy,
        desired_output=desired_output,
    )
    np.testing.assert_array_equal(terms.Q, np.eye(2) + Qy)
    np.testing.assert_array_equal(terms.q, np.array([2.0, -3.0]))
    np.testing.assert_array_equal(terms.R, np.eye(1))
    np.testing.assert_array_equal(terms.r, np.zeros(1))
    np.testing.assert_array_equal(terms.N, np.zeros((2, 1)))
    assert terms.c == 5.0


def test_lqr_double_integrator(double_integrator: LinearStateSpace) -> None:

    lqr = linear_quadratic_regulator(
        system=double_integrator,
        x0=np.zeros(2),
        u0=np.zeros(1),
        Q=np.eye(2),
        R=np.eye(1),
    )
    assert isinstance(lqr, LQRResult)
    np.testing.assert_allclose(
        lqr.S,
        np.array([[np.sqrt(3.0), 1.0], [1.0, np.sqrt(3.0)]]),
        atol=1e-9,
    )
    np.testing.assert_allclose(lqr.K, np.array([[1.0, np.sqrt(3.0)]]), atol=1e-9)

    # Regulating about a shifted point.
    lqr = linear_quadratic_regulator(
        system=double_integrator,
        x0=np.array([1.0, 0.0]),
        u0=np.zeros(1),
        Q=np.eye(2),
        R=np.eye(1),
    )
    np.testing.assert_allclose(lqr.control(np.array([1.0, 0.0])), np.zeros(1))
    np.testing.assert_allclose(lqr.control(np.array([2.0, 0.0])), np.array([-1.0]))
    np.testing.assert_allclose(
        lqr.cost_to_go(np.array([2.0, 0.0])),
        np.sqrt(3.0),
    )


def test_lqr_output_cost(double_integrator: LinearStateSpace) -> None:

    # With y = x, the output cost is the same as the state cost.
    state_cost_lqr = linear_quadratic_regulator(
        system=double_integrator,
        x0=np.zeros(2),
        u0=np.zeros(1),
        Q=np.eye(2),
        R=np.eye(1),
    )
    output_cost_lqr = linear_quadratic_regulator(
        system=double_integrator,
        x0=np.zeros(2),
        u0=np.zeros(1),
        Q=np.zeros((2, 2)),
        R=np.eye(1),
        Qy=np.eye(2),
    )
    np.testing.assert_allclose(output_cost_lqr.S, state_cost_lqr.S, atol=1e-9)
    np.testing.assert_allclose(output_cost_lqr.K, state_cost_lqr.K, atol=1e-9)


def test_lqr_requires_positive_definite_input_cost(
    double_integrator: LinearStateSpace,
) -> None:

    with pytest.raises(ValueError):
        linear_quadratic_regulator(
            system=double_integrator,
            x0=np.zeros(2),
            u0=np.zeros(1),
            Q=np.eye(2),
            R=np.zeros((1, 1)),
        )
    with pytest.raises(AssertionError):
        linear_quadratic_regulator(
            system=double_integrator,
            x0=np.zeros(2),
            u0=np.zeros(1),
            Q=np.eye(3),
            R=np.eye(1),
        )


def test_tvlqr_stationary_terminal_cost(double_integrator: LinearStateSpace) -> None:

    lqr = linear_quadratic_regulator(
        system=double_integrator,
        x0=np.zeros(2),
        u0=np.zeros(1),
        Q=np.eye(2),
        R=np.eye(1),
    )
    tvlqr = time_varying_linear_quadratic_regulator(
        system=double_integrator,
        t0=0.0,
        tf=2.0,
        Q=np.eye(2),
        R=np.eye(1),
        Qf=lqr.S,
    )
    assert isinstance(tvlqr, TimeVaryingLQRResult)

    times, S_samples, s1_samples, s0_samples = tvlqr.sampled_cost_to_go()
    assert times.size == 10
    assert S_samples.shape == (10, 2, 2)
    assert s1_samples.shape == (10, 2)
    assert s0_samples.shape == (10,)
    for S in S_samples:
        np.testing.assert_allclose(S, lqr.S, atol=1e-5)
    np.testing.assert_allclose(s1_samples, np.zeros((10, 2)), atol=1e-9)

    K, k0 = tvlqr.gains(0.0)
    np.testing.assert_allclose(K, lqr.K, atol=1e-5)
    np.testing.assert_allclose(k0, np.zeros(1), atol=1e-9)


def test_tvlqr_tracking(single_integrator: LinearStateSpace) -> None:

    # min int (x - 1)^2 + u^2 dt with terminal cost (x(tf) - 1)^2 is
    # stationary: V = (x - 1)^2 and u = 1 - x.
    desired_state = make_function_trajectory(
        function=lambda t: [1.0],
        start_time=0.0,
        end_time=5.0,
        rows=1,
    )
    tvlqr = time_varying_linear_quadratic_regulator(
        system=single_integrator,
        t0=0.0,
        tf=5.0,
        Q=np.eye(1),
        R=np.eye(1),
        Qf=np.eye(1),
        xf=np.array([1.0]),
        desired_state=desired_state,
        time_samples=np.linspace(0.0, 5.0, 4),
    )
    assert tvlqr.time_samples.size == 4

    for t in [0.0, 2.5, 5.0]:
        np.testing.assert_allclose(
            tvlqr.control(t, np.array([0.0])),
            np.array([1.0]),
            atol=1e-6,
        )
        np.testing.assert_allclose(
            tvlqr.control(t, np.array([1.0])),
            np.zeros(1),
            atol=1e-6,
        )
        np.testing.assert_allclose(
            tvlqr.cost_to_go(t, np.array([3.0])),
            4.0,
            atol=1e-6,
        )


def test_tvlqr_output_tracking(single_integrator: LinearStateSpace) -> None:

    # Same problem as above, with the desired value as an output target.
    desired_output = make_function_trajectory(
        function=lambda t: [1.0],
        start_time=0.0,
        end_time=5.0,
        rows=1,
    )
    tvlqr = time_varying_linear_quadratic_regulator(
        system=single_integrator,
        t0=0.0,
        tf=5.0,
        Q=np.zeros((1, 1)),
        R=np.eye(1),
        Qf=np.eye(1),
        xf=np.array([1.0]),
        Qy=np.eye(1),
        desired_output=desired_output,
    )
    np.testing.assert_allclose(
        tvlqr.control(1.0, np.array([0.0])),
        np.array([1.0]),
        atol=1e-6,
    )


def test_tvlqr_negative_terminal_cost_warning(
    double_integrator: LinearStateSpace,
) -> None:

    with pytest.warns(NegativeCostToGoWarning):
        time_varying_linear_quadratic_regulator(
            system=double_integrator,
            t0=0.0,
            tf=0.1,
            Q=np.eye(2),
            R=np.eye(1),
            Qf=np.diag([1.0, -1e-12]),
        )

    with warnings.catch_warnings():
        warnings.simplefilter("error", NegativeCostToGoWarning)
        time_varying_linear_quadratic_regulator(
            system=double_integrator,
            t0=0.0,
            tf=0.1,
            Q=np.eye(2),
            R=np.eye(1),
            Qf=np.eye(2),
        )


def test_invalid_tvlqr(double_integrator: LinearStateSpace) -> None:

    with pytest.raises(AssertionError):
        time_varying_linear_quadratic_regulator(
            system=double_integrator,
            t0=1.0,
            tf=0.0,
            Q=np.eye(2),
            R=np.eye(1),
            Qf=np.eye(2),
        )
    with pytest.raises(AssertionError):
        time_varying_linear_quadratic_regulator(
            system=double_integrator,
            t0=0.0,
            tf=1.0,
            Q=np.eye(2),
            R=np.eye(1),
            Qf=np.eye(3),
        )


if __name__ == "__main__":
    execute_pytest_file()
