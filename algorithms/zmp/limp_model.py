from __future__ import annotations

import math
import numbers
import warnings
from typing import Optional, Union

import attr
import numpy as np
from pydrake.trajectories import PiecewisePolynomial, Trajectory

from algorithms.zmp.com_planners import com_spline_from_zmp
from common.attr_utils import AttrsValidators
from common.constants import ACC_DUE_TO_GRAVITY
from common.custom_types import (
    CartTableState,
    LIMPInput,
    LIMPOutput,
    LIMPState,
    NpArray22f64,
    XYPoint,
)
from common.logging_utils import LZLogger
from numeric.control.lqr_utils import (
    LQRResult,
    NegativeCostToGoWarning,
    TimeVaryingLQRResult,
    TVLQROptions,
    linear_quadratic_regulator,
    time_varying_linear_quadratic_regulator,
)
from numeric.control.simulation_utils import SimulationOptions, simulate_closed_loop
from numeric.control.state_space import LinearStateSpace, TimeVaryingLinearStateSpace
from numeric.trajectories.trajectory_utils import (
    is_trajectory,
    linspace_trajectory_times,
    make_function_trajectory,
    make_spline,
)

NUM_STATES = 4
NUM_INPUTS = 2
NUM_OUTPUTS = 6
NUM_CART_TABLE_STATES = 16

# Indices of [x_com, y_com, xdot_com, ydot_com] inside the cart-table state.
CART_TABLE_LIMP_INDICES = np.array([6, 7, 14, 15], dtype=np.int64)

# Only the ZMP part of the output is penalized.
ZMP_OUTPUT_COST = np.diag([0.0, 0.0, 0.0, 0.0, 1.0, 1.0])


def limp_state_to_cart_table_state(limp_state: LIMPState) -> CartTableState:
    assert limp_state.size == NUM_STATES
    cart_table_state = np.zeros(NUM_CART_TABLE_STATES, dtype=np.float64)
    cart_table_state[CART_TABLE_LIMP_INDICES] = limp_state
    return cart_table_state


def cart_table_state_to_limp_state(cart_table_state: CartTableState) -> LIMPState:
    assert cart_table_state.size == NUM_CART_TABLE_STATES
    return np.copy(cart_table_state[CART_TABLE_LIMP_INDICES])


@attr.frozen
class ConstantHeight:
    h: float = attr.ib(validator=AttrsValidators.positive_validator())


@attr.frozen
class TimeVaryingHeight:
    """
    COM height given as a 1x1 trajectory, assumed positive throughout.
    """

    h_trajectory: PiecewisePolynomial

    def __attrs_post_init__(self) -> None:
        assert self.h_trajectory.rows() == 1
        assert self.h_trajectory.cols() == 1


COMHeight = Union[ConstantHeight, TimeVaryingHeight]


def make_com_height(h) -> COMHeight:
    if isinstance(h, (ConstantHeight, TimeVaryingHeight)):
        return h
    if isinstance(h, numbers.Real) and not isinstance(h, bool):
        return ConstantHeight(h=float(h))
    if isinstance(h, PiecewisePolynomial):
        return TimeVaryingHeight(h_trajectory=h)
    raise TypeError(f"Unsupported type for the COM height: {type(h).__name__}")


def _limp_A() -> np.ndarray:
    A = np.zeros((NUM_STATES, NUM_STATES), dtype=np.float64)
    A[:2, 2:] = np.eye(2)
    return A


def _limp_B() -> np.ndarray:
    return np.vstack((np.zeros((2, 2)), np.eye(2)))


def _limp_C() -> np.ndarray:
    C_zmp = np.hstack((np.eye(2), np.zeros((2, 2))))
    return np.vstack((np.eye(NUM_STATES), C_zmp))


def _limp_D(zmp_feedthrough: float) -> np.ndarray:
    D = np.zeros((NUM_OUTPUTS, NUM_INPUTS), dtype=np.float64)
    D[4:, :] = zmp_feedthrough * np.eye(2)
    return D


@attr.frozen
class ZMPTrackerOptions:
    """
    desired_com_trajectory is optional and either a 2 row COM position
    trajectory (velocity is taken from its derivative) or a 4 row LIMP state
    trajectory. If given, the state is tracked with an identity cost as well.
    """

    num_time_samples: int = attr.ib(
        default=10,
        validator=AttrsValidators.min_value_validator(2),
    )
    desired_com_trajectory: Optional[Trajectory] = None
    tvlqr_options: TVLQROptions = TVLQROptions()


@attr.frozen
class LinearInvertedPendulum:
    """
    Three dimensional ZMP dynamics of the linear inverted pendulum, as in
    Kajita03 but with the COM accelerations as the input instead of the jerk.

    State: [x, y, xdot, ydot]
    Input: [xddot, yddot]
    Output: [x, y, xdot, ydot, x_zmp, y_zmp]

    The height is either constant (LTI system with D_zmp = -h/g I) or a
    trajectory, in which case D_zmp(t) = -h(t) / (g + hddot(t)) is splined
    through the breaks of the height trajectory.
    """

    height: COMHeight = attr.ib(converter=make_com_height)
    g: float = attr.ib(
        default=ACC_DUE_TO_GRAVITY,
        validator=AttrsValidators.positive_validator(),
    )

    system: Union[LinearStateSpace, TimeVaryingLinearStateSpace] = attr.ib(
        init=False
    )

    @system.default
    def _initialize_system(
        self,
    ) -> Union[LinearStateSpace, TimeVaryingLinearStateSpace]:
        if isinstance(self.height, ConstantHeight):
            return LinearStateSpace(
                A=_limp_A(),
                B=_limp_B(),
                C=_limp_C(),
                D=_limp_D(-self.height.h / self.g),
            )
        elif isinstance(self.height, TimeVaryingHeight):
            h_trajectory = self.height.h_trajectory
            h_breaks = h_trajectory.get_segment_times()
            h_values = h_trajectory.vector_values(h_breaks).reshape(-1)
            hddot_values = (
                h_trajectory.derivative(2).vector_values(h_breaks).reshape(-1)
            )
            zmp_feedthrough_values = -h_values / (self.g + hddot_values)

            D_values = np.zeros(
                (NUM_OUTPUTS, NUM_INPUTS, len(h_breaks)),
                dtype=np.float64,
            )
            D_values[4, 0, :] = zmp_feedthrough_values
            D_values[5, 1, :] = zmp_feedthrough_values

            return TimeVaryingLinearStateSpace(
                A=_limp_A(),
                B=_limp_B(),
                C=_limp_C(),
                D_trajectory=make_spline(
                    breaks=h_breaks,
                    knots=D_values.reshape(NUM_OUTPUTS * NUM_INPUTS, -1),
                ),
                D_shape=(NUM_OUTPUTS, NUM_INPUTS),
            )
        else:
            raise NotImplementedError

    def is_time_invariant(self) -> bool:
        return self.system.is_time_invariant()

    def zmp_feedthrough(self, t: float = 0.0) -> NpArray22f64:
        return self.system.matrices(t)[3][4:, :]

    def output(self, x: LIMPState, u: LIMPInput, t: float = 0.0) -> LIMPOutput:
        return self.system.output(x=x, u=u, t=t)

    def zmp(
        self,
        com: XYPoint,
        com_acceleration: XYPoint,
        t: float = 0.0,
    ) -> XYPoint:
        return com + self.zmp_feedthrough(t) @ com_acceleration

    def lqr(self, com0: Optional[XYPoint] = None) -> LQRResult:
        """
        Stabilizing controller with the objective min_u int x_zmp(t)^2 dt
        about the COM position com0 (origin if None) at rest.
        The state cost is zero, so the cost-to-go is rank deficient.
        """
        if not self.is_time_invariant():
            raise NotImplementedError(
                "LQR is only defined for the constant height model."
            )
        return _zmp_lqr(system=self.system, com0=com0)

    def zmp_tracker(
        self,
        desired_zmp_trajectory: Trajectory,
        options: ZMPTrackerOptions = ZMPTrackerOptions(),
    ) -> TimeVaryingLQRResult:
        """
        Time varying LQR that tracks the desired ZMP trajectory over its span.
        The terminal cost is the ZMP LQR value function about the final
        desired ZMP.

        For the time varying height model, the desired ZMP trajectory must end
        when the height trajectory does, and the terminal LQR is computed on
        the model frozen at that time. This treats the model as stationary
        after the end of the height trajectory.
        """
        if not is_trajectory(desired_zmp_trajectory):
            raise TypeError("The desired ZMP must be a trajectory.")
        assert desired_zmp_trajectory.rows() == 2

        t0 = desired_zmp_trajectory.start_time()
        tf = desired_zmp_trajectory.end_time()
        zmp_tf = desired_zmp_trajectory.value(tf).reshape(2)

        if self.is_time_invariant():
            terminal_lqr = self.lqr(com0=zmp_tf)
        else:
            if not math.isclose(tf, self.system.end_time(), abs_tol=1e-9):
                raise ValueError(
                    f"The desired ZMP trajectory ends at {tf} but the model ends at "
                    f"{self.system.end_time()}."
                )
            terminal_lqr = _zmp_lqr(
                system=self.system.at_time(self.system.end_time()),
                com0=zmp_tf,
            )

        nominal_state = np.hstack((zmp_tf, np.zeros(2)))
        desired_output = make_function_trajectory(
            function=lambda t: np.hstack(
                (nominal_state, desired_zmp_trajectory.value(t).reshape(2))
            ),
            start_time=t0,
            end_time=tf,
            rows=NUM_OUTPUTS,
        )

        desired_state = None
        Q = np.zeros((NUM_STATES, NUM_STATES), dtype=np.float64)
        if options.desired_com_trajectory is not None:
            desired_state = _desired_limp_state_trajectory(
                options.desired_com_trajectory
            )
            Q = np.eye(NUM_STATES, dtype=np.float64)

        # The terminal cost has zero eigenvalues that fluctuate below zero.
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", NegativeCostToGoWarning)
            tracker = time_varying_linear_quadratic_regulator(
                system=self.system,
                t0=t0,
                tf=tf,
                Q=Q,
                R=np.zeros((NUM_INPUTS, NUM_INPUTS), dtype=np.float64),
                Qf=terminal_lqr.S,
                xf=terminal_lqr.x0,
                Qy=ZMP_OUTPUT_COST,
                desired_state=desired_state,
                desired_output=desired_output,
                time_samples=linspace_trajectory_times(
                    desired_zmp_trajectory,
                    options.num_time_samples,
                ),
                options=options.tvlqr_options,
            )

        LZLogger("ZMPTracker").info(
            f"Built ZMP tracker over [{t0}, {tf}] with final ZMP {zmp_tf}."
        )
        return tracker

    def zmp_plan_from_tracker(
        self,
        com0: XYPoint,
        comdot0: XYPoint,
        desired_zmp_trajectory: Trajectory,
        tracker: TimeVaryingLQRResult,
        simulation_options: SimulationOptions = SimulationOptions(),
    ) -> PiecewisePolynomial:
        """
        COM position trajectory obtained by closing the tracker around a
        double integrator and simulating over the desired ZMP span.
        """
        com0 = np.asarray(com0, dtype=np.float64)
        comdot0 = np.asarray(comdot0, dtype=np.float64)
        assert com0.size == 2
        assert comdot0.size == 2

        # Output is only the LIMP state.
        double_integrator = LinearStateSpace(
            A=_limp_A(),
            B=_limp_B(),
            C=np.eye(NUM_STATES),
            D=np.zeros((NUM_STATES, NUM_INPUTS)),
        )
        result = simulate_closed_loop(
            system=double_integrator,
            control_law=tracker.control,
            initial_state=np.hstack((com0, comdot0)),
            t_span=(
                desired_zmp_trajectory.start_time(),
                desired_zmp_trajectory.end_time(),
            ),
            options=simulation_options,
        )
        return result.state_trajectory(num_positions=2)

    def zmp_plan(
        self,
        com0: XYPoint,
        comf: XYPoint,
        desired_zmp_trajectory: PiecewisePolynomial,
    ) -> PiecewisePolynomial:
        """
        Closed form COM trajectory from the desired ZMP (Harada06), with the
        COM fixed at com0 and comf at the start and end of the trajectory.
        Checked wrapper around com_spline_from_zmp.
        """
        com0 = np.asarray(com0, dtype=np.float64)
        comf = np.asarray(comf, dtype=np.float64)
        assert com0.size == 2
        assert comf.size == 2
        if not isinstance(desired_zmp_trajectory, PiecewisePolynomial):
            raise TypeError("The desired ZMP must be a PiecewisePolynomial.")
        assert desired_zmp_trajectory.rows() == 2
        if not isinstance(self.height, ConstantHeight):
            raise NotImplementedError("Variable height is not implemented yet.")
        if self.g != ACC_DUE_TO_GRAVITY:
            raise ValueError(
                f"The closed form solution requires g = {ACC_DUE_TO_GRAVITY}, got {self.g}."
            )

        return com_spline_from_zmp(
            h=self.height.h,
            com0=com0,
            comf=comf,
            zmp_trajectory=desired_zmp_trajectory,
        )

    def zmp_planner(
        self,
        com0: XYPoint,
        comdot0: XYPoint,
        desired_zmp_trajectory: Trajectory,
        options: ZMPTrackerOptions = ZMPTrackerOptions(),
    ) -> PiecewisePolynomial:
        """
        Deprecated: COM plan from a freshly built ZMP tracker.
        """
        warnings.warn(
            "zmp_planner is deprecated. Use zmp_plan (closed form solution) or "
            "zmp_plan_from_tracker.",
            DeprecationWarning,
            stacklevel=2,
        )
        LZLogger("ZMPPlanner").warning("Planning the COM through the ZMP tracker.")

        tracker = self.zmp_tracker(
            desired_zmp_trajectory=desired_zmp_trajectory,
            options=options,
        )
        return self.zmp_plan_from_tracker(
            com0=com0,
            comdot0=comdot0,
            desired_zmp_trajectory=desired_zmp_trajectory,
            tracker=tracker,
        )


def _zmp_lqr(
    system: LinearStateSpace,
    com0: Optional[XYPoint] = None,
) -> LQRResult:
    if com0 is None:
        com0 = np.zeros(2, dtype=np.float64)
    com0 = np.asarray(com0, dtype=np.float64).reshape(2)

    return linear_quadratic_regulator(
        system=system,
        x0=np.hstack((com0, np.zeros(2))),
        u0=np.zeros(NUM_INPUTS),
        Q=np.zeros((NUM_STATES, NUM_STATES)),
        R=np.zeros((NUM_INPUTS, NUM_INPUTS)),
        Qy=ZMP_OUTPUT_COST,
    )


def _desired_limp_state_trajectory(
    desired_com_trajectory: Trajectory,
) -> Trajectory:
    if desired_com_trajectory.rows() == NUM_STATES:
        return desired_com_trajectory

    assert desired_com_trajectory.rows() == 2
    assert isinstance(desired_com_trajectory, PiecewisePolynomial)
    desired_comdot_trajectory = desired_com_trajectory.derivative(1)

    return make_function_trajectory(
        function=lambda t: np.hstack(
            (
                desired_com_trajectory.value(t).reshape(2),
                desired_comdot_trajectory.value(t).reshape(2),
            )
        ),
        start_time=desired_com_trajectory.start_time(),
        end_time=desired_com_trajectory.end_time(),
        rows=NUM_STATES,
    )
