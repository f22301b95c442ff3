from typing import Tuple

import attr
import numpy as np
from pydrake.systems.analysis import Simulator
from pydrake.systems.framework import Context, DiagramBuilder, LeafSystem
from pydrake.systems.primitives import LinearSystem, LogVectorOutput
from pydrake.trajectories import PiecewisePolynomial

from common.attr_utils import AttrsValidators
from common.custom_types import (
    ControlLaw,
    InputsArray,
    StatesArray,
    StateVector,
    TimesVector,
)
from common.logging_utils import LZLogger
from numeric.control.state_space import LinearStateSpace


class StateFeedbackController(LeafSystem):
    """
    Wraps a control law u = f(t, x) as a drake system with a state input
    port and a control output port.
    """

    def __init__(
        self,
        control_law: ControlLaw,
        num_states: int,
        num_inputs: int,
    ):
        LeafSystem.__init__(self)
        self.control_law = control_law
        self.num_inputs = num_inputs

        self.state_ip = self.DeclareVectorInputPort(
            name="state",
            size=num_states,
        )
        self.control_op = self.DeclareVectorOutputPort(
            "control", num_inputs, self.compute_control
        )

    def compute_control(self, context: Context, output) -> None:
        x = self.state_ip.Eval(context)
        u = np.asarray(
            self.control_law(context.get_time(), x),
            dtype=np.float64,
        ).reshape(self.num_inputs)
        output.SetFromVector(u)


@attr.frozen
class SimulationOptions:
    max_step_size: float = attr.ib(
        default=1e-2,
        validator=AttrsValidators.positive_validator(),
    )
    target_accuracy: float = attr.ib(
        default=1e-6,
        validator=AttrsValidators.positive_validator(),
    )


@attr.frozen
class ClosedLoopSimulationResult:
    """
    Logged closed loop rollout. Each column of states/inputs corresponds to
    the time at the same index.
    """

    times: TimesVector
    states: StatesArray
    inputs: InputsArray

    def state_trajectory(self, num_positions: int) -> PiecewisePolynomial:
        """
        Cubic Hermite trajectory of the first num_positions states, using the
        next num_positions states as their derivatives.
        """
        assert 2 * num_positions <= self.states.shape[0]
        return PiecewisePolynomial.CubicHermite(
            self.times.tolist(),
            self.states[:num_positions, :],
            self.states[num_positions : 2 * num_positions, :],
        )


def _unique_time_indices(times: TimesVector) -> TimesVector:
    # The logger can record the initial time twice (initialization and first
    # step publish).
    _, indices = np.unique(times, return_index=True)
    return indices


def simulate_closed_loop(
    system: LinearStateSpace,
    control_law: ControlLaw,
    initial_state: StateVector,
    t_span: Tuple[float, float],
    options: SimulationOptions = SimulationOptions(),
) -> ClosedLoopSimulationResult:
    """
    Simulates xdot = A x + B u with u = control_law(t, x) over t_span.
    Only the state dynamics of the system are used. The plant exposes its
    full state so that the controller has no direct feedthrough loop.
    """
    t0, tf = t_span
    assert tf > t0
    n, m = system.num_states(), system.num_inputs()
    initial_state = np.asarray(initial_state, dtype=np.float64).reshape(n)

    builder = DiagramBuilder()
    plant = builder.AddSystem(
        LinearSystem(
            system.A,
            system.B,
            np.eye(n, dtype=np.float64),
            np.zeros((n, m), dtype=np.float64),
        ),
    )
    controller = builder.AddSystem(
        StateFeedbackController(
            control_law=control_law,
            num_states=n,
            num_inputs=m,
        ),
    )
    builder.Connect(
        plant.get_output_port(),
        controller.get_input_port(),
    )
    builder.Connect(
        controller.get_output_port(),
        plant.get_input_port(),
    )
    state_logger = LogVectorOutput(plant.get_output_port(), builder)

    diagram = builder.Build()
    simulator = Simulator(diagram)
    integrator = simulator.get_mutable_integrator()
    integrator.set_maximum_step_size(options.max_step_size)
    integrator.set_target_accuracy(options.target_accuracy)

    context = simulator.get_mutable_context()
    context.SetTime(t0)
    context.SetContinuousState(initial_state)
    simulator.Initialize()
    simulator.AdvanceTo(tf)

    state_log = state_logger.FindLog(context)
    times = np.asarray(state_log.sample_times(), dtype=np.float64)
    states = np.asarray(state_log.data(), dtype=np.float64)
    indices = _unique_time_indices(times)
    times, states = times[indices], states[:, indices]

    inputs = np.empty((m, times.size), dtype=np.float64)
    for i, t in enumerate(times):
        inputs[:, i] = np.asarray(control_law(t, states[:, i])).reshape(m)

    LZLogger("ClosedLoopSimulation").debug(
        f"Simulated [{t0}, {tf}] with {times.size} logged samples."
    )

    return ClosedLoopSimulationResult(times=times, states=states, inputs=inputs)
