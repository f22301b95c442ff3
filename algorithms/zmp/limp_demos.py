from typing import List, Optional

import attr
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from pydrake.trajectories import PiecewisePolynomial

from algorithms.zmp.limp_model import NUM_STATES, LinearInvertedPendulum
from common.custom_types import NpArrayMNf64, TimesVector
from common.logging_utils import LZLogger
from numeric.control.simulation_utils import (
    ClosedLoopSimulationResult,
    simulate_closed_loop,
)
from numeric.trajectories.trajectory_utils import make_spline

DEMO_COM_HEIGHT_M = 1.055


@attr.frozen
class LIMPRollout:
    simulation: ClosedLoopSimulationResult
    zmp: NpArrayMNf64  # 2 x N, one column per simulation time.


def _compute_zmp_outputs(
    limp: LinearInvertedPendulum,
    simulation: ClosedLoopSimulationResult,
) -> NpArrayMNf64:
    return np.vstack(
        [
            limp.output(
                x=simulation.states[:, i],
                u=simulation.inputs[:, i],
                t=t,
            )[4:]
            for i, t in enumerate(simulation.times)
        ]
    ).T


def _plot_rollout_on_ax(
    ax1: Axes,
    ax2: Axes,
    rollout: LIMPRollout,
    desired_zmp: Optional[NpArrayMNf64] = None,
    initialize_axes: bool = True,
) -> None:
    """
    Plots the x/y COM and ZMP of the rollout against time on ax1/ax2.
    """
    if initialize_axes:
        ax1.set_xlabel("t (s)")
        ax1.set_ylabel("x (m)")
        ax2.set_xlabel("t (s)")
        ax2.set_ylabel("y (m)")

    times = rollout.simulation.times
    states = rollout.simulation.states

    for i, ax in enumerate((ax1, ax2)):
        ax.plot(times, states[i, :], color="mediumslateblue", label="COM")
        ax.plot(
            times,
            rollout.zmp[i, :],
            color="olive",
            linestyle="dotted",
            label="ZMP",
        )
        if desired_zmp is not None:
            ax.plot(
                times,
                desired_zmp[i, :],
                color="lightcoral",
                linestyle="--",
                label="Desired ZMP",
            )
        ax.legend(loc="upper right")


def run_passive(debug: bool = False) -> LIMPRollout:
    limp = LinearInvertedPendulum(height=DEMO_COM_HEIGHT_M)
    simulation = simulate_closed_loop(
        system=limp.system,
        control_law=lambda t, x: np.zeros(2),
        initial_state=np.array([0.0, 0.0, 0.1, 0.0]),
        t_span=(0.0, 3.0),
    )
    rollout = LIMPRollout(
        simulation=simulation,
        zmp=_compute_zmp_outputs(limp=limp, simulation=simulation),
    )

    if debug:
        _, (ax1, ax2) = plt.subplots(nrows=2, ncols=1)
        _plot_rollout_on_ax(ax1=ax1, ax2=ax2, rollout=rollout)
        plt.show()

    return rollout


def run_lqr(
    num_trials: int = 5,
    seed: int = 0,
    debug: bool = False,
) -> List[LIMPRollout]:
    limp = LinearInvertedPendulum(height=DEMO_COM_HEIGHT_M)
    lqr = limp.lqr()
    rng = np.random.default_rng(seed)

    rollouts = []
    for trial in range(num_trials):
        initial_state = rng.standard_normal(NUM_STATES)
        simulation = simulate_closed_loop(
            system=limp.system,
            control_law=lambda t, x: lqr.control(x),
            initial_state=initial_state,
            t_span=(0.0, 5.0),
        )
        rollouts.append(
            LIMPRollout(
                simulation=simulation,
                zmp=_compute_zmp_outputs(limp=limp, simulation=simulation),
            )
        )
        LZLogger("LQRDemo").info(
            f"Trial {trial}: final ZMP {rollouts[-1].zmp[:, -1]}"
        )

    if debug:
        _, (ax1, ax2) = plt.subplots(nrows=2, ncols=1)
        for i, rollout in enumerate(rollouts):
            _plot_rollout_on_ax(
                ax1=ax1,
                ax2=ax2,
                rollout=rollout,
                initialize_axes=(i == 0),
            )
        plt.show()

    return rollouts


def sinusoidal_zmp_trajectory(
    times: Optional[TimesVector] = None,
) -> PiecewisePolynomial:
    """
    Desired ZMP swaying at 1.5Hz, splined through the given times.
    """
    if times is None:
        times = np.linspace(0.0, 8.0, 100)
    phase = 1.5 * times * (2.0 * np.pi)
    return make_spline(
        breaks=times,
        knots=np.vstack((0.08 * np.sin(phase), 0.25 * np.sin(phase))),
    )


def zmp_tracking_demo(
    initial_state: Optional[np.ndarray] = None,
    seed: int = 0,
    debug: bool = False,
) -> LIMPRollout:
    limp = LinearInvertedPendulum(height=DEMO_COM_HEIGHT_M)
    desired_zmp_trajectory = sinusoidal_zmp_trajectory()
    tracker = limp.zmp_tracker(desired_zmp_trajectory=desired_zmp_trajectory)

    if initial_state is None:
        initial_state = np.random.default_rng(seed).standard_normal(NUM_STATES)

    simulation = simulate_closed_loop(
        system=limp.system,
        control_law=tracker.control,
        initial_state=initial_state,
        t_span=(
            desired_zmp_trajectory.start_time(),
            desired_zmp_trajectory.end_time(),
        ),
    )
    rollout = LIMPRollout(
        simulation=simulation,
        zmp=_compute_zmp_outputs(limp=limp, simulation=simulation),
    )

    if debug:
        _, (ax1, ax2) = plt.subplots(nrows=2, ncols=1)
        _plot_rollout_on_ax(
            ax1=ax1,
            ax2=ax2,
            rollout=rollout,
            desired_zmp=desired_zmp_trajectory.vector_values(
                simulation.times.tolist()
            ),
        )
        plt.show()

    return rollout


if __name__ == "__main__":

    run_passive(debug=True)
    run_lqr(debug=True)
    zmp_tracking_demo(debug=True)
