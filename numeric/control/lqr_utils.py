import warnings
from typing import Optional, Tuple, Union

import attr
import numpy as np
from pydrake.trajectories import Trajectory
from scipy.integrate import OdeSolution, solve_ivp
from scipy.linalg import solve_continuous_are

from common.attr_utils import AttrsValidators
from common.custom_types import (
    CostMatrix,
    GainsMatrix,
    InputVector,
    NpArrayKMNf64,
    NpArrayMNf64,
    NpArrf64,
    NpVectorNf64,
    StateVector,
    TimesVector,
)
from common.logging_utils import LZLogger
from numeric.control.state_space import LinearStateSpace, TimeVaryingLinearStateSpace

StateSpaceSystem = Union[LinearStateSpace, TimeVaryingLinearStateSpace]

DEFAULT_NUM_TIME_SAMPLES = 10


class NegativeCostToGoWarning(RuntimeWarning):
    """
    Issued when a cost-to-go matrix handed to the Riccati solver has negative
    eigenvalues. Rank deficient costs routinely have zero eigenvalues that
    show up as tiny negative numbers.
    """


@attr.frozen
class LQRResult:
    """
    Infinite horizon LQR about (x0, u0).
    u = u0 - K (x - x0)
    V(x) = (x - x0)' S (x - x0)
    """

    K: GainsMatrix
    S: CostMatrix
    x0: StateVector
    u0: InputVector

    def control(self, x: StateVector) -> InputVector:
        return self.u0 - self.K @ (x - self.x0)

    def cost_to_go(self, x: StateVector) -> float:
        dx = x - self.x0
        return float(dx @ self.S @ dx)


@attr.frozen
class TVLQROptions:
    rtol: float = attr.ib(default=1e-6, validator=AttrsValidators.positive_validator())
    atol: float = attr.ib(default=1e-9, validator=AttrsValidators.positive_validator())
    method: str = "RK45"


@attr.frozen
class QuadraticCostTerms:
    """
    Running cost written as
        x'Q x - 2x'q + u'R u - 2u'r + 2x'N u + c
    """

    Q: CostMatrix
    q: NpVectorNf64
    R: CostMatrix
    r: NpVectorNf64
    N: NpArrayMNf64
    c: float


def _assert_square(matrix: NpArrf64, size: int) -> None:
    assert matrix.shape == (size, size)


def compute_quadratic_cost_terms(
    system: StateSpaceSystem,
    t: float,
    Q: CostMatrix,
    R: CostMatrix,
    Qy: Optional[CostMatrix] = None,
    desired_state: Optional[Trajectory] = None,
    desired_output: Optional[Trajectory] = None,
) -> QuadraticCostTerms:
    """
    Expands (x - xd)'Q(x - xd) + u'R u + (y - yd)'Qy(y - yd), with y = Cx + Du,
    into the terms of QuadraticCostTerms.
    Missing desired trajectories are taken to be zero.
    """
    _, _, C, D = system.matrices(t)
    n, m, p = system.num_states(), system.num_inputs(), system.num_outputs()

    xd = np.zeros(n, dtype=np.float64)
    if desired_state is not None:
        xd = desired_state.value(t).reshape(n)

    Q_bar = np.copy(Q)
    q_bar = Q @ xd
    R_bar = np.copy(R)
    r_bar = np.zeros(m, dtype=np.float64)
    N_bar = np.zeros((n, m), dtype=np.float64)
    c_bar = float(xd @ Q @ xd)

    if Qy is not None:
        yd = np.zeros(p, dtype=np.float64)
        if desired_output is not None:
            yd = desired_output.value(t).reshape(p)
        Q_bar += C.T @ Qy @ C
        q_bar += C.T @ Qy @ yd
        R_bar += D.T @ Qy @ D
        r_bar += D.T @ Qy @ yd
        N_bar += C.T @ Qy @ D
        c_bar += float(yd @ Qy @ yd)

    return QuadraticCostTerms(Q=Q_bar, q=q_bar, R=R_bar, r=r_bar, N=N_bar, c=c_bar)


def linear_quadratic_regulator(
    system: LinearStateSpace,
    x0: StateVector,
    u0: InputVector,
    Q: CostMatrix,
    R: CostMatrix,
    Qy: Optional[CostMatrix] = None,
) -> LQRResult:
    """
    Infinite horizon LQR for an LTI system about the point (x0, u0).
    The optional output cost penalizes (y - y0)'Qy(y - y0) where y0 is the
    output at (x0, u0). It is folded into the state, input and cross terms
    before solving the continuous algebraic Riccati equation, so R itself may
    be zero as long as D'QyD makes the effective input cost positive definite.
    """
    A, B, C, D = system.matrices()
    n, m = system.num_states(), system.num_inputs()
    x0 = np.asarray(x0, dtype=np.float64).reshape(n)
    u0 = np.asarray(u0, dtype=np.float64).reshape(m)
    Q = np.asarray(Q, dtype=np.float64)
    R = np.asarray(R, dtype=np.float64)
    _assert_square(Q, n)
    _assert_square(R, m)
    if Qy is not None:
        Qy = np.asarray(Qy, dtype=np.float64)
        _assert_square(Qy, system.num_outputs())

    # Deviation coordinates, so the desired output is zero.
    terms = compute_quadratic_cost_terms(system=system, t=0.0, Q=Q, R=R, Qy=Qy)
    if np.min(np.linalg.eigvalsh(terms.R)) <= 0.0:
        raise ValueError("Effective input cost must be positive definite.")

    S = solve_continuous_are(a=A, b=B, q=terms.Q, r=terms.R, s=terms.N)
    S = 0.5 * (S + S.T)
    K = np.linalg.solve(terms.R, B.T @ S + terms.N.T)

    LZLogger("LQR").debug(
        f"Solved LQR with {n} states and {m} inputs. "
        f"Closed loop eigenvalues: {np.linalg.eigvals(A - B @ K)}"
    )

    return LQRResult(K=K, S=S, x0=x0, u0=u0)


def _pack_cost_to_go(S: CostMatrix, s1: NpVectorNf64, s0: float) -> NpVectorNf64:
    return np.hstack((S.reshape(-1), s1, s0))


def _unpack_cost_to_go(
    y: NpVectorNf64,
    n: int,
) -> Tuple[CostMatrix, NpVectorNf64, float]:
    S = y[: n * n].reshape(n, n)
    s1 = y[n * n : n * n + n]
    s0 = y[-1]
    return S, s1, s0


@attr.frozen
class TimeVaryingLQRResult:
    """
    Finite horizon LQR over [t0, tf].
    Cost-to-go: V(t, x) = x'S(t)x + 2x's1(t) + s0(t)
    Control law: u(t, x) = -K(t)x - k0(t)
    """

    system: StateSpaceSystem
    Q: CostMatrix
    R: CostMatrix
    Qy: Optional[CostMatrix]
    desired_state: Optional[Trajectory]
    desired_output: Optional[Trajectory]
    t0: float
    tf: float
    time_samples: TimesVector
    ode_solution: OdeSolution

    def _clamp(self, t: float) -> float:
        return min(max(t, self.t0), self.tf)

    def cost_terms(self, t: float) -> QuadraticCostTerms:
        return compute_quadratic_cost_terms(
            system=self.system,
            t=t,
            Q=self.Q,
            R=self.R,
            Qy=self.Qy,
            desired_state=self.desired_state,
            desired_output=self.desired_output,
        )

    def cost_to_go_terms(self, t: float) -> Tuple[CostMatrix, NpVectorNf64, float]:
        S, s1, s0 = _unpack_cost_to_go(
            self.ode_solution(self._clamp(t)),
            self.system.num_states(),
        )
        return 0.5 * (S + S.T), s1, s0

    def gains(self, t: float) -> Tuple[GainsMatrix, InputVector]:
        t = self._clamp(t)
        _, B, _, _ = self.system.matrices(t)
        S, s1, _ = self.cost_to_go_terms(t)
        terms = self.cost_terms(t)
        K = np.linalg.solve(terms.R, B.T @ S + terms.N.T)
        k0 = np.linalg.solve(terms.R, B.T @ s1 - terms.r)
        return K, k0

    def control(self, t: float, x: StateVector) -> InputVector:
        K, k0 = self.gains(t)
        return -K @ x - k0

    def cost_to_go(self, t: float, x: StateVector) -> float:
        S, s1, s0 = self.cost_to_go_terms(t)
        return float(x @ S @ x + 2.0 * x @ s1 + s0)

    def sampled_cost_to_go(
        self,
    ) -> Tuple[TimesVector, NpArrayKMNf64, NpArrayMNf64, NpVectorNf64]:
        """
        Cost-to-go terms tabulated at the time samples.
        Returns (times, S of size N x n x n, s1 of size N x n, s0 of size N).
        """
        n = self.system.num_states()
        num_samples = self.time_samples.size
        S_samples = np.empty((num_samples, n, n), dtype=np.float64)
        s1_samples = np.empty((num_samples, n), dtype=np.float64)
        s0_samples = np.empty(num_samples, dtype=np.float64)
        for i, t in enumerate(self.time_samples):
            S_samples[i], s1_samples[i], s0_samples[i] = self.cost_to_go_terms(t)

        return np.copy(self.time_samples), S_samples, s1_samples, s0_samples


def time_varying_linear_quadratic_regulator(
    system: StateSpaceSystem,
    t0: float,
    tf: float,
    Q: CostMatrix,
    R: CostMatrix,
    Qf: CostMatrix,
    xf: Optional[StateVector] = None,
    Qy: Optional[CostMatrix] = None,
    desired_state: Optional[Trajectory] = None,
    desired_output: Optional[Trajectory] = None,
    time_samples: Optional[TimesVector] = None,
    options: TVLQROptions = TVLQROptions(),
) -> TimeVaryingLQRResult:
    """
    Finite horizon LQR tracking problem over [t0, tf] with running cost
        (x - xd)'Q(x - xd) + u'R u + (y - yd)'Qy(y - yd)
    and terminal cost (x - xf)'Qf(x - xf).

    The Riccati equations for S, s1 and s0 are integrated backwards from tf.
    If time_samples is None, DEFAULT_NUM_TIME_SAMPLES evenly spaced samples of
    [t0, tf] are used to tabulate the value function.
    """
    assert tf > t0
    n, m = system.num_states(), system.num_inputs()
    Q = np.asarray(Q, dtype=np.float64)
    R = np.asarray(R, dtype=np.float64)
    Qf = np.asarray(Qf, dtype=np.float64)
    _assert_square(Q, n)
    _assert_square(R, m)
    _assert_square(Qf, n)
    if Qy is not None:
        Qy = np.asarray(Qy, dtype=np.float64)
        _assert_square(Qy, system.num_outputs())

    if xf is None:
        xf = np.zeros(n, dtype=np.float64)
    xf = np.asarray(xf, dtype=np.float64).reshape(n)

    if time_samples is None:
        time_samples = np.linspace(t0, tf, DEFAULT_NUM_TIME_SAMPLES)
    time_samples = np.asarray(time_samples, dtype=np.float64)
    assert time_samples.ndim == 1 and time_samples.size >= 2

    if np.min(np.linalg.eigvalsh(0.5 * (Qf + Qf.T))) < 0.0:
        warnings.warn(
            "Terminal cost-to-go has negative eigenvalues.",
            NegativeCostToGoWarning,
            stacklevel=2,
        )

    def _riccati_derivatives(t: float, y: NpVectorNf64) -> NpVectorNf64:
        S, s1, _ = _unpack_cost_to_go(y, n)
        A, B, _, _ = system.matrices(t)
        terms = compute_quadratic_cost_terms(
            system=system,
            t=t,
            Q=Q,
            R=R,
            Qy=Qy,
            desired_state=desired_state,
            desired_output=desired_output,
        )
        SB_N = S @ B + terms.N
        Bs1_r = B.T @ s1 - terms.r

        Sdot = -(
            terms.Q + A.T @ S + S @ A - SB_N @ np.linalg.solve(terms.R, SB_N.T)
        )
        s1dot = -(-terms.q + A.T @ s1 - SB_N @ np.linalg.solve(terms.R, Bs1_r))
        s0dot = -(terms.c - Bs1_r @ np.linalg.solve(terms.R, Bs1_r))

        return _pack_cost_to_go(0.5 * (Sdot + Sdot.T), s1dot, s0dot)

    yf = _pack_cost_to_go(Qf, -Qf @ xf, float(xf @ Qf @ xf))
    solution = solve_ivp(
        _riccati_derivatives,
        t_span=(tf, t0),
        y0=yf,
        method=options.method,
        dense_output=True,
        rtol=options.rtol,
        atol=options.atol,
    )
    if not solution.success:
        raise RuntimeError(f"Riccati integration failed: {solution.message}")

    LZLogger("TVLQR").debug(
        f"Integrated Riccati equations over [{t0}, {tf}] "
        f"with {solution.t.size} steps."
    )

    return TimeVaryingLQRResult(
        system=system,
        Q=Q,
        R=R,
        Qy=Qy,
        desired_state=desired_state,
        desired_output=desired_output,
        t0=t0,
        tf=tf,
        time_samples=time_samples,
        ode_solution=solution.sol,
    )
