from typing import Tuple

import attr
import numpy as np
from pydrake.trajectories import PiecewisePolynomial

from common.attr_utils import AttrsConverters, AttrsValidators
from common.custom_types import (
    InputVector,
    NpArrayMNf64,
    NpArrayNNf64,
    OutputVector,
    StateVector,
)

StateSpaceMatrices = Tuple[NpArrayNNf64, NpArrayMNf64, NpArrayMNf64, NpArrayMNf64]


@attr.frozen
class LinearStateSpace:
    """
    Continuous time LTI system
        xdot = A x + B u
        y = C x + D u
    """

    A: NpArrayNNf64 = attr.ib(
        converter=AttrsConverters.np_f64_converter(),
        validator=AttrsValidators.square_matrix_validator(),
    )
    B: NpArrayMNf64 = attr.ib(converter=AttrsConverters.np_f64_converter())
    C: NpArrayMNf64 = attr.ib(converter=AttrsConverters.np_f64_converter())
    D: NpArrayMNf64 = attr.ib(converter=AttrsConverters.np_f64_converter())

    def __attrs_post_init__(self) -> None:
        assert self.B.ndim == 2 and self.B.shape[0] == self.num_states()
        assert self.C.ndim == 2 and self.C.shape[1] == self.num_states()
        assert self.D.shape == (self.num_outputs(), self.num_inputs())

    def num_states(self) -> int:
        return self.A.shape[0]

    def num_inputs(self) -> int:
        return self.B.shape[1]

    def num_outputs(self) -> int:
        return self.C.shape[0]

    def is_time_invariant(self) -> bool:
        return True

    def matrices(self, t: float = 0.0) -> StateSpaceMatrices:
        del t
        return self.A, self.B, self.C, self.D

    def dynamics(self, x: StateVector, u: InputVector, t: float = 0.0) -> StateVector:
        del t
        return self.A @ x + self.B @ u

    def output(self, x: StateVector, u: InputVector, t: float = 0.0) -> OutputVector:
        del t
        return self.C @ x + self.D @ u


@attr.frozen
class TimeVaryingLinearStateSpace:
    """
    Linear system with constant A, B, C and a time varying feedthrough D(t).
    D(t) is stored as a vector valued trajectory of the row major flattened
    matrix. Outside of the trajectory span, D is held at its boundary values.
    """

    A: NpArrayNNf64 = attr.ib(
        converter=AttrsConverters.np_f64_converter(),
        validator=AttrsValidators.square_matrix_validator(),
    )
    B: NpArrayMNf64 = attr.ib(converter=AttrsConverters.np_f64_converter())
    C: NpArrayMNf64 = attr.ib(converter=AttrsConverters.np_f64_converter())
    D_trajectory: PiecewisePolynomial
    D_shape: Tuple[int, int] = attr.ib(converter=tuple)

    def __attrs_post_init__(self) -> None:
        assert self.B.ndim == 2 and self.B.shape[0] == self.num_states()
        assert self.C.ndim == 2 and self.C.shape[1] == self.num_states()
        assert self.D_shape == (self.num_outputs(), self.num_inputs())
        assert self.D_trajectory.rows() == self.D_shape[0] * self.D_shape[1]
        assert self.D_trajectory.cols() == 1

    def num_states(self) -> int:
        return self.A.shape[0]

    def num_inputs(self) -> int:
        return self.B.shape[1]

    def num_outputs(self) -> int:
        return self.C.shape[0]

    def is_time_invariant(self) -> bool:
        return False

    def start_time(self) -> float:
        return self.D_trajectory.start_time()

    def end_time(self) -> float:
        return self.D_trajectory.end_time()

    def D(self, t: float) -> NpArrayMNf64:
        clamped_t = min(max(t, self.start_time()), self.end_time())
        return self.D_trajectory.value(clamped_t).reshape(self.D_shape)

    def matrices(self, t: float = 0.0) -> StateSpaceMatrices:
        return self.A, self.B, self.C, self.D(t)

    def dynamics(self, x: StateVector, u: InputVector, t: float = 0.0) -> StateVector:
        del t
        return self.A @ x + self.B @ u

    def output(self, x: StateVector, u: InputVector, t: float = 0.0) -> OutputVector:
        return self.C @ x + self.D(t) @ u

    def at_time(self, t: float) -> LinearStateSpace:
        """
        Freezes the system at time t.
        """
        return LinearStateSpace(
            A=np.copy(self.A),
            B=np.copy(self.B),
            C=np.copy(self.C),
            D=self.D(t),
        )
