from typing import Annotated, Any, Callable, Literal

import numpy as np
import numpy.typing as npt

# Attrs stuff
AttrsConverterFunc = Callable[[Any], Any]
AttrsValidatorFunc = Callable

# Numpy types
f64 = np.float64
i64 = np.int64
NpArr = npt.NDArray
NpArrf64 = npt.NDArray[f64]

# Numpy types.
NpVectorNf64 = Annotated[npt.NDArray[f64], Literal["N"]]
NpVector2f64 = Annotated[npt.NDArray[f64], Literal["2"]]
NpVector4f64 = Annotated[npt.NDArray[f64], Literal["4"]]
NpVector6f64 = Annotated[npt.NDArray[f64], Literal["6"]]
NpVector16f64 = Annotated[npt.NDArray[f64], Literal["16"]]
NpArray22f64 = Annotated[npt.NDArray[f64], Literal["2,2"]]
NpArrayNNf64 = Annotated[npt.NDArray[f64], Literal["N,N"]]
NpArrayMNf64 = Annotated[npt.NDArray[f64], Literal["M,N"]]
NpArrayKMNf64 = Annotated[npt.NDArray[f64], Literal["K,M,N"]]

# Time stuff.
TimesVector = NpVectorNf64  # Time in seconds

# Control.
StateVector = NpVectorNf64
InputVector = NpVectorNf64
OutputVector = NpVectorNf64
StatesArray = NpArrayMNf64  # Each column is a state.
InputsArray = NpArrayMNf64  # Each column is an input.
GainsMatrix = NpArrayMNf64
CostMatrix = NpArrayNNf64
ControlLaw = Callable[[float, StateVector], InputVector]

# LIMP.
LIMPState = NpVector4f64  # [x, y, xdot, ydot]
LIMPInput = NpVector2f64  # [xddot, yddot]
LIMPOutput = NpVector6f64  # [x, y, xdot, ydot, x_zmp, y_zmp]
CartTableState = NpVector16f64
XYPoint = NpVector2f64
