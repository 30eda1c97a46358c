"""Type aliases shared by the background and registration modules."""
from typing import Any, Tuple, Union

import numpy as np
import numpy.typing as npt

# Array type aliases
NumArray = npt.NDArray[Any]
FloatArray = npt.NDArray[np.float64]
IntArray = npt.NDArray[np.int64]
BoolArray = npt.NDArray[np.bool_]

# Numeric type aliases
Int = Union[int, np.integer]
Float = Union[float, np.floating]

# A (column, row) position in a tile montage.
GridKey = Tuple[int, int]
# Pair of neighbouring tiles: (left, right) or (top, bottom).
GridPair = Tuple[GridKey, GridKey]
ParametersType = Union[npt.NDArray[np.float64], Tuple[float, ...]]
