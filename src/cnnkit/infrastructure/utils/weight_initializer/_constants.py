"""
Deterministic weight initializers.

Provided initializers
---------------------
- ``constant``:
    Every element set to ``value`` (default 0). Used for biases and for
    batch-normalization scales.
- ``predefined``:
    Elements taken from a fixed list of ``values``, cycled when the array is
    longer than the list. Used for hand-built test filters.
"""

from typing import Sequence

import numpy as np

from ._base import WeightInitializer


@WeightInitializer.register_initializer("constant")
def constant(
    array: np.ndarray, fan_in: int, fan_out: int, *, value: float = 0.0
) -> np.ndarray:
    array[...] = value
    return array


@WeightInitializer.register_initializer("predefined")
def predefined(
    array: np.ndarray, fan_in: int, fan_out: int, *, values: Sequence[float] = ()
) -> np.ndarray:
    """
    Fill from `values`, repeating the list as often as necessary.

    Raises
    ------
    ValueError
        If `values` is empty.
    """
    source = np.asarray(values, dtype=array.dtype).reshape(-1)
    if source.size == 0:
        raise ValueError("predefined initializer requires at least one value")
    array[...] = np.resize(source, array.shape)
    return array
