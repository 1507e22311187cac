"""
Glorot (Xavier) weight initializers.

Implemented variants
--------------------
- ``glorot_uniform``:
    ``U(-limit, +limit)`` with ``limit = sqrt(6 / (fan_in + fan_out))``.
    This is the default initializer of every convolution and dense layer.
- ``glorot_normal``:
    ``N(0, std^2)`` with ``std = sqrt(2 / (fan_in + fan_out))``.

Notes
-----
Fan-in and fan-out are supplied by the owning layer (input volume and output
volume). Sampling uses the global NumPy random state so that
``np.random.seed`` makes initialization reproducible.
"""

import math

import numpy as np

from ._base import WeightInitializer


@WeightInitializer.register_initializer("glorot_uniform")
def glorot_uniform(array: np.ndarray, fan_in: int, fan_out: int) -> np.ndarray:
    limit = math.sqrt(6.0 / (fan_in + fan_out))
    array[...] = np.random.uniform(-limit, limit, size=array.shape)
    return array


@WeightInitializer.register_initializer("glorot_normal")
def glorot_normal(array: np.ndarray, fan_in: int, fan_out: int) -> np.ndarray:
    std = math.sqrt(2.0 / (fan_in + fan_out))
    array[...] = np.random.normal(0.0, std, size=array.shape)
    return array
