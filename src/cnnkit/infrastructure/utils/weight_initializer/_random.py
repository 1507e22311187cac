"""
Layer-independent random initializers.

- ``random_normal``: ``N(mean, std^2)``.
- ``random_uniform``: ``U(min, max)``; `min` defaults to ``-max``.
"""

from typing import Optional

import numpy as np

from ._base import WeightInitializer


@WeightInitializer.register_initializer("random_normal")
def random_normal(
    array: np.ndarray,
    fan_in: int,
    fan_out: int,
    *,
    mean: float = 0.0,
    std: float = 0.02,
) -> np.ndarray:
    if std < 0:
        raise ValueError(f"std must be >= 0, got {std}")
    array[...] = np.random.normal(mean, std, size=array.shape)
    return array


@WeightInitializer.register_initializer("random_uniform")
def random_uniform(
    array: np.ndarray,
    fan_in: int,
    fan_out: int,
    *,
    max: float = 0.05,
    min: Optional[float] = None,
) -> np.ndarray:
    low = -max if min is None else min
    if max < low:
        raise ValueError("Max is less than min.")
    array[...] = np.random.uniform(low, max, size=array.shape)
    return array
