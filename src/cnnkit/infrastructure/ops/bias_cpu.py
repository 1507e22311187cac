"""
CPU bias kernels shared by every weighted layer.

Bias is one value per output dimension. For a buffer laid out
``(batch, dimensions, area)``:

    value[(b * dims + d) * area + x] += bias[d]
    bias_grad[d] += sum_b sum_x in_gradient[(b * dims + d) * area + x]
"""

from __future__ import annotations

import numpy as np


def bias_add_cpu(
    values: np.ndarray,
    bias: np.ndarray,
    batch_size: int,
    dimensions: int,
    area: int,
) -> None:
    """Add ``bias[d]`` to every element of output dimension ``d``."""
    v = values[: batch_size * dimensions * area].reshape(batch_size, dimensions, area)
    v += bias[:dimensions].reshape(1, dimensions, 1)


def bias_gradient_cpu(
    in_gradient: np.ndarray,
    bias_gradient: np.ndarray,
    batch_size: int,
    dimensions: int,
    area: int,
) -> None:
    """Accumulate the per-dimension sum of the incoming gradient."""
    g = in_gradient[: batch_size * dimensions * area].reshape(
        batch_size, dimensions, area
    )
    bias_gradient[:dimensions] += g.sum(axis=(0, 2))
