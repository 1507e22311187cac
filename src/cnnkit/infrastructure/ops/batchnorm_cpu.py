"""
CPU batch-normalization kernels.

Statistics are computed per dimension over the batch and spatial extent
(``N = batch_size * area`` elements per dimension). The forward kernel runs
in place and leaves the bias to the shared bias kernel; it stores the
centered input and per-dimension statistics in scratch buffers for the
backward kernel.

Statistics layout: ``[mean (D), variance (D), sigma (D)]``.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


def batchnorm_forward_cpu(
    values: np.ndarray,
    weights: np.ndarray,
    centered: np.ndarray,
    statistics: np.ndarray,
    batch_size: int,
    dimensions: int,
    area: int,
    epsilon: float,
) -> None:
    """``x <- (x - mean) / sqrt(var + eps) * w`` in place."""
    n = batch_size * area
    size = batch_size * dimensions * area
    x = values[:size].reshape(batch_size, dimensions, area)
    c = centered[:size].reshape(batch_size, dimensions, area)

    mean = x.mean(axis=(0, 2))
    c[...] = x - mean.reshape(1, dimensions, 1)
    variance = np.square(c).sum(axis=(0, 2)) / n
    sigma = np.sqrt(variance + epsilon)

    statistics[:dimensions] = mean
    statistics[dimensions : 2 * dimensions] = variance
    statistics[2 * dimensions : 3 * dimensions] = sigma

    scale = (weights[:dimensions] / sigma).reshape(1, dimensions, 1)
    x[...] = c * scale


def batchnorm_backward_cpu(
    gradient: np.ndarray,
    weights: np.ndarray,
    weights_gradient: Optional[np.ndarray],
    centered: np.ndarray,
    statistics: np.ndarray,
    batch_size: int,
    dimensions: int,
    area: int,
) -> None:
    """
    Replace the incoming gradient with the input gradient, in place.

    With ``c = x - mean`` and ``g`` the incoming gradient::

        dw    = sum g * c / sigma
        dvar  = sum g * w * c * (-1/2) * sigma^-3
        dmean = -sum g * w / sigma + dvar * (-2/N) * sum c
        dx    = g * w / sigma + dvar * 2 * c / N + dmean / N
    """
    n = batch_size * area
    size = batch_size * dimensions * area
    g = gradient[:size].reshape(batch_size, dimensions, area)
    c = centered[:size].reshape(batch_size, dimensions, area)
    sigma = statistics[2 * dimensions : 3 * dimensions]
    w = weights[:dimensions]

    if weights_gradient is not None:
        weights_gradient[:dimensions] += (g * c).sum(axis=(0, 2)) / sigma

    gw = g * w.reshape(1, dimensions, 1)
    dvar = (gw * c).sum(axis=(0, 2)) * -0.5 * sigma**-3
    dmean = -gw.sum(axis=(0, 2)) / sigma + dvar * (-2.0 / n) * c.sum(axis=(0, 2))

    g[...] = (
        gw / sigma.reshape(1, dimensions, 1)
        + dvar.reshape(1, dimensions, 1) * 2.0 * c / n
        + dmean.reshape(1, dimensions, 1) / n
    )
