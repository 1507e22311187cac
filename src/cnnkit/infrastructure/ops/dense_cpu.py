"""
CPU kernels for fully connected layers.

Weights are stored flat with the input index fastest::

    W[i + input_volume * u]

which is a row-major ``(units, input_volume)`` matrix.
"""

from __future__ import annotations

import numpy as np


def _matrix(weights: np.ndarray, units: int, input_volume: int) -> np.ndarray:
    return weights[: units * input_volume].reshape(units, input_volume)


def dense_forward_cpu(
    inputs: np.ndarray,
    outputs: np.ndarray,
    weights: np.ndarray,
    batch_size: int,
    input_volume: int,
    units: int,
) -> None:
    """``out[b, u] += sum_i in[b, i] * W[u, i]``"""
    x = inputs[: batch_size * input_volume].reshape(batch_size, input_volume)
    y = outputs[: batch_size * units].reshape(batch_size, units)
    y += x @ _matrix(weights, units, input_volume).T


def dense_out_gradient_cpu(
    in_gradient: np.ndarray,
    out_gradient: np.ndarray,
    weights: np.ndarray,
    batch_size: int,
    input_volume: int,
    units: int,
) -> None:
    """``dx[b, i] += sum_u g[b, u] * W[u, i]``"""
    g = in_gradient[: batch_size * units].reshape(batch_size, units)
    dx = out_gradient[: batch_size * input_volume].reshape(batch_size, input_volume)
    dx += g @ _matrix(weights, units, input_volume)


def dense_filter_gradient_cpu(
    in_gradient: np.ndarray,
    inputs: np.ndarray,
    weights_gradient: np.ndarray,
    batch_size: int,
    input_volume: int,
    units: int,
) -> None:
    """``dW[u, i] += sum_b g[b, u] * x[b, i]``"""
    g = in_gradient[: batch_size * units].reshape(batch_size, units)
    x = inputs[: batch_size * input_volume].reshape(batch_size, input_volume)
    dw = _matrix(weights_gradient, units, input_volume)
    dw += g.T @ x
