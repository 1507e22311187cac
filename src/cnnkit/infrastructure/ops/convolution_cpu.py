"""
CPU kernels for LayerInfo-driven convolution geometry.

The three kernels below serve both convolution and transposed convolution.
They work on flat buffers laid out ``(batch, dimensions, area)`` and on flat
filters laid out ``(expansion_dims, contraction_dims, K, K)``.

- `contract_cpu`: expansion values -> contraction values
  (convolution forward, transposed-convolution outgoing gradient).
- `expand_cpu`: contraction values -> expansion values
  (transposed-convolution forward, convolution outgoing gradient).
- `filter_gradient_cpu`: accumulate the filter gradient from an
  expansion-side tensor and a contraction-side tensor.

Every kernel *accumulates* into its destination; callers zero the
destination first when they need an overwrite. Scatter onto the expansion
side uses `np.add.at`, which is unbuffered, so several filter taps landing on
the same position all contribute (the CPU counterpart of an atomic add).

Invalid taps (outside the expansion map) are gathered from index 0 and then
masked to zero, so no padding is ever materialised.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Tuple

import numpy as np

from ...domain._layer_info import LayerInfo


@lru_cache(maxsize=128)
def build_tap_table(info: LayerInfo) -> Tuple[np.ndarray, np.ndarray]:
    """
    Precompute expansion indices for every (contraction position, tap).

    Parameters
    ----------
    info : LayerInfo
        Geometry to tabulate.

    Returns
    -------
    taps : np.ndarray
        Integer array of shape ``(contraction.area, K*K)``; invalid taps hold 0.
    valid : np.ndarray
        Boolean mask of the same shape, False where the tap falls outside the
        expansion map.

    Notes
    -----
    Tap ``t = j * K + i`` matches the row-major layout of one K x K filter.
    The returned arrays are read-only because they are cached.
    """
    k = info.filter_size
    c = info.contraction
    e = info.expansion

    cy, cx = np.divmod(np.arange(c.area), c.width)
    j, i = np.divmod(np.arange(k * k), k)

    ex = cx[:, None] * info.stride - info.leading_padding + i[None, :]
    ey = cy[:, None] * info.stride - info.leading_padding + j[None, :]
    valid = (ex >= 0) & (ex < e.width) & (ey >= 0) & (ey < e.length)
    taps = np.where(valid, ey * e.width + ex, 0).astype(np.intp)

    taps.setflags(write=False)
    valid.setflags(write=False)
    return taps, valid


def _gather(values: np.ndarray, info: LayerInfo, batch_size: int) -> np.ndarray:
    """Expansion values at every tap: shape ``(B, E_dims, C_area, K*K)``."""
    taps, valid = build_tap_table(info)
    e = info.expansion
    x = values[: batch_size * e.volume].reshape(batch_size, e.dimensions, e.area)
    return x[:, :, taps] * valid


def _filter(filter_values: np.ndarray, info: LayerInfo) -> np.ndarray:
    return filter_values[: info.filter_length].reshape(
        info.expansion.dimensions, info.contraction.dimensions, info.filter_area
    )


def contract_cpu(
    expansion_values: np.ndarray,
    contraction_out: np.ndarray,
    filter_values: np.ndarray,
    info: LayerInfo,
    batch_size: int,
) -> None:
    """
    Accumulate the filter response of every contraction position.

    ``out[b, c, a] += sum_e sum_t W[e, c, t] * x[b, e, tap(a, t)]``
    """
    c = info.contraction
    gathered = _gather(expansion_values, info, batch_size)
    out = contraction_out[: batch_size * c.volume].reshape(
        batch_size, c.dimensions, c.area
    )
    out += np.einsum("beat,ect->bca", gathered, _filter(filter_values, info))


def expand_cpu(
    contraction_values: np.ndarray,
    expansion_out: np.ndarray,
    filter_values: np.ndarray,
    info: LayerInfo,
    batch_size: int,
) -> None:
    """
    Scatter every contraction value across its filter footprint.

    ``out[b, e, tap(a, t)] += sum_c W[e, c, t] * y[b, c, a]``
    """
    taps, valid = build_tap_table(info)
    c = info.contraction
    e = info.expansion
    y = contraction_values[: batch_size * c.volume].reshape(
        batch_size, c.dimensions, c.area
    )
    contributions = np.einsum("bca,ect->beat", y, _filter(filter_values, info))
    contributions *= valid
    out = expansion_out[: batch_size * e.volume].reshape(
        batch_size, e.dimensions, e.area
    )
    np.add.at(out, (slice(None), slice(None), taps), contributions)


def filter_gradient_cpu(
    expansion_values: np.ndarray,
    contraction_values: np.ndarray,
    filter_gradient: np.ndarray,
    info: LayerInfo,
    batch_size: int,
) -> None:
    """
    Accumulate ``dW[e, c, t] += sum_b sum_a x[b, e, tap(a, t)] * y[b, c, a]``.

    For a convolution `expansion_values` is the saved input and
    `contraction_values` the incoming gradient; for a transposed convolution
    the roles are swapped.
    """
    c = info.contraction
    gathered = _gather(expansion_values, info, batch_size)
    y = contraction_values[: batch_size * c.volume].reshape(
        batch_size, c.dimensions, c.area
    )
    dw = np.einsum("beat,bca->ect", gathered, y)
    filter_gradient[: info.filter_length] += dw.reshape(-1)
