"""
CPU memory kernels: copy, fill and accumulate over flat buffer prefixes.
"""

from __future__ import annotations

import numpy as np


def copy_cpu(source: np.ndarray, destination: np.ndarray, length: int) -> None:
    """Copy the first `length` elements of `source` into `destination`."""
    destination[:length] = source[:length]


def fill_cpu(destination: np.ndarray, length: int, value: float = 0.0) -> None:
    """Set the first `length` elements of `destination` to `value`."""
    destination[:length] = value


def add_cpu(source: np.ndarray, destination: np.ndarray, length: int) -> None:
    """Accumulate the first `length` elements of `source` into `destination`."""
    destination[:length] += source[:length]


def copy_strided_cpu(
    source: np.ndarray,
    destination: np.ndarray,
    batch_size: int,
    source_volume: int,
    destination_volume: int,
    destination_offset: int,
    length: int,
) -> None:
    """
    Copy per-sample blocks between buffers of different sample volumes.

    For every sample ``b`` the block ``source[b*source_volume : +length]`` is
    written to ``destination[b*destination_volume + destination_offset : +length]``.
    """
    src = source[: batch_size * source_volume].reshape(batch_size, source_volume)
    dst = destination[: batch_size * destination_volume].reshape(
        batch_size, destination_volume
    )
    dst[:, destination_offset : destination_offset + length] = src[:, :length]


def gather_strided_cpu(
    source: np.ndarray,
    destination: np.ndarray,
    batch_size: int,
    source_volume: int,
    source_offset: int,
    destination_volume: int,
    length: int,
) -> None:
    """Inverse of `copy_strided_cpu`: read an offset block out of every sample."""
    src = source[: batch_size * source_volume].reshape(batch_size, source_volume)
    dst = destination[: batch_size * destination_volume].reshape(
        batch_size, destination_volume
    )
    dst[:, :length] = src[:, source_offset : source_offset + length]
