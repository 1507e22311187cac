"""
CPU kernels for structural resampling layers.

All kernels take flat buffers laid out ``(batch, dimensions, length, width)``
and overwrite their destination.

- average pooling with a K x K window and stride K;
- separable bilinear upsampling by an integer scale (edges replicated);
- dimension summation (``out[d % D_out] += in[d]``);
- integer translation with zero fill.
"""

from __future__ import annotations

from functools import lru_cache

import numpy as np

from ...domain._shape import Shape


def _batch(values: np.ndarray, shape: Shape, batch_size: int) -> np.ndarray:
    return values[: batch_size * shape.volume].reshape(shape.batch_shape(batch_size))


def average_pool_forward_cpu(
    inputs: np.ndarray,
    outputs: np.ndarray,
    input_shape: Shape,
    output_shape: Shape,
    filter_size: int,
    batch_size: int,
) -> None:
    x = _batch(inputs, input_shape, batch_size)
    y = _batch(outputs, output_shape, batch_size)
    k = filter_size
    y[...] = x.reshape(
        batch_size, input_shape.dimensions, output_shape.length, k, output_shape.width, k
    ).mean(axis=(3, 5))


def average_pool_backward_cpu(
    in_gradient: np.ndarray,
    out_gradient: np.ndarray,
    input_shape: Shape,
    output_shape: Shape,
    filter_size: int,
    batch_size: int,
) -> None:
    g = _batch(in_gradient, output_shape, batch_size)
    dx = _batch(out_gradient, input_shape, batch_size)
    k = filter_size
    dx[...] = np.repeat(np.repeat(g, k, axis=2), k, axis=3) / (k * k)


@lru_cache(maxsize=64)
def interpolation_matrix(size: int, scale: int) -> np.ndarray:
    """
    Bilinear interpolation weights of shape ``(size * scale, size)``.

    Output position ``o`` samples input coordinate ``o / scale`` between its
    floor and the next position, clamped at the last row/column.
    """
    out_size = size * scale
    matrix = np.zeros((out_size, size), dtype=np.float64)
    for o in range(out_size):
        position = o / scale
        i0 = int(np.floor(position))
        frac = position - i0
        i1 = min(i0 + 1, size - 1)
        matrix[o, i0] += 1.0 - frac
        matrix[o, i1] += frac
    matrix.setflags(write=False)
    return matrix


def upsample_forward_cpu(
    inputs: np.ndarray,
    outputs: np.ndarray,
    input_shape: Shape,
    output_shape: Shape,
    scale: int,
    batch_size: int,
) -> None:
    x = _batch(inputs, input_shape, batch_size)
    y = _batch(outputs, output_shape, batch_size)
    uy = interpolation_matrix(input_shape.length, scale).astype(x.dtype)
    ux = interpolation_matrix(input_shape.width, scale).astype(x.dtype)
    y[...] = np.einsum("yi,bdij,xj->bdyx", uy, x, ux)


def upsample_backward_cpu(
    in_gradient: np.ndarray,
    out_gradient: np.ndarray,
    input_shape: Shape,
    output_shape: Shape,
    scale: int,
    batch_size: int,
) -> None:
    g = _batch(in_gradient, output_shape, batch_size)
    dx = _batch(out_gradient, input_shape, batch_size)
    uy = interpolation_matrix(input_shape.length, scale).astype(g.dtype)
    ux = interpolation_matrix(input_shape.width, scale).astype(g.dtype)
    dx[...] = np.einsum("yi,bdyx,xj->bdij", uy, g, ux)


def summation_forward_cpu(
    inputs: np.ndarray,
    outputs: np.ndarray,
    input_shape: Shape,
    output_shape: Shape,
    batch_size: int,
) -> None:
    x = inputs[: batch_size * input_shape.volume].reshape(
        batch_size,
        input_shape.dimensions // output_shape.dimensions,
        output_shape.dimensions,
        input_shape.area,
    )
    y = outputs[: batch_size * output_shape.volume].reshape(
        batch_size, output_shape.dimensions, output_shape.area
    )
    y[...] = x.sum(axis=1)


def summation_backward_cpu(
    in_gradient: np.ndarray,
    out_gradient: np.ndarray,
    input_shape: Shape,
    output_shape: Shape,
    batch_size: int,
) -> None:
    g = in_gradient[: batch_size * output_shape.volume].reshape(
        batch_size, 1, output_shape.dimensions, output_shape.area
    )
    dx = out_gradient[: batch_size * input_shape.volume].reshape(
        batch_size,
        input_shape.dimensions // output_shape.dimensions,
        output_shape.dimensions,
        input_shape.area,
    )
    dx[...] = g


def _shift(source: np.ndarray, destination: np.ndarray, dx: int, dy: int) -> None:
    """``destination[:, y, x] = source[:, y - dy, x - dx]`` with zero fill."""
    destination[...] = 0
    length, width = source.shape[-2:]
    if abs(dx) >= width or abs(dy) >= length:
        return
    dst_y = slice(max(dy, 0), length + min(dy, 0))
    src_y = slice(max(-dy, 0), length + min(-dy, 0))
    dst_x = slice(max(dx, 0), width + min(dx, 0))
    src_x = slice(max(-dx, 0), width + min(-dx, 0))
    destination[:, dst_y, dst_x] = source[:, src_y, src_x]


def translate_cpu(
    source: np.ndarray,
    destination: np.ndarray,
    shape: Shape,
    shifts: np.ndarray,
    batch_size: int,
    inverse: bool = False,
) -> None:
    """
    Translate every sample by its ``(dx, dy)`` row of `shifts`.

    With ``inverse=True`` each sample is shifted back, which is the adjoint of
    the forward translation and therefore the gradient kernel.
    """
    src = _batch(source, shape, batch_size)
    dst = _batch(destination, shape, batch_size)
    sign = -1 if inverse else 1
    for b in range(batch_size):
        _shift(src[b], dst[b], sign * int(shifts[b, 0]), sign * int(shifts[b, 1]))
