"""
Weightless layers that only change the geometry of the data.

- `Reshape`: reinterprets the sample volume under a new shape (in place).
- `AveragePool`: K x K mean with stride K.
- `Upsampling`: separable bilinear upsampling by an integer scale.
- `Summation`: folds dimensions onto fewer output dimensions (``d % out``).
"""

from __future__ import annotations

from typing import Any, Dict

from ...domain._errors import ConstraintUnsatisfiableError, ShapeMismatchError
from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ..ops.resample_cpu import (
    average_pool_backward_cpu,
    average_pool_forward_cpu,
    summation_backward_cpu,
    summation_forward_cpu,
    upsample_backward_cpu,
    upsample_forward_cpu,
)
from ._base import Layer


class Reshape(Layer):
    """
    Reflexive reshape.

    The data is not moved; only the Shape handed to the next layer changes.

    Raises
    ------
    ShapeMismatchError
        At startup, if the input volume differs from the output volume.
    """

    kind = LayerKind.RESHAPE
    capabilities = LayerCapabilities(reflexive=True, structural=True)

    def __init__(self, output_shape: Shape) -> None:
        super().__init__()
        self.target_shape = output_shape

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        if input_shape.volume != self.target_shape.volume:
            raise ShapeMismatchError(
                f"Cannot reshape input into output shape: {input_shape} "
                f"({input_shape.volume} values) -> {self.target_shape} "
                f"({self.target_shape.volume} values)."
            )
        return self.target_shape

    def forward(self, batch_size: int) -> None:
        self._require_ready()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()

    def get_config(self) -> Dict[str, Any]:
        return {"output_shape": self.target_shape.get_config()}


class AveragePool(Layer):
    """Average pooling over non-overlapping ``filter_size`` windows."""

    kind = LayerKind.AVERAGE_POOL
    capabilities = LayerCapabilities(structural=True)

    def __init__(self, filter_size: int) -> None:
        if filter_size < 1:
            raise ConstraintUnsatisfiableError(f"filter_size must be >= 1, got {filter_size}")
        super().__init__(filter_size, filter_size)

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        k = self.filter_size
        if input_shape.width % k or input_shape.length % k:
            raise ConstraintUnsatisfiableError(
                f"Input {input_shape} is not divisible by pool size {k}."
            )
        return Shape(input_shape.width // k, input_shape.length // k, input_shape.dimensions)

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self.context.launch(
            average_pool_forward_cpu,
            self.input,
            self.output,
            self.input_shape,
            self.output_shape,
            self.filter_size,
            batch_size,
        )
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        self.context.launch(
            average_pool_backward_cpu,
            self.in_gradient,
            self.out_gradient,
            self.input_shape,
            self.output_shape,
            self.filter_size,
            batch_size,
        )
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {"filter_size": self.filter_size}


class Upsampling(Layer):
    """
    Bilinear upsampling.

    Parameters
    ----------
    scale : int
        Integer factor applied to width and length.
    """

    kind = LayerKind.UPSAMPLING
    capabilities = LayerCapabilities(structural=True)

    def __init__(self, scale: int) -> None:
        if scale < 1:
            raise ConstraintUnsatisfiableError(f"scale must be >= 1, got {scale}")
        super().__init__(1, scale)
        self.scale = int(scale)

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        return Shape(
            input_shape.width * self.scale,
            input_shape.length * self.scale,
            input_shape.dimensions,
        )

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self.context.launch(
            upsample_forward_cpu,
            self.input,
            self.output,
            self.input_shape,
            self.output_shape,
            self.scale,
            batch_size,
        )
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        self.context.launch(
            upsample_backward_cpu,
            self.in_gradient,
            self.out_gradient,
            self.input_shape,
            self.output_shape,
            self.scale,
            batch_size,
        )
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {"scale": self.scale}


class Summation(Layer):
    """
    Sum input dimensions into `output_dimensions` maps.

    Output dimension ``o`` is the sum of every input dimension ``d`` with
    ``d % output_dimensions == o``.
    """

    kind = LayerKind.SUMMATION
    capabilities = LayerCapabilities(structural=True)

    def __init__(self, output_dimensions: int) -> None:
        if output_dimensions < 1:
            raise ConstraintUnsatisfiableError(
                f"output_dimensions must be >= 1, got {output_dimensions}"
            )
        super().__init__()
        self.output_dimensions = int(output_dimensions)

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        if input_shape.dimensions % self.output_dimensions:
            raise ConstraintUnsatisfiableError(
                f"{input_shape.dimensions} input dimensions cannot be summed into "
                f"{self.output_dimensions} output dimensions."
            )
        return input_shape.with_dimensions(self.output_dimensions)

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self.context.launch(
            summation_forward_cpu,
            self.input,
            self.output,
            self.input_shape,
            self.output_shape,
            batch_size,
        )
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        self.context.launch(
            summation_backward_cpu,
            self.in_gradient,
            self.out_gradient,
            self.input_shape,
            self.output_shape,
            batch_size,
        )
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {"output_dimensions": self.output_dimensions}
