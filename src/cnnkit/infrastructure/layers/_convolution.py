"""
Convolution and transposed convolution layers.

Both layers are driven by the same `LayerInfo` geometry and the same three
CPU kernels; they differ only in which side of the geometry is their input:

==========================  ==================  ====================
                            Convolution         TransposeConvolution
==========================  ==================  ====================
contraction side            output              input
expansion side              input               output
forward kernel              contract            expand
outgoing gradient kernel    expand              contract
filter gradient operands    (input, gradient)   (gradient, input)
==========================  ==================  ====================

Output spatial size is ``input / stride`` for a convolution and
``input * stride`` for its transpose, so a convolution followed by a
transposed convolution with the same filter size and stride restores the
original spatial size.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...domain._errors import ConstraintUnsatisfiableError, ShapeMismatchError
from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._layer_info import LayerInfo
from ...domain._shape import Shape
from ..ops.convolution_cpu import contract_cpu, expand_cpu, filter_gradient_cpu
from ..ops.memory_cpu import copy_cpu
from ..weights._weights import Weights
from ._weighted import WeightedLayer


class _ConvolutionBase(WeightedLayer):
    """
    Shared startup and input-copy handling of both convolution families.

    Parameters
    ----------
    filter_size : int
        Width and length of each square filter.
    stride : int
        Filter step on the expansion side.
    output_dimensions : int
        Number of output dimensions. Ignored when `weights` are already
        populated, in which case it is derived from their length.
    weights : Weights
        Filter weights, ``filter_size^2 * input_dims * output_dims`` values.
    bias : Weights or None
        Per-output-dimension bias.
    """

    capabilities = LayerCapabilities(weighted=True)

    def __init__(
        self,
        filter_size: int,
        stride: int,
        output_dimensions: int,
        weights: Weights,
        bias: Optional[Weights] = None,
    ) -> None:
        if output_dimensions < 1:
            raise ConstraintUnsatisfiableError(
                f"output_dimensions must be >= 1, got {output_dimensions}"
            )
        super().__init__(filter_size, stride, weights, bias)
        self.output_dimensions = int(output_dimensions)
        self.info: Optional[LayerInfo] = None

    def _resolve_output_dimensions(self, input_shape: Shape) -> int:
        if not self.weights.initialized:
            return self.output_dimensions
        per_dimension = self.filter_size * self.filter_size * input_shape.dimensions
        if self.weights.length % per_dimension != 0:
            raise ShapeMismatchError(
                f"Weights are incompatible with layer: {self.weights.length} values "
                f"cannot hold {self.filter_size}x{self.filter_size} filters for "
                f"{input_shape.dimensions} input dimensions."
            )
        return self.weights.length // per_dimension

    def _build_info(self, input_shape: Shape, output_dimensions: int) -> LayerInfo:
        raise NotImplementedError

    @staticmethod
    def _output_side(info: LayerInfo) -> Shape:
        raise NotImplementedError

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        output_dimensions = self._resolve_output_dimensions(input_shape)
        self.output_dimensions = output_dimensions
        self.info = self._build_info(input_shape, output_dimensions)
        output_shape = self._output_side(self.info)
        self.output_shape = output_shape
        self.weights.initialize(self.info.filter_length, input_shape.volume, output_shape.volume)
        self._initialize_bias()
        self.bind()
        self._allocate_scratch("input_copy", max_batch_size * input_shape.volume)
        return output_shape

    def _copy_input(self, batch_size: int) -> None:
        self.context.launch(
            copy_cpu,
            self.input,
            self._scratch_view("input_copy"),
            batch_size * self.input_shape.volume,
        )

    def get_config(self) -> Dict[str, Any]:
        return {
            "filter_size": self.filter_size,
            "stride": self.stride,
            "output_dimensions": self.output_dimensions,
        }


class Convolution(_ConvolutionBase):
    """
    Strided 2D convolution (output = contraction side).

    The output spatial size is ``input / stride``; both input width and
    length must be divisible by the stride.
    """

    kind = LayerKind.CONVOLUTION

    def _build_info(self, input_shape: Shape, output_dimensions: int) -> LayerInfo:
        return LayerInfo.from_convolution(
            input_shape, self.filter_size, self.stride, output_dimensions
        )

    @staticmethod
    def _output_side(info: LayerInfo) -> Shape:
        return info.contraction

    def _forward_child(self, batch_size: int) -> None:
        self._copy_input(batch_size)
        self._zero(self.output, batch_size * self.output_shape.volume)
        self.context.launch(
            contract_cpu,
            self.input,
            self.output,
            self._weights_view(),
            self.info,
            batch_size,
        )

    def _backwards_no_update(self, batch_size: int) -> None:
        self._zero(self.out_gradient, batch_size * self.input_shape.volume)
        self.context.launch(
            expand_cpu,
            self.in_gradient,
            self.out_gradient,
            self._weights_view(),
            self.info,
            batch_size,
        )

    def _backwards_update(self, batch_size: int) -> None:
        self._backwards_no_update(batch_size)
        self.context.launch(
            filter_gradient_cpu,
            self._scratch_view("input_copy"),
            self.in_gradient,
            self._weights_gradient_view(),
            self.info,
            batch_size,
        )


class TransposeConvolution(_ConvolutionBase):
    """
    Strided 2D transposed convolution (input = contraction side).

    The output spatial size is ``input * stride``.
    """

    kind = LayerKind.TRANSPOSE_CONVOLUTION

    def _build_info(self, input_shape: Shape, output_dimensions: int) -> LayerInfo:
        return LayerInfo.from_transpose_convolution(
            input_shape, self.filter_size, self.stride, output_dimensions
        )

    @staticmethod
    def _output_side(info: LayerInfo) -> Shape:
        return info.expansion

    def _forward_child(self, batch_size: int) -> None:
        self._copy_input(batch_size)
        self._zero(self.output, batch_size * self.output_shape.volume)
        self.context.launch(
            expand_cpu,
            self.input,
            self.output,
            self._weights_view(),
            self.info,
            batch_size,
        )

    def _backwards_no_update(self, batch_size: int) -> None:
        self._zero(self.out_gradient, batch_size * self.input_shape.volume)
        self.context.launch(
            contract_cpu,
            self.in_gradient,
            self.out_gradient,
            self._weights_view(),
            self.info,
            batch_size,
        )

    def _backwards_update(self, batch_size: int) -> None:
        self._backwards_no_update(batch_size)
        self.context.launch(
            filter_gradient_cpu,
            self.in_gradient,
            self._scratch_view("input_copy"),
            self._weights_gradient_view(),
            self.info,
            batch_size,
        )
