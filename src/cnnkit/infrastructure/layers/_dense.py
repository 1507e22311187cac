"""
Fully connected layer.

Every output unit is a weighted sum over the whole input sample. The output
shape is ``(1, 1, units)`` so that each unit is its own dimension and the
shared per-dimension bias kernel gives one bias per unit.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ...domain._errors import ConstraintUnsatisfiableError, ShapeMismatchError
from ...domain._layer import LayerKind
from ...domain._shape import Shape
from ..ops.dense_cpu import (
    dense_filter_gradient_cpu,
    dense_forward_cpu,
    dense_out_gradient_cpu,
)
from ..ops.memory_cpu import copy_cpu
from ..weights._weights import Weights
from ._weighted import WeightedLayer


class Dense(WeightedLayer):
    """
    Dense (fully connected) layer.

    Parameters
    ----------
    units : int
        Number of output units. Ignored when `weights` are already populated,
        in which case it is derived from their length.
    weights : Weights
        ``units * input_volume`` values, input index fastest.
    bias : Weights or None
        One value per unit.
    """

    kind = LayerKind.DENSE

    def __init__(
        self, units: int, weights: Weights, bias: Optional[Weights] = None
    ) -> None:
        if units < 1:
            raise ConstraintUnsatisfiableError(f"units must be >= 1, got {units}")
        super().__init__(1, 1, weights, bias)
        self.units = int(units)

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        if self.weights.initialized:
            if self.weights.length % input_shape.volume != 0:
                raise ShapeMismatchError(
                    f"Weights are incompatible with layer: {self.weights.length} "
                    f"values for input volume {input_shape.volume}."
                )
            self.units = self.weights.length // input_shape.volume
        self.output_shape = Shape(1, 1, self.units)
        self.weights.initialize(
            self.units * input_shape.volume, input_shape.volume, self.units
        )
        self._initialize_bias()
        self.bind()
        self._allocate_scratch("input_copy", max_batch_size * input_shape.volume)
        return self.output_shape

    def _forward_child(self, batch_size: int) -> None:
        volume = self.input_shape.volume
        self.context.launch(
            copy_cpu, self.input, self._scratch_view("input_copy"), batch_size * volume
        )
        self._zero(self.output, batch_size * self.units)
        self.context.launch(
            dense_forward_cpu,
            self.input,
            self.output,
            self._weights_view(),
            batch_size,
            volume,
            self.units,
        )

    def _backwards_no_update(self, batch_size: int) -> None:
        volume = self.input_shape.volume
        self._zero(self.out_gradient, batch_size * volume)
        self.context.launch(
            dense_out_gradient_cpu,
            self.in_gradient,
            self.out_gradient,
            self._weights_view(),
            batch_size,
            volume,
            self.units,
        )

    def _backwards_update(self, batch_size: int) -> None:
        self._backwards_no_update(batch_size)
        self.context.launch(
            dense_filter_gradient_cpu,
            self.in_gradient,
            self._scratch_view("input_copy"),
            self._weights_gradient_view(),
            batch_size,
            self.input_shape.volume,
            self.units,
        )

    def get_config(self) -> Dict[str, Any]:
        return {"units": self.units}
