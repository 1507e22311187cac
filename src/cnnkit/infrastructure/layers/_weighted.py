"""
Base class for layers that own Weights and an optional bias.

`WeightedLayer` fixes the order of operations of every trainable layer so
concrete layers only supply their kernels:

forward
    `_forward_child` (save input if needed, zero output, launch the forward
    kernel) -> bias add per output dimension -> synchronize -> release.

backwards
    bias gradient (when updating) -> `_backwards_update` or
    `_backwards_no_update` -> synchronize -> release.

The bias gradient is launched first because reflexive layers overwrite the
incoming gradient in place.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import List, Optional

import numpy as np

from ...domain._layer import LayerCapabilities
from ..ops.bias_cpu import bias_add_cpu, bias_gradient_cpu
from ..weights._weights import Weights
from ._base import Layer


class WeightedLayer(Layer):
    """
    Layer with trainable filter weights and an optional per-dimension bias.

    Parameters
    ----------
    filter_size : int
        Window size of the layer.
    stride : int
        Window step of the layer.
    weights : Weights
        Filter (or matrix) weights; may be shared with other layers.
    bias : Weights or None
        One value per output dimension, or None for no bias.
    """

    capabilities = LayerCapabilities(weighted=True)

    def __init__(
        self,
        filter_size: int,
        stride: int,
        weights: Weights,
        bias: Optional[Weights] = None,
    ) -> None:
        super().__init__(filter_size, stride)
        self.weights = weights
        self.bias = bias

    @property
    def fan_in(self) -> int:
        return self.input_shape.volume

    @property
    def fan_out(self) -> int:
        return self.output_shape.volume

    def all_weights(self) -> List[Weights]:
        return [w for w in (self.weights, self.bias) if w is not None]

    def _initialize_bias(self) -> None:
        if self.bias is not None:
            self.bias.initialize(self.output_shape.dimensions, self.fan_in, self.fan_out)

    def bind(self) -> None:
        """Upload owned Weights to the layer's context."""
        for w in self.all_weights():
            w.bind(self.context)

    # borrowed views

    def _weights_view(self) -> np.ndarray:
        return self._borrow(self.weights.weights_view, self.weights.release_weights)

    def _weights_gradient_view(self) -> np.ndarray:
        return self._borrow(self.weights.gradient_view, self.weights.release_gradient)

    # contract

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self._forward_child(batch_size)
        if self.bias is not None:
            shape = self.output_shape
            self.context.launch(
                bias_add_cpu,
                self.output,
                self._borrow(self.bias.weights_view, self.bias.release_weights),
                batch_size,
                shape.dimensions,
                shape.area,
            )
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        if update:
            if self.bias is not None:
                shape = self.output_shape
                self.context.launch(
                    bias_gradient_cpu,
                    self.in_gradient,
                    self._borrow(self.bias.gradient_view, self.bias.release_gradient),
                    batch_size,
                    shape.dimensions,
                    shape.area,
                )
            self._backwards_update(batch_size)
        else:
            self._backwards_no_update(batch_size)
        self._synchronize_and_release()

    def reset(self) -> None:
        for w in self.all_weights():
            w.reset()

    @abstractmethod
    def _forward_child(self, batch_size: int) -> None: ...

    @abstractmethod
    def _backwards_update(self, batch_size: int) -> None: ...

    @abstractmethod
    def _backwards_no_update(self, batch_size: int) -> None: ...
