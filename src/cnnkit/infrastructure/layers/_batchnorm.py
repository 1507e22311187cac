"""
Batch normalization layer.

Normalizes every dimension over the batch and spatial extent, then applies a
learned scale (the layer's Weights, initialized to 1) and shift (the bias,
initialized to 0). The layer is reflexive: it normalizes the buffer in place
and rewrites the gradient in place during the backward pass.

Statistics always come from the current batch; there are no running
averages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np

from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ..ops.batchnorm_cpu import batchnorm_backward_cpu, batchnorm_forward_cpu
from ..utils.weight_initializer import WeightInitializer
from ..weights._weights import Weights
from ._weighted import WeightedLayer


class BatchNormalization(WeightedLayer):
    """
    Per-dimension batch normalization.

    Parameters
    ----------
    weights : Weights, optional
        Scale per dimension. Defaults to constant 1.
    bias : Weights, optional
        Shift per dimension. Defaults to constant 0.
    epsilon : float, optional
        Added to the variance before the square root so constant inputs do
        not divide by zero. Defaults to 1e-5.

    Notes
    -----
    ``sigma = sqrt(variance + epsilon)`` with the population variance
    (divided by ``batch_size * area``).
    """

    kind = LayerKind.BATCH_NORMALIZATION
    capabilities = LayerCapabilities(reflexive=True, weighted=True)

    def __init__(
        self,
        weights: Optional[Weights] = None,
        bias: Optional[Weights] = None,
        epsilon: float = 1e-5,
    ) -> None:
        if weights is None:
            weights = Weights(WeightInitializer("constant", value=1.0), name="bn.weights")
        if bias is None:
            bias = Weights(WeightInitializer("constant", value=0.0), name="bn.bias")
        if epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {epsilon}")
        super().__init__(1, 1, weights, bias)
        self.epsilon = float(epsilon)

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        self.output_shape = input_shape
        self.weights.initialize(input_shape.dimensions, input_shape.volume, input_shape.volume)
        self._initialize_bias()
        self.bind()
        self._allocate_scratch("centered", max_batch_size * input_shape.volume)
        self._allocate_scratch("statistics", 3 * input_shape.dimensions)
        return input_shape

    def _forward_child(self, batch_size: int) -> None:
        shape = self.input_shape
        self.context.launch(
            batchnorm_forward_cpu,
            self.output,
            self._weights_view(),
            self._scratch_view("centered"),
            self._scratch_view("statistics"),
            batch_size,
            shape.dimensions,
            shape.area,
            self.epsilon,
        )

    def _backwards(self, batch_size: int, update: bool) -> None:
        shape = self.input_shape
        self.context.launch(
            batchnorm_backward_cpu,
            self.in_gradient,
            self._weights_view(),
            self._weights_gradient_view() if update else None,
            self._scratch_view("centered"),
            self._scratch_view("statistics"),
            batch_size,
            shape.dimensions,
            shape.area,
        )

    def _backwards_update(self, batch_size: int) -> None:
        self._backwards(batch_size, True)

    def _backwards_no_update(self, batch_size: int) -> None:
        self._backwards(batch_size, False)

    def _statistic(self, index: int) -> np.ndarray:
        self._require_ready()
        d = self.input_shape.dimensions
        return np.array(self._scratch_view("statistics")[index * d : (index + 1) * d])

    @property
    def mean(self) -> np.ndarray:
        """Per-dimension mean of the last forward batch."""
        return self._statistic(0)

    @property
    def variance(self) -> np.ndarray:
        """Per-dimension population variance of the last forward batch."""
        return self._statistic(1)

    @property
    def sigma(self) -> np.ndarray:
        return self._statistic(2)

    def get_config(self) -> Dict[str, Any]:
        return {"epsilon": self.epsilon}
