"""
Dropout regularization layer.

Inverted dropout: while training, every value is zeroed with probability
`rate` and the survivors are scaled by ``1 / (1 - rate)`` so no rescaling is
needed at inference time. The scaled mask is kept in scratch memory and the
backward pass multiplies the gradient by the same mask. Outside training the
layer is the identity in both directions.
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ._base import Layer


def _apply_mask_cpu(values: np.ndarray, mask: np.ndarray, length: int) -> None:
    values[:length] *= mask[:length]


class Dropout(Layer):
    """
    Reflexive dropout layer.

    Parameters
    ----------
    rate : float, optional
        Probability of dropping a value. Must satisfy ``0 <= rate < 1``.
        Defaults to 0.2.

    Raises
    ------
    ValueError
        If `rate` is outside ``[0, 1)``.
    """

    kind = LayerKind.DROPOUT
    capabilities = LayerCapabilities(reflexive=True)

    def __init__(self, rate: float = 0.2) -> None:
        super().__init__()
        if not 0.0 <= rate < 1.0:
            raise ValueError("Dropout rate must be in [0, 1).")
        self.rate = float(rate)
        self.masked = False

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        self._allocate_scratch("mask", max_batch_size * input_shape.volume)
        return input_shape

    def mask(self, batch_size: int) -> np.ndarray:
        """Host copy of the scaled mask used by the last training pass."""
        self._require_ready()
        length = batch_size * self.input_shape.volume
        return np.array(self._scratch_view("mask")[:length])

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self.masked = self.training and self.rate > 0.0
        if not self.masked:
            return
        length = batch_size * self.input_shape.volume
        keep = 1.0 - self.rate
        mask = self._scratch_view("mask")
        mask[:length] = (np.random.random_sample(length) < keep) / keep
        self.context.launch(_apply_mask_cpu, self.output, mask, length)
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        if not self.masked:
            return
        length = batch_size * self.input_shape.volume
        self.context.launch(_apply_mask_cpu, self.in_gradient, self._scratch_view("mask"), length)
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {"rate": self.rate}
