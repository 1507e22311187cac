"""
Data augmentation layer.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import numpy as np

from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ..ops.memory_cpu import copy_cpu
from ..ops.resample_cpu import translate_cpu
from ._base import Layer


class Translation(Layer):
    """
    Random integer translation of every training sample.

    While the layer is in training mode each sample is shifted by a random
    offset in ``[-width // 8, width // 8]`` horizontally and
    ``[-length // 8, length // 8]`` vertically, filling uncovered positions
    with zeros. The backward pass shifts the gradient back by the same
    offsets. Outside training the layer copies its input unchanged.
    """

    kind = LayerKind.AUGMENTATION
    capabilities = LayerCapabilities(structural=True)

    def __init__(self) -> None:
        super().__init__()
        self.shifts: Optional[np.ndarray] = None

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        return input_shape

    @property
    def max_shift(self) -> tuple:
        return (self.input_shape.width // 8, self.input_shape.length // 8)

    def _draw_shifts(self, batch_size: int) -> np.ndarray:
        max_x, max_y = self.max_shift
        shifts = np.empty((batch_size, 2), dtype=np.int64)
        shifts[:, 0] = np.random.randint(-max_x, max_x + 1, size=batch_size)
        shifts[:, 1] = np.random.randint(-max_y, max_y + 1, size=batch_size)
        return shifts

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        if self.training:
            self.shifts = self._draw_shifts(batch_size)
            self.context.launch(
                translate_cpu, self.input, self.output, self.input_shape, self.shifts, batch_size
            )
        else:
            self.shifts = None
            self.context.launch(
                copy_cpu, self.input, self.output, batch_size * self.input_shape.volume
            )
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        if self.shifts is not None:
            self.context.launch(
                translate_cpu,
                self.in_gradient,
                self.out_gradient,
                self.input_shape,
                self.shifts,
                batch_size,
                True,
            )
        else:
            self.context.launch(
                copy_cpu, self.in_gradient, self.out_gradient, batch_size * self.input_shape.volume
            )
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {"augmentation": "translation"}
