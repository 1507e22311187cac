"""
Input layer: the entry point of host data into the pipeline.
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ._base import Layer


class Input(Layer):
    """
    Reflexive layer holding the network input.

    Parameters
    ----------
    shape : Shape
        Shape of one input sample.

    Notes
    -----
    The forward and backward passes are no-ops; `set_input` writes the batch
    directly into the buffer the first processing layer reads from, and after
    a backward pass the same buffer holds the gradient with respect to the
    input.
    """

    kind = LayerKind.INPUT
    capabilities = LayerCapabilities(reflexive=True, structural=True)

    def __init__(self, shape: Shape) -> None:
        super().__init__()
        self.shape = shape
        self.max_batch_size = 0

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        if input_shape != self.shape:
            raise ShapeMismatchError(
                f"Input layer expects {self.shape}, got {input_shape}."
            )
        self.max_batch_size = max_batch_size
        return self.shape

    def set_input(self, inputs: np.ndarray) -> int:
        """
        Copy a batch of samples into the input buffer.

        Parameters
        ----------
        inputs : ndarray
            Either ``(batch, dimensions, length, width)`` or ``(batch, volume)``.

        Returns
        -------
        int
            The batch size.

        Raises
        ------
        ShapeMismatchError
            If a sample's volume or a map's area disagrees with the layer
            shape, or the batch exceeds the started batch size.
        """
        self._require_ready()
        inputs = np.asarray(inputs)
        if inputs.ndim < 2:
            raise ShapeMismatchError(
                f"Input must have a leading batch axis, got shape {inputs.shape}."
            )
        batch_size = inputs.shape[0]
        if inputs.ndim == 4 and inputs.shape[2] * inputs.shape[3] != self.shape.area:
            raise ShapeMismatchError(
                f"Input map area {inputs.shape[2] * inputs.shape[3]} does not match {self.shape}."
            )
        if inputs[0].size != self.shape.volume:
            raise ShapeMismatchError(
                f"Input sample volume {inputs[0].size} does not match {self.shape}."
            )
        if not 1 <= batch_size <= self.max_batch_size:
            raise ShapeMismatchError(
                f"Batch of {batch_size} does not fit the started batch size "
                f"{self.max_batch_size}."
            )
        length = batch_size * self.shape.volume
        self.output[:length] = inputs.reshape(-1)
        return batch_size

    def forward(self, batch_size: int) -> None:
        self._require_ready()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()

    def get_config(self) -> Dict[str, Any]:
        return {"shape": self.shape.get_config()}
