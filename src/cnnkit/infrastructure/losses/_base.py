"""
Loss base class.

A loss is attached to the network's final buffers at startup. `get_loss`
reads the network output out of the final view, computes the batch-mean loss
and an auxiliary metric, and overwrites the same view with the gradient of
the batch-mean loss with respect to the output. The network has already
synchronized the device queue when `get_loss` is called, so losses operate on
the views directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ...domain._errors import InvalidOperationError, ShapeMismatchError
from ...domain._shape import Shape
from ..buffers._paired_buffers import PairedBuffers

#: Added inside logarithms and denominators.
ASYMPTOTE_ERROR_CORRECTION = 1e-6


class Loss(ABC):
    """
    Abstract loss collaborator.

    Subclasses implement `_evaluate`, which receives the outputs and ground
    truth as ``(batch, volume)`` float64 arrays and returns
    ``(value, metric, gradient)``.
    """

    #: Number of truth values per sample; None means the output volume.
    truth_volume: Optional[int] = None

    def __init__(self) -> None:
        self.buffers: Optional[PairedBuffers] = None
        self.output_shape: Optional[Shape] = None
        self.max_batch_size = 0

    @property
    def name(self) -> str:
        return type(self).__name__

    def startup(self, buffers: PairedBuffers, output_shape: Shape, max_batch_size: int) -> None:
        self.buffers = buffers
        self.output_shape = output_shape
        self.max_batch_size = int(max_batch_size)

    def _truth(self, ground_truth: Any) -> np.ndarray:
        truth = np.asarray(ground_truth, dtype=np.float64)
        expected = self.truth_volume or self.output_shape.volume
        if truth.ndim == 0 or truth.size != truth.shape[0] * expected:
            raise ShapeMismatchError(
                f"{self.name} expects {expected} truth value(s) per sample, got array of shape "
                f"{truth.shape}."
            )
        if not 1 <= truth.shape[0] <= self.max_batch_size:
            raise ShapeMismatchError(
                f"Batch of {truth.shape[0]} does not fit the started batch size {self.max_batch_size}."
            )
        return truth.reshape(truth.shape[0], expected)

    def outputs(self, batch_size: int) -> np.ndarray:
        """Live ``(batch, volume)`` view of the network output."""
        if self.buffers is None:
            raise InvalidOperationError(f"{self.name} has not been started.")
        volume = self.output_shape.volume
        return self.buffers.gradient[: batch_size * volume].reshape(batch_size, volume)

    def get_loss(self, ground_truth: Any) -> Tuple[float, float]:
        """
        Evaluate the loss and write its gradient into the output view.

        Parameters
        ----------
        ground_truth : array_like
            One row of truth values per sample in the batch.

        Returns
        -------
        tuple[float, float]
            ``(batch-mean loss, metric)``.

        Raises
        ------
        ShapeMismatchError
            If the truth does not have one row of the expected size per sample.
        """
        truth = self._truth(ground_truth)
        view = self.outputs(truth.shape[0])
        value, metric, gradient = self._evaluate(view.astype(np.float64), truth)
        view[...] = gradient
        return float(value), float(metric)

    @abstractmethod
    def _evaluate(
        self, outputs: np.ndarray, truth: np.ndarray
    ) -> Tuple[float, float, np.ndarray]: ...

    def get_config(self) -> Dict[str, Any]:
        return {}
