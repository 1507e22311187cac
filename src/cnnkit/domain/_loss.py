"""
Loss collaborator interface.

A loss reads the final output view of a network, evaluates it against ground
truth, and writes the initial backward gradient into that same view. The
engine itself never computes loss math.
"""

from __future__ import annotations

from typing import Any, Protocol, Tuple, runtime_checkable

from ._shape import Shape


@runtime_checkable
class ILoss(Protocol):
    """
    Domain-level loss contract.

    Notes
    -----
    `get_loss` returns ``(value, metric)`` where `value` is the batch mean
    loss and `metric` an auxiliary quantity such as accuracy.
    """

    def startup(self, buffers: Any, output_shape: Shape, max_batch_size: int) -> None:
        """Bind the loss to the network's final buffers."""
        ...

    def get_loss(self, ground_truth: Any) -> Tuple[float, float]:
        """Evaluate the loss and deposit the gradient in the output view."""
        ...
