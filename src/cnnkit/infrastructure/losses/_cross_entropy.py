"""
Cross-entropy losses over probability outputs.

Outputs are expected to be probabilities already (for example after a
`Sigmoid`); no softmax is applied here.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ._base import ASYMPTOTE_ERROR_CORRECTION, Loss


def _binary(outputs: np.ndarray, truth: np.ndarray) -> Tuple[float, float, np.ndarray]:
    eps = ASYMPTOTE_ERROR_CORRECTION
    batch = outputs.shape[0]
    inverse = 1.0 - truth
    losses = -(truth * np.log(outputs + eps) + inverse * np.log(1.0 - outputs + eps))
    gradient = (-truth / (outputs + eps) + inverse / (1.0 - outputs + eps)) / batch
    accuracy = np.mean(np.round(outputs) == np.round(truth))
    return losses.sum() / batch, accuracy, gradient


class BinaryCrossEntropyLoss(Loss):
    """
    Element-wise binary cross entropy.

    The per-sample loss is summed over the output volume; the reported value
    is the batch mean. The metric is the fraction of outputs that round to
    their truth.
    """

    def _evaluate(self, outputs, truth):
        return _binary(outputs, truth)


class CrossEntropyLoss(Loss):
    """
    Categorical cross entropy ``-sum(truth * log(p))``.

    The metric is the fraction of samples whose most probable class matches
    the truth's. A network with a single output falls back to the binary
    formulation.
    """

    def _evaluate(self, outputs, truth):
        if outputs.shape[1] == 1:
            return _binary(outputs, truth)
        eps = ASYMPTOTE_ERROR_CORRECTION
        batch = outputs.shape[0]
        losses = -(truth * np.log(outputs + eps)).sum(axis=1)
        gradient = -truth / (outputs + eps) / batch
        accuracy = np.mean(outputs.argmax(axis=1) == truth.argmax(axis=1))
        return losses.mean(), accuracy, gradient
