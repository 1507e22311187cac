"""
Wasserstein critic loss.
"""

from __future__ import annotations

import numpy as np

from ._base import Loss


class WassersteinLoss(Loss):
    """
    Critic loss with one label per sample.

    Each sample's score is the sum of its outputs. With labels ``+1`` (real)
    and ``-1`` (generated) the per-sample loss is ``-label * score``, so
    minimizing it raises the score of real samples and lowers the score of
    generated ones. The metric is the fraction of samples whose score has the
    sign of their label.
    """

    truth_volume = 1

    def _evaluate(self, outputs, truth):
        batch = outputs.shape[0]
        scores = outputs.sum(axis=1)
        labels = truth[:, 0]
        gradient = np.broadcast_to((-labels / batch)[:, None], outputs.shape)
        agreement = np.mean(np.sign(scores) == np.sign(labels))
        return np.mean(-labels * scores), agreement, gradient
