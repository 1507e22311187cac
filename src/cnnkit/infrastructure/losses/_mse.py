"""
Mean squared error.
"""

from __future__ import annotations

import numpy as np

from ._base import Loss


class MeanSquaredErrorLoss(Loss):
    """
    ``mean((p - t)^2)`` over the whole batch.

    The metric is the mean absolute error.
    """

    def _evaluate(self, outputs, truth):
        diff = outputs - truth
        return np.mean(diff * diff), np.mean(np.abs(diff)), 2.0 * diff / diff.size
