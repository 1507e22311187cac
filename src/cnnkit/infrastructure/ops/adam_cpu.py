"""
CPU Adam kernel.

All buffers are updated in place::

    g = clip(gradient, -gradient_clip, gradient_clip)
    m = beta1 * m + (1 - beta1) * g
    v = beta2 * v + (1 - beta2) * g * g
    w = w - learning_rate * m / (sqrt(v) + epsilon)
    w = clip(w, -weights_clip, weights_clip)

`learning_rate` is expected to be the already bias-corrected rate supplied by
`AdamHyperParameters`.
"""

from __future__ import annotations

import numpy as np


def adam_update_cpu(
    weights: np.ndarray,
    gradient: np.ndarray,
    first_moment: np.ndarray,
    second_moment: np.ndarray,
    learning_rate: float,
    beta1: float,
    beta2: float,
    epsilon: float,
    gradient_clip: float,
    weights_clip: float,
) -> None:
    g = np.clip(gradient, -gradient_clip, gradient_clip)

    first_moment *= beta1
    first_moment += (1.0 - beta1) * g

    second_moment *= beta2
    second_moment += (1.0 - beta2) * (g * g)

    weights -= learning_rate * (first_moment / (np.sqrt(second_moment) + epsilon))
    np.clip(weights, -weights_clip, weights_clip, out=weights)
