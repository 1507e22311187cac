"""
Finite-difference gradient checking.

Compares the analytic weight gradients of a started network against central
differences of its loss. Use a float64 `DeviceContext`; in float32 the
rounding error of the difference quotient dominates for small `epsilon`.
"""

from __future__ import annotations

import logging
from typing import Any, List

import numpy as np

from ..weights._weights import Weights
from ._network import Network

logger = logging.getLogger(__name__)


def numeric_gradient(
    network: Network,
    weights: Weights,
    inputs: np.ndarray,
    expected: Any,
    epsilon: float = 1e-3,
) -> np.ndarray:
    """
    Central-difference gradient of the loss with respect to `weights`.

    Every parameter is perturbed by ``+/- epsilon`` in turn and the loss is
    re-evaluated with `Network.test`. The parameters are restored exactly.
    """
    original = weights.to_numpy()
    gradient = np.zeros_like(original)
    try:
        for i in range(original.size):
            values = original.copy()
            values[i] = original[i] + epsilon
            weights.set_values(values)
            plus, _ = network.test(inputs, expected)
            values[i] = original[i] - epsilon
            weights.set_values(values)
            minus, _ = network.test(inputs, expected)
            gradient[i] = (plus - minus) / (2.0 * epsilon)
    finally:
        weights.set_values(original)
    return gradient


def check_gradients(
    network: Network,
    inputs: np.ndarray,
    expected: Any,
    epsilon: float = 1e-3,
) -> List[float]:
    """
    Maximum absolute difference between analytic and numeric gradients.

    Parameters
    ----------
    network : Network
        A started network.
    inputs : ndarray
        Input batch.
    expected : array_like
        Ground truth for the batch.
    epsilon : float, optional
        Finite-difference step. Defaults to 1e-3.

    Returns
    -------
    list of float
        One entry per Weights object, in `network.weights` order.
    """
    network.compute_gradients(inputs, expected)
    analytic = [w.gradient_to_numpy() for w in network.weights]
    for w in network.weights:
        w.zero_gradient()

    errors = []
    for w, grad in zip(network.weights, analytic):
        numeric = numeric_gradient(network, w, inputs, expected, epsilon)
        error = float(np.max(np.abs(numeric - grad))) if grad.size else 0.0
        logger.debug("%s: max gradient error %.3e over %d values", w.name, error, grad.size)
        errors.append(error)
    return errors
