"""
Adam hyperparameter state.

cnnkit applies Adam inside each `Weights` object (see
`Weights.update_weights`); this module holds the shared, time-dependent part
of the optimizer: the step counter and the bias-corrected learning rate.

Schedule
--------
After ``t`` calls to `update`::

    lr_t = learning_rate
           * learning_rate_decay ** (t / decay_steps)
           * sqrt(1 - beta2 ** t) / (1 - beta1 ** t)

The bias correction of both moments is folded into ``lr_t`` so the per-element
kernel only needs the raw moments.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class AdamHyperParameters:
    """
    Adam hyperparameters and step counter.

    Parameters
    ----------
    learning_rate : float, optional
        Base learning rate. Must be >= 0; 0 freezes every weight while
        gradients and moments are still computed. Defaults to 1e-4.
    beta1 : float, optional
        First-moment decay in [0, 1). Defaults to 0.9.
    beta2 : float, optional
        Second-moment decay in [0, 1). Defaults to 0.999.
    epsilon : float, optional
        Denominator floor. Must be > 0. Defaults to 1e-8.
    learning_rate_decay : float, optional
        Multiplicative decay reached after `decay_steps` updates, in (0, 1].
        Defaults to 0.464.
    decay_steps : float, optional
        Number of updates over which `learning_rate_decay` applies once.
        Defaults to 750000.
    gradient_clip : float, optional
        Gradients are clipped to +/- this value before the moment update.
        Defaults to 1000.
    weights_clip : float, optional
        Weights are clipped to +/- this value after the update.
        Defaults to 1000.

    Raises
    ------
    ValueError
        If any hyperparameter is outside its valid range.
    """

    learning_rate: float = 1e-4
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    learning_rate_decay: float = 0.464
    decay_steps: float = 750_000
    gradient_clip: float = 1000.0
    weights_clip: float = 1000.0
    updates: int = 0

    def __init__(
        self,
        learning_rate: float = 1e-4,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        *,
        learning_rate_decay: float = 0.464,
        decay_steps: float = 750_000,
        gradient_clip: float = 1000.0,
        weights_clip: float = 1000.0,
        updates: int = 0,
    ) -> None:
        self.learning_rate = float(learning_rate)
        self.beta1 = float(beta1)
        self.beta2 = float(beta2)
        self.epsilon = float(epsilon)
        self.learning_rate_decay = float(learning_rate_decay)
        self.decay_steps = float(decay_steps)
        self.gradient_clip = float(gradient_clip)
        self.weights_clip = float(weights_clip)
        self.updates = int(updates)

        if self.learning_rate < 0.0:
            raise ValueError(f"learning_rate must be >= 0, got {self.learning_rate}")
        if not (0.0 <= self.beta1 < 1.0) or not (0.0 <= self.beta2 < 1.0):
            raise ValueError(f"betas must be in [0,1), got {(self.beta1, self.beta2)}")
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")
        if not (0.0 < self.learning_rate_decay <= 1.0):
            raise ValueError(
                f"learning_rate_decay must be in (0,1], got {self.learning_rate_decay}"
            )
        if self.decay_steps <= 0.0:
            raise ValueError(f"decay_steps must be > 0, got {self.decay_steps}")
        if self.gradient_clip <= 0.0 or self.weights_clip <= 0.0:
            raise ValueError("gradient_clip and weights_clip must be > 0")
        if self.updates < 0:
            raise ValueError(f"updates must be >= 0, got {self.updates}")

    def update(self) -> None:
        """Advance the schedule by one training step."""
        self.updates += 1

    @property
    def corrected_learning_rate(self) -> float:
        """
        Learning rate for the current step.

        Before the first `update` there is no bias correction to apply, so the
        base learning rate is returned.
        """
        t = self.updates
        if t == 0:
            return self.learning_rate
        decay = self.learning_rate_decay ** (t / self.decay_steps)
        return (
            self.learning_rate
            * decay
            * math.sqrt(1.0 - self.beta2**t)
            / (1.0 - self.beta1**t)
        )

    def copy(self) -> "AdamHyperParameters":
        return AdamHyperParameters.from_config(self.get_config())

    def get_config(self) -> Dict[str, Any]:
        return {
            "learning_rate": self.learning_rate,
            "beta1": self.beta1,
            "beta2": self.beta2,
            "epsilon": self.epsilon,
            "learning_rate_decay": self.learning_rate_decay,
            "decay_steps": self.decay_steps,
            "gradient_clip": self.gradient_clip,
            "weights_clip": self.weights_clip,
            "updates": self.updates,
        }

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "AdamHyperParameters":
        return cls(**cfg)
