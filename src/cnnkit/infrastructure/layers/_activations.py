"""
Elementwise activation layers.

All activations are reflexive: they transform the buffer in place on the way
forward and rewrite the gradient in place on the way back. Whatever the
backward pass needs (a positivity mask or the forward output) is kept in a
per-layer scratch buffer.

Available activations
---------------------
- ``relu``: ``max(x, 0)``.
- ``leaky_relu``: ``x`` for ``x > 0`` else ``negative_slope * x``
  (default slope 0.2).
- ``sigmoid``: ``1 / (1 + exp(-x))``.
- ``tanh``: hyperbolic tangent.
"""

from __future__ import annotations

from typing import Any, Dict, Type

import numpy as np

from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ._base import Layer


def _relu_forward_cpu(values: np.ndarray, saved: np.ndarray, length: int, slope: float) -> None:
    x = values[:length]
    positive = x > 0
    saved[:length] = positive
    x[...] = np.where(positive, x, slope * x)


def _relu_backward_cpu(gradient: np.ndarray, saved: np.ndarray, length: int, slope: float) -> None:
    g = gradient[:length]
    g[...] = np.where(saved[:length] > 0, g, slope * g)


def _sigmoid_forward_cpu(values: np.ndarray, saved: np.ndarray, length: int) -> None:
    x = values[:length]
    # split by sign so exp never overflows
    out = np.empty_like(x)
    positive = x >= 0
    out[positive] = 1.0 / (1.0 + np.exp(-x[positive]))
    e = np.exp(x[~positive])
    out[~positive] = e / (1.0 + e)
    x[...] = out
    saved[:length] = out


def _sigmoid_backward_cpu(gradient: np.ndarray, saved: np.ndarray, length: int) -> None:
    y = saved[:length]
    gradient[:length] *= y * (1.0 - y)


def _tanh_forward_cpu(values: np.ndarray, saved: np.ndarray, length: int) -> None:
    x = values[:length]
    np.tanh(x, out=x)
    saved[:length] = x


def _tanh_backward_cpu(gradient: np.ndarray, saved: np.ndarray, length: int) -> None:
    y = saved[:length]
    gradient[:length] *= 1.0 - y * y


class Activation(Layer):
    """
    Base class of the in-place activation layers.

    Subclasses provide `_forward_kernel` / `_backward_kernel` and the name
    under which they are registered (`activation`).
    """

    kind = LayerKind.ACTIVATION
    capabilities = LayerCapabilities(reflexive=True)
    activation: str = ""

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        self._allocate_scratch("saved", max_batch_size * input_shape.volume)
        return input_shape

    def _kernel_args(self) -> tuple:
        return ()

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self.context.launch(
            self._forward_kernel,
            self.output,
            self._scratch_view("saved"),
            batch_size * self.input_shape.volume,
            *self._kernel_args(),
        )
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        self.context.launch(
            self._backward_kernel,
            self.in_gradient,
            self._scratch_view("saved"),
            batch_size * self.input_shape.volume,
            *self._kernel_args(),
        )
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {"activation": self.activation}


class ReLU(Activation):
    activation = "relu"
    _forward_kernel = staticmethod(_relu_forward_cpu)
    _backward_kernel = staticmethod(_relu_backward_cpu)

    def _kernel_args(self) -> tuple:
        return (0.0,)


class LeakyReLU(Activation):
    """
    Leaky rectifier.

    Parameters
    ----------
    negative_slope : float, optional
        Scale applied to non-positive inputs. Defaults to 0.2.
    """

    activation = "leaky_relu"
    _forward_kernel = staticmethod(_relu_forward_cpu)
    _backward_kernel = staticmethod(_relu_backward_cpu)

    def __init__(self, negative_slope: float = 0.2) -> None:
        super().__init__()
        self.negative_slope = float(negative_slope)

    def _kernel_args(self) -> tuple:
        return (self.negative_slope,)

    def get_config(self) -> Dict[str, Any]:
        return {"activation": self.activation, "negative_slope": self.negative_slope}


class Sigmoid(Activation):
    activation = "sigmoid"
    _forward_kernel = staticmethod(_sigmoid_forward_cpu)
    _backward_kernel = staticmethod(_sigmoid_backward_cpu)


class HyperTan(Activation):
    activation = "tanh"
    _forward_kernel = staticmethod(_tanh_forward_cpu)
    _backward_kernel = staticmethod(_tanh_backward_cpu)


ACTIVATIONS: Dict[str, Type[Activation]] = {
    cls.activation: cls for cls in (ReLU, LeakyReLU, Sigmoid, HyperTan)
}


def make_activation(activation: str, **params: Any) -> Activation:
    """
    Build an activation layer by name.

    Raises
    ------
    ValueError
        If `activation` is not a known activation.
    """
    try:
        cls = ACTIVATIONS[activation]
    except KeyError as e:
        raise ValueError(
            f"Unknown activation {activation!r}. Available: {', '.join(sorted(ACTIVATIONS))}"
        ) from e
    return cls(**params)
