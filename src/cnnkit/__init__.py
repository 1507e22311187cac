"""
cnnkit: a NumPy convolutional network execution engine.

Typical use::

    import numpy as np
    from cnnkit import DeviceContext, Network, CrossEntropyLoss

    with DeviceContext("cpu") as context:
        network = Network(CrossEntropyLoss(), context)
        network.add_input((8, 8, 1))
        network.add_convolution(4, 3, activation="relu")
        network.add_dense(2, activation="sigmoid")
        network.startup(max_batch_size=16)
        loss, accuracy = network.train(inputs, expected)
"""

from .domain import (
    ConstraintUnsatisfiableError,
    DeviceNotSupportedError,
    InvalidOperationError,
    LayerCapabilities,
    LayerInfo,
    LayerKind,
    LiveCountError,
    NumericDegenerateError,
    Shape,
    ShapeMismatchError,
)
from .infrastructure.device import DeviceContext
from .infrastructure.losses import (
    BinaryCrossEntropyLoss,
    CrossEntropyLoss,
    Loss,
    MeanSquaredErrorLoss,
    WassersteinLoss,
)
from .infrastructure.network import Network, check_gradients
from .infrastructure.optimizers import AdamHyperParameters
from .infrastructure.utils.weight_initializer import WeightInitializer
from .infrastructure.weights import Weights

__version__ = "0.1.0"

__all__ = [
    "ConstraintUnsatisfiableError",
    "DeviceNotSupportedError",
    "InvalidOperationError",
    "LayerCapabilities",
    "LayerInfo",
    "LayerKind",
    "LiveCountError",
    "NumericDegenerateError",
    "Shape",
    "ShapeMismatchError",
    "DeviceContext",
    "BinaryCrossEntropyLoss",
    "CrossEntropyLoss",
    "Loss",
    "MeanSquaredErrorLoss",
    "WassersteinLoss",
    "Network",
    "check_gradients",
    "AdamHyperParameters",
    "WeightInitializer",
    "Weights",
]
