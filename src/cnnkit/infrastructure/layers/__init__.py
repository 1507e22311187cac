from ._base import Layer
from ._weighted import WeightedLayer
from ._convolution import Convolution, TransposeConvolution
from ._dense import Dense
from ._batchnorm import BatchNormalization
from ._activations import (
    ACTIVATIONS,
    Activation,
    HyperTan,
    LeakyReLU,
    ReLU,
    Sigmoid,
    make_activation,
)
from ._input import Input
from ._structural import AveragePool, Reshape, Summation, Upsampling
from ._skip import Concatenation, Fork, SkipOut
from ._augmentation import Translation
from ._dropout import Dropout

__all__ = [
    "Layer",
    "WeightedLayer",
    "Convolution",
    "TransposeConvolution",
    "Dense",
    "BatchNormalization",
    "ACTIVATIONS",
    "Activation",
    "HyperTan",
    "LeakyReLU",
    "ReLU",
    "Sigmoid",
    "make_activation",
    "Input",
    "AveragePool",
    "Reshape",
    "Summation",
    "Upsampling",
    "Concatenation",
    "Fork",
    "SkipOut",
    "Translation",
    "Dropout",
]
