from ._base import Loss
from ._cross_entropy import BinaryCrossEntropyLoss, CrossEntropyLoss
from ._mse import MeanSquaredErrorLoss
from ._wasserstein import WassersteinLoss

__all__ = [
    "Loss",
    "BinaryCrossEntropyLoss",
    "CrossEntropyLoss",
    "MeanSquaredErrorLoss",
    "WassersteinLoss",
]
