"""
Domain contracts of the cnnkit execution engine: shapes, geometry, layer and
loss protocols, device descriptors and the error taxonomy.
"""

from ._errors import (
    ConstraintUnsatisfiableError,
    DeviceNotSupportedError,
    InvalidOperationError,
    LiveCountError,
    NumericDegenerateError,
    ShapeMismatchError,
)
from ._shape import Shape
from ._layer_info import LayerInfo, contracted_size, expanded_size
from ._layer import ILayer, LayerCapabilities, LayerKind
from ._loss import ILoss

__all__ = [
    "ConstraintUnsatisfiableError",
    "DeviceNotSupportedError",
    "InvalidOperationError",
    "LiveCountError",
    "NumericDegenerateError",
    "ShapeMismatchError",
    "Shape",
    "LayerInfo",
    "contracted_size",
    "expanded_size",
    "ILayer",
    "LayerCapabilities",
    "LayerKind",
    "ILoss",
]
