"""
Weight initialization public API.

Importing this package registers every built-in strategy with the
`WeightInitializer` registry:

- ``constant`` and ``predefined`` (deterministic);
- ``glorot_uniform`` and ``glorot_normal`` (fan-scaled);
- ``random_normal`` and ``random_uniform`` (fixed-scale).

Exports
-------
- WeightInitializer:
    The registry-backed dispatcher stored by `Weights`.
"""

from ._constants import *
from ._xavier import *
from ._random import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
]
