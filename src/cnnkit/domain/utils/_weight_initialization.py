"""
Abstract interfaces and utilities for weight initialization.

This module defines the abstract base class for weight initializers along
with the fan-in/fan-out helpers shared by every strategy. The registry and
the concrete strategies live in the infrastructure layer.

Unlike framework-level tensors, cnnkit weights are flat arrays; the owning
layer supplies fan-in and fan-out explicitly (input volume and output volume
respectively).
"""

from abc import ABC
from typing import Any, Callable, Dict, TypeVar

T = TypeVar("T", bound=Callable[..., Any])


class _WeightInitializer(ABC):
    """
    Abstract base class for weight initializer dispatchers.

    Design notes
    ------------
    - Initializers are identified by string names.
    - Each initializer fills a flat array in place given fan-in, fan-out and
      optional named parameters, and returns it.
    - A dispatcher instance remembers the name and parameters so it can be
      serialized and applied again on `reset`.
    """

    INITIALIZERS: Dict[str, Callable] = {}

    def __init__(self, initializer_name: str, **params: Any) -> None:
        """
        Construct a weight initializer dispatcher.

        Parameters
        ----------
        initializer_name:
            The string key identifying a registered initializer.
        **params:
            Strategy parameters (for example ``value`` or ``std``).
        """
        ...

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Register a weight initializer under a given name.

        Returns
        -------
        Callable
            A decorator that registers the initializer function.
        """
        ...

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return the names of all registered initializers."""
        ...

    def __call__(self, array: Any, fan_in: int, fan_out: int) -> Any:
        """
        Fill `array` in place.

        Parameters
        ----------
        array:
            Flat float array to initialize.
        fan_in:
            Number of inputs feeding one output unit.
        fan_out:
            Number of outputs fed by one input unit.
        """
        ...


def _calculate_fan_in_and_fan_out(fan_in: int, fan_out: int) -> tuple[int, int]:
    """
    Validate a fan-in/fan-out pair.

    Zero fans (an empty layer) are clamped to 1 so variance formulas stay
    finite.

    Raises
    ------
    ValueError
        If either fan is negative.
    """
    if fan_in < 0 or fan_out < 0:
        raise ValueError(f"fan_in and fan_out must be >= 0, got {fan_in}, {fan_out}")
    return max(int(fan_in), 1), max(int(fan_out), 1)
