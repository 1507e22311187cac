"""
Weight initializer registry and dispatch utilities.

Design
------
- Initializers are registered by string name via a decorator-based registry.
- Each initializer fills a flat array *in place* given fan-in, fan-out and
  named parameters, and returns it.
- A `WeightInitializer` instance binds a registered name to its parameters.
  It is what `Weights` stores, applies on `reset`, and serializes through
  `get_config` / `from_config`.

Usage example
-------------
Registering an initializer:

    @WeightInitializer.register_initializer("constant")
    def constant(array, fan_in, fan_out, *, value=0.0):
        ...

Applying an initializer:

    init = WeightInitializer("constant", value=1.0)
    init(array, fan_in, fan_out)
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, TypeVar

import numpy as np

from ....domain.utils._weight_initialization import (
    _WeightInitializer,
    _calculate_fan_in_and_fan_out,
)

T = TypeVar("T", bound=Callable[..., np.ndarray])


class WeightInitializer(_WeightInitializer):
    """
    Registry-backed weight initializer dispatcher.

    Usage
    -----
    Register:
        @WeightInitializer.register_initializer("glorot_uniform")
        def glorot_uniform(array, fan_in, fan_out): ...

    Dispatch:
        init = WeightInitializer("glorot_uniform")
        init(array, fan_in, fan_out)

    Notes
    -----
    - Initializers are stored by string name in a class-level registry.
    - Parameters are validated by the initializer on every call, so a bad
      parameter surfaces on first use rather than at construction.
    """

    INITIALIZERS: ClassVar[Dict[str, Callable[..., np.ndarray]]] = {}

    def __init__(self, initializer_name: str, **params: Any) -> None:
        try:
            self._initializer: Callable[..., np.ndarray] = self.INITIALIZERS[
                initializer_name
            ]
        except KeyError as e:
            available = ", ".join(sorted(self.INITIALIZERS)) or "<none>"
            raise ValueError(
                f"Unsupported initializer name: {initializer_name!r}. "
                f"Available: {available}"
            ) from e
        self.name = initializer_name
        self.params: Dict[str, Any] = dict(params)

    def __repr__(self) -> str:
        args = "".join(f", {k}={v!r}" for k, v in self.params.items())
        return f"WeightInitializer({self.name!r}{args})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightInitializer):
            return NotImplemented
        return self.get_config() == other.get_config()

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register a weight initializer under `name`.

        Parameters
        ----------
        name:
            Registry key used to retrieve the initializer later.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Initializer name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.INITIALIZERS:
                raise ValueError(f"Initializer already registered: {name!r}")
            cls.INITIALIZERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return registered initializer names (sorted)."""
        return tuple(sorted(cls.INITIALIZERS))

    def __call__(self, array: np.ndarray, fan_in: int, fan_out: int) -> np.ndarray:
        fan_in, fan_out = _calculate_fan_in_and_fan_out(fan_in, fan_out)
        return self._initializer(array, fan_in, fan_out, **self.params)

    def get_config(self) -> Dict[str, Any]:
        params = {
            k: (v.tolist() if isinstance(v, np.ndarray) else v)
            for k, v in self.params.items()
        }
        return {"name": self.name, "params": params}

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "WeightInitializer":
        return cls(str(cfg["name"]), **dict(cfg.get("params", {}) or {}))
