"""
Trainable parameter storage with built-in Adam state.

A `Weights` object is the single source of truth for one trainable tensor:
its values, its gradient accumulator, and its Adam first/second moments, all
flat and of the same length.

Lifecycle
---------
1. Constructed with an initializer (values may also be supplied up front or
   restored from a checkpoint). Arrays live on the host.
2. `initialize(length, fan_in, fan_out)` is called by the owning layer once
   its geometry is known. Populated Weights keep their values but must match
   the requested length.
3. `bind(context)` uploads the four arrays into the device arena.
4. Layers borrow views with `weights_view()` / `gradient_view()` and return
   them with `release_weights()` / `release_gradient()`. Each borrow raises
   the arena live count of that buffer; a buffer with outstanding borrows
   cannot be freed.
5. `update_weights(hyperparameters)` applies one Adam step and zeros the
   gradient.
6. `unbind()` downloads the arrays back to the host and frees the arena
   slots (network teardown).

The same Weights object may be shared by several layers; it is registered and
updated once per step.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import InvalidOperationError, ShapeMismatchError
from ...domain.device._device_protocol import IDeviceContext
from ..device._arena import Handle
from ..ops.adam_cpu import adam_update_cpu
from ..optimizers._adam import AdamHyperParameters
from ..utils.weight_initializer import WeightInitializer

_BUFFERS = ("weights", "gradient", "first_moment", "second_moment")


class Weights:
    """
    Parameter, gradient and Adam moment buffers of one trainable tensor.

    Parameters
    ----------
    initializer : WeightInitializer or str, optional
        Strategy used by `initialize` and `reset`. A string is resolved
        through the registry. Defaults to ``"glorot_uniform"``.
    values : sequence of float, optional
        Explicit initial values. When given, `initialize` only checks that the
        length matches.
    name : str, optional
        Label used in diagnostics and arena allocations.
    """

    def __init__(
        self,
        initializer: Union[WeightInitializer, str, None] = None,
        values: Optional[Sequence[float]] = None,
        name: str = "weights",
    ) -> None:
        if initializer is None:
            initializer = WeightInitializer("glorot_uniform")
        elif isinstance(initializer, str):
            initializer = WeightInitializer(initializer)
        self.initializer: WeightInitializer = initializer
        self.name = name
        self.fan_in = 1
        self.fan_out = 1

        self._host: Dict[str, np.ndarray] = {}
        self._handles: Dict[str, Handle] = {}
        self._context: Optional[IDeviceContext] = None

        if values is not None:
            self._set_host_values(np.asarray(values, dtype=np.float64).reshape(-1))

    def __repr__(self) -> str:
        return (
            f"Weights(name={self.name!r}, length={self.length}, "
            f"initializer={self.initializer!r}, bound={self.bound})"
        )

    # state

    @property
    def length(self) -> int:
        if self._context is not None:
            return self._context.length(self._handles["weights"])
        if "weights" in self._host:
            return int(self._host["weights"].size)
        return 0

    @property
    def initialized(self) -> bool:
        return self._context is not None or "weights" in self._host

    @property
    def bound(self) -> bool:
        return self._context is not None

    @property
    def context(self) -> Optional[IDeviceContext]:
        return self._context

    def _set_host_values(
        self,
        values: np.ndarray,
        first_moment: Optional[np.ndarray] = None,
        second_moment: Optional[np.ndarray] = None,
    ) -> None:
        self._host = {
            "weights": values,
            "gradient": np.zeros_like(values),
            "first_moment": (
                np.zeros_like(values) if first_moment is None else first_moment
            ),
            "second_moment": (
                np.zeros_like(values) if second_moment is None else second_moment
            ),
        }

    def _array(self, key: str) -> np.ndarray:
        if self._context is not None:
            return self._context.view(self._handles[key])
        if key not in self._host:
            raise InvalidOperationError(f"{self.name} have not been initialized.")
        return self._host[key]

    def initialize(self, length: int, fan_in: int, fan_out: int) -> None:
        """
        Prepare `length` parameters for a layer with the given fans.

        Raises
        ------
        ShapeMismatchError
            If the Weights already hold a different number of values.
        """
        self.fan_in = int(fan_in)
        self.fan_out = int(fan_out)
        if self.initialized:
            if self.length != length:
                raise ShapeMismatchError(
                    f"Weights are incompatible with layer: {self.name} holds "
                    f"{self.length} values, layer requires {length}."
                )
            return
        values = np.zeros(int(length), dtype=np.float64)
        self.initializer(values, self.fan_in, self.fan_out)
        self._set_host_values(values)

    def reset(self) -> None:
        """Re-draw values from the initializer and zero gradient and moments."""
        if not self.initialized:
            raise InvalidOperationError(f"{self.name} have not been initialized.")
        values = np.zeros(self.length, dtype=np.float64)
        self.initializer(values, self.fan_in, self.fan_out)
        if self._context is not None:
            self._array("weights")[...] = values
            for key in _BUFFERS[1:]:
                self._array(key)[...] = 0
        else:
            self._set_host_values(values)

    # device binding

    def bind(self, context: IDeviceContext) -> None:
        """
        Upload every buffer into `context`.

        Re-binding to the same context is a no-op; binding to another context
        moves the current values.
        """
        if not self.initialized:
            raise InvalidOperationError(f"{self.name} have not been initialized.")
        if self._context is context:
            return
        if self._context is not None:
            self.unbind()
        handles = {}
        for key in _BUFFERS:
            values = self._host[key]
            handle = context.allocate(values.size, f"{self.name}.{key}")
            context.view(handle)[...] = values
            handles[key] = handle
        self._handles = handles
        self._context = context
        self._host = {}

    def unbind(self) -> None:
        """Download every buffer to the host and free the arena slots."""
        if self._context is None:
            return
        context = self._context
        host = {key: np.array(context.view(self._handles[key])) for key in _BUFFERS}
        for key in _BUFFERS:
            context.free(self._handles[key])
        self._host = host
        self._handles = {}
        self._context = None

    def _require_bound(self) -> IDeviceContext:
        if self._context is None:
            raise InvalidOperationError(
                f"{self.name} are not bound to a device context."
            )
        return self._context

    # borrowing

    def weights_view(self) -> np.ndarray:
        """Borrow the parameter buffer (live count +1)."""
        return self._require_bound().borrow(self._handles["weights"])

    def gradient_view(self) -> np.ndarray:
        """Borrow the gradient buffer (live count +1)."""
        return self._require_bound().borrow(self._handles["gradient"])

    def release_weights(self) -> None:
        self._require_bound().release(self._handles["weights"])

    def release_gradient(self) -> None:
        self._require_bound().release(self._handles["gradient"])

    @property
    def live_weights(self) -> int:
        if self._context is None:
            return 0
        return self._context.live_count(self._handles["weights"])

    @property
    def live_gradient(self) -> int:
        if self._context is None:
            return 0
        return self._context.live_count(self._handles["gradient"])

    # optimisation

    def update_weights(self, hyperparameters: AdamHyperParameters) -> None:
        """
        Apply one Adam step using the accumulated gradient, then zero it.

        The step runs as a device kernel; this call synchronizes before
        releasing the borrowed buffers.
        """
        context = self._require_bound()
        moments = [context.borrow(self._handles[key]) for key in _BUFFERS[2:]]
        values, gradient = self.weights_view(), self.gradient_view()
        try:
            context.launch(
                adam_update_cpu,
                values,
                gradient,
                moments[0],
                moments[1],
                hyperparameters.corrected_learning_rate,
                hyperparameters.beta1,
                hyperparameters.beta2,
                hyperparameters.epsilon,
                hyperparameters.gradient_clip,
                hyperparameters.weights_clip,
            )
            context.synchronize()
            self._array("gradient")[...] = 0
        finally:
            for key in _BUFFERS[2:]:
                context.release(self._handles[key])
            self.release_gradient()
            self.release_weights()

    def zero_gradient(self) -> None:
        self._array("gradient")[...] = 0

    # host access

    def to_numpy(self) -> np.ndarray:
        """Copy of the current parameter values."""
        return np.array(self._array("weights"), dtype=np.float64)

    def gradient_to_numpy(self) -> np.ndarray:
        return np.array(self._array("gradient"), dtype=np.float64)

    def moments(self) -> Tuple[np.ndarray, np.ndarray]:
        """Copies of the first and second Adam moments."""
        return (
            np.array(self._array("first_moment"), dtype=np.float64),
            np.array(self._array("second_moment"), dtype=np.float64),
        )

    def set_values(self, values: Sequence[float]) -> None:
        """
        Overwrite the parameter values in place.

        Raises
        ------
        ShapeMismatchError
            If the number of values differs from `length`.
        """
        values = np.asarray(values).reshape(-1)
        if values.size != self.length:
            raise ShapeMismatchError(
                f"{self.name} hold {self.length} values, got {values.size}."
            )
        self._array("weights")[...] = values

    def restore(
        self,
        values: np.ndarray,
        first_moment: Optional[np.ndarray] = None,
        second_moment: Optional[np.ndarray] = None,
    ) -> None:
        """Replace host state from a checkpoint (unbound Weights only)."""
        if self._context is not None:
            raise InvalidOperationError(f"Cannot restore bound {self.name}.")
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        self._set_host_values(
            values,
            None if first_moment is None else np.asarray(first_moment).reshape(-1),
            None if second_moment is None else np.asarray(second_moment).reshape(-1),
        )
