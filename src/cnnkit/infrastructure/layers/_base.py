"""
Layer base class.

`Layer` implements the parts of the `ILayer` contract shared by every
variant: startup bookkeeping (shapes, buffers, context, idempotency guard),
reflexive-aware buffer views, borrow/release ledger, and scratch allocation.

Buffer roles
------------
For a non-reflexive layer the paired buffers handed to `startup` hold the
layer's output in their own region and its input in the complement region.
A reflexive layer reads and writes the complement region in place:

===============  ======================  ========================
view             non-reflexive           reflexive
===============  ======================  ========================
`input`          complement              complement
`output`         own                     complement
`in_gradient`    own                     complement
`out_gradient`   complement              complement
===============  ======================  ========================
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, List, Optional

import numpy as np

from ...domain._errors import InvalidOperationError, ShapeMismatchError
from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ...domain.device._device_protocol import IDeviceContext
from ..buffers._paired_buffers import PairedBuffers
from ..device._arena import Handle
from ..ops.memory_cpu import fill_cpu


class Layer(ABC):
    """
    Abstract pipeline layer.

    Parameters
    ----------
    filter_size : int, optional
        Width/length of the layer's window (1 for pointwise layers).
    stride : int, optional
        Step of the window over the input (1 for pointwise layers).

    Notes
    -----
    Subclasses set the class attributes `kind` and `capabilities` and
    implement `_startup`, `forward` and `backwards`.
    """

    kind: ClassVar[LayerKind]
    capabilities: ClassVar[LayerCapabilities] = LayerCapabilities()

    def __init__(self, filter_size: int = 1, stride: int = 1) -> None:
        self.filter_size = int(filter_size)
        self.stride = int(stride)
        self.input_shape: Optional[Shape] = None
        self.output_shape: Optional[Shape] = None
        self.buffers: Optional[PairedBuffers] = None
        self.context: Optional[IDeviceContext] = None
        self.training = False
        self._ready = False
        self._scratch: Dict[str, Handle] = {}
        self._borrowed: List[Callable[[], None]] = []

    @property
    def name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"{self.name}({self.input_shape} -> {self.output_shape})"

    @property
    def reflexive(self) -> bool:
        return self.capabilities.reflexive

    @property
    def weighted(self) -> bool:
        return self.capabilities.weighted

    @property
    def structural(self) -> bool:
        return self.capabilities.structural

    @property
    def ready(self) -> bool:
        return self._ready

    # startup

    def startup(
        self,
        input_shape: Shape,
        buffers: PairedBuffers,
        context: IDeviceContext,
        max_batch_size: int,
    ) -> Shape:
        """
        Bind the layer to its buffers and compute its output shape.

        Repeated calls with the same input shape re-declare buffer capacity
        and return the cached output shape.

        Raises
        ------
        ShapeMismatchError
            If called again with a different input shape.
        """
        if self._ready:
            if input_shape != self.input_shape:
                raise ShapeMismatchError(
                    f"{self.name} was started with input {self.input_shape}, got {input_shape}."
                )
            self.buffers = buffers
            buffers.output_dimension_area(self.output_shape.volume)
            return self.output_shape

        self.context = context
        self.input_shape = input_shape
        self.buffers = buffers
        self.output_shape = self._startup(input_shape, max_batch_size)
        buffers.output_dimension_area(self.output_shape.volume)
        self._ready = True
        return self.output_shape

    @abstractmethod
    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        """Compute geometry, allocate scratch, and return the output shape."""

    def _require_ready(self) -> None:
        if not self._ready:
            raise InvalidOperationError(f"{self.name} has not been started.")

    # buffer views

    @property
    def input(self) -> np.ndarray:
        return self.buffers.input

    @property
    def output(self) -> np.ndarray:
        return self.buffers.input if self.reflexive else self.buffers.output

    @property
    def in_gradient(self) -> np.ndarray:
        return self.buffers.gradient if self.reflexive else self.buffers.in_gradient

    @property
    def out_gradient(self) -> np.ndarray:
        return self.buffers.gradient if self.reflexive else self.buffers.out_gradient

    # scratch memory

    def _allocate_scratch(self, key: str, length: int) -> None:
        if key in self._scratch:
            self.context.free(self._scratch[key])
        self._scratch[key] = self.context.allocate(length, f"{self.name}.{key}")

    def _scratch_view(self, key: str) -> np.ndarray:
        return self.context.view(self._scratch[key])

    def release(self) -> None:
        """Free scratch memory and forget the startup state."""
        if self.context is not None and not self.context.closed:
            for handle in self._scratch.values():
                self.context.free(handle)
        self._scratch = {}
        self._ready = False

    # borrowing

    def _borrow(self, view: Callable[[], np.ndarray], release: Callable[[], None]) -> np.ndarray:
        array = view()
        self._borrowed.append(release)
        return array

    def _synchronize_and_release(self) -> None:
        """Barrier, then return every view borrowed since the last barrier."""
        try:
            self.context.synchronize()
        finally:
            borrowed, self._borrowed = self._borrowed, []
            for release in borrowed:
                release()

    def _zero(self, view: np.ndarray, length: int) -> None:
        self.context.launch(fill_cpu, view, length, 0.0)

    # contract

    @abstractmethod
    def forward(self, batch_size: int) -> None: ...

    @abstractmethod
    def backwards(self, batch_size: int, update: bool) -> None: ...

    def reset(self) -> None:
        """Layers without Weights have nothing to reset."""

    def get_config(self) -> Dict[str, Any]:
        return {"filter_size": self.filter_size, "stride": self.stride}
