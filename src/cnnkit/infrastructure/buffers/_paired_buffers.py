"""
Paired activation/gradient buffers.

The output of one layer is the input of the next, so the network keeps only
two buffer regions and lets consecutive non-reflexive layers alternate which
of them is "input" and which is "output". The same region also carries the
gradients during the backward pass: a layer reads its incoming gradient
where it wrote its output and writes its outgoing gradient over its input.

Views
-----
==============  ==================
property        region
==============  ==================
`output`        own region
`in_gradient`   own region
`input`         complement region
`out_gradient`  complement region
`gradient`      complement region (reflexive layers: in and out)
==============  ==================
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ...domain._errors import InvalidOperationError
from ...domain.device._device_protocol import IDeviceContext
from ..device._arena import Handle


class PairedBuffers:
    """
    One half of a ping-pong buffer pair.

    Parameters
    ----------
    name : str, optional
        Label used for the arena allocation (diagnostics only).

    Notes
    -----
    - Capacity per sample only grows (`output_dimension_area`).
    - `allocate` is idempotent while the declared capacity and batch size do
      not grow; growing either releases the old allocation and makes a new
      one.
    """

    def __init__(self, name: str = "buffers") -> None:
        self.name = name
        self.complement: Optional["PairedBuffers"] = None
        self._max_length = 0
        self._batch_size = 0
        self._allocated = False
        self._handle: Optional[Handle] = None
        self._context: Optional[IDeviceContext] = None

    def __repr__(self) -> str:
        return (
            f"PairedBuffers(name={self.name!r}, max_length={self._max_length}, "
            f"allocated={self._allocated})"
        )

    @staticmethod
    def set_complement(buffers1: "PairedBuffers", buffers2: "PairedBuffers") -> None:
        """Make each pair the complement (input side) of the other."""
        buffers1.complement = buffers2
        buffers2.complement = buffers1

    def output_dimension_area(self, length: int) -> None:
        """
        Declare that some layer needs `length` floats per sample.

        Smaller declarations than the current maximum are ignored.
        """
        if length > self._max_length:
            self._max_length = int(length)
            self._allocated = False

    @property
    def max_length(self) -> int:
        return self._max_length

    @property
    def capacity(self) -> int:
        """Allocated floats (0 before `allocate`)."""
        if self._handle is None or self._context is None:
            return 0
        return self._context.length(self._handle)

    @property
    def allocated(self) -> bool:
        return self._allocated

    def allocate(self, context: IDeviceContext, max_batch_size: int) -> None:
        """Allocate ``max_length * max_batch_size`` floats in `context`."""
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")
        if (
            self._allocated
            and context is self._context
            and max_batch_size <= self._batch_size
        ):
            return

        self.release()
        self._context = context
        self._handle = context.allocate(self._max_length * max_batch_size, self.name)
        self._batch_size = max_batch_size
        self._allocated = True

    def release(self) -> None:
        """Free the arena allocation, if any."""
        if self._handle is not None and self._context is not None:
            if not self._context.closed:
                self._context.free(self._handle)
        self._handle = None
        self._allocated = False

    @property
    def view(self) -> np.ndarray:
        if self._handle is None or self._context is None:
            raise InvalidOperationError(f"{self.name} have not been allocated.")
        return self._context.view(self._handle)

    def _complement_view(self) -> np.ndarray:
        if self.complement is None:
            raise InvalidOperationError(f"{self.name} have no complement buffers.")
        return self.complement.view

    @property
    def output(self) -> np.ndarray:
        return self.view

    @property
    def in_gradient(self) -> np.ndarray:
        return self.view

    @property
    def input(self) -> np.ndarray:
        return self._complement_view()

    @property
    def out_gradient(self) -> np.ndarray:
        return self._complement_view()

    @property
    def gradient(self) -> np.ndarray:
        return self._complement_view()
