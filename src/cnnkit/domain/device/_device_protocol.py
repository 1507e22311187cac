"""
Device contracts for cnnkit.

`DeviceLike` is the structural type of a device descriptor. `IDeviceContext`
is the structural type of the object that owns device memory and the kernel
launch queue; layers, buffers and Weights depend only on this protocol so
that the concrete context can be swapped without touching them.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class DeviceLike(Protocol):
    """Duck-typed device descriptor."""

    type: object
    index: Optional[int]

    def is_cpu(self) -> bool: ...
    def is_cuda(self) -> bool: ...
    def __str__(self) -> str: ...


@runtime_checkable
class IDeviceContext(Protocol):
    """
    Device memory and execution contract.

    Notes
    -----
    - Allocations are addressed by opaque handles.
    - `view` returns an uncounted view for buffers with a single owner;
      `borrow`/`release` maintain the live count of shared allocations.
    - `launch` is asynchronous; `synchronize` is the only barrier.
    """

    device: DeviceLike
    dtype: Any
    closed: bool

    def allocate(self, length: int) -> Any: ...
    def free(self, handle: Any) -> None: ...
    def view(self, handle: Any) -> Any: ...
    def borrow(self, handle: Any) -> Any: ...
    def release(self, handle: Any) -> None: ...
    def live_count(self, handle: Any) -> int: ...
    def length(self, handle: Any) -> int: ...
    def launch(self, kernel: Callable[..., Any], *args: Any, **kwargs: Any) -> None: ...
    def synchronize(self) -> None: ...
