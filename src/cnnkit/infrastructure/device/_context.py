"""
Explicit device context.

A `DeviceContext` owns every device allocation (through a `DeviceArena`) and
the kernel launch queue. It is constructed by the caller, passed to the
`Network`, and threaded through to every layer at startup; nothing in the
engine reaches for a global accelerator.

Execution model
---------------
`launch` submits a kernel to a single-worker executor, so kernels run in
submission order and asynchronously with respect to the host.
`synchronize` is a join barrier: it waits for every pending kernel and
re-raises the first kernel failure. Host code must not read results or
release borrowed views before synchronizing.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np

from ...domain._errors import DeviceNotSupportedError, InvalidOperationError
from ...domain.device._device import Device
from ._arena import DeviceArena, Handle

logger = logging.getLogger(__name__)


class DeviceContext:
    """
    Scoped owner of device memory and kernel execution.

    Parameters
    ----------
    device : str or Device, optional
        Target device. Only "cpu" has a kernel implementation.
    dtype : numpy dtype, optional
        Element type of every allocation. Defaults to float32.
    debug : bool, optional
        When True, `end_step` asserts that every live count is zero.
    live_limit : int, optional
        Live count above which the arena warns. Defaults to 200.

    Raises
    ------
    DeviceNotSupportedError
        If `device` is not the CPU.

    Notes
    -----
    Usable as a context manager; leaving the block waits for pending kernels,
    shuts the executor down and drops every allocation.
    """

    def __init__(
        self,
        device: Union[str, Device] = "cpu",
        *,
        dtype=np.float32,
        debug: bool = False,
        live_limit: int = 200,
    ) -> None:
        self.device = device if isinstance(device, Device) else Device(device)
        if not self.device.is_cpu():
            raise DeviceNotSupportedError("DeviceContext", str(self.device))
        self.dtype = np.dtype(dtype)
        self.debug = bool(debug)
        self.arena = DeviceArena(self.dtype, live_limit=live_limit)
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="cnnkit-device"
        )
        self._pending: List[Future] = []
        self.launches = 0

    def __repr__(self) -> str:
        return (
            f"DeviceContext(device='{self.device}', dtype={self.dtype.name}, "
            f"debug={self.debug})"
        )

    @property
    def closed(self) -> bool:
        return self._executor is None

    def _require_open(self) -> None:
        if self._executor is None:
            raise InvalidOperationError("Device context has been closed.")

    # memory

    def allocate(self, length: int, label: str = "") -> Handle:
        self._require_open()
        return self.arena.allocate(length, label)

    def free(self, handle: Handle) -> None:
        self.arena.free(handle)

    def view(self, handle: Handle) -> np.ndarray:
        return self.arena.view(handle)

    def borrow(self, handle: Handle) -> np.ndarray:
        return self.arena.borrow(handle)

    def release(self, handle: Handle) -> None:
        self.arena.release(handle)

    def live_count(self, handle: Handle) -> int:
        return self.arena.live_count(handle)

    def length(self, handle: Handle) -> int:
        return self.arena.length(handle)

    def upload(self, values: np.ndarray, label: str = "") -> Handle:
        """Allocate a slot and copy host values into it."""
        values = np.asarray(values, dtype=self.dtype).reshape(-1)
        handle = self.allocate(values.size, label)
        self.arena.view(handle)[...] = values
        return handle

    # execution

    def launch(self, kernel: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Enqueue `kernel(*args, **kwargs)` behind every earlier launch."""
        self._require_open()
        self._pending.append(self._executor.submit(kernel, *args, **kwargs))
        self.launches += 1

    def synchronize(self) -> None:
        """
        Wait for every pending kernel.

        Raises
        ------
        Exception
            The first exception raised by a pending kernel, after all of them
            have finished.
        """
        pending, self._pending = self._pending, []
        error: Optional[BaseException] = None
        for future in pending:
            exc = future.exception()
            if exc is not None and error is None:
                error = exc
        if error is not None:
            raise error

    def end_step(self) -> None:
        """Barrier at the end of a network step, plus the live-count check in debug mode."""
        self.synchronize()
        if self.debug:
            self.arena.assert_balanced()

    def outstanding(self) -> Dict[str, int]:
        return self.arena.outstanding()

    def close(self) -> None:
        if self._executor is None:
            return
        try:
            self.synchronize()
        finally:
            self._executor.shutdown(wait=True)
            self._executor = None
            logger.debug(
                "closed %r after %d launches (%d slots still allocated)",
                self,
                self.launches,
                self.arena.allocated,
            )
            self.arena.clear()

    def __enter__(self) -> "DeviceContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
