"""
Arena of device allocations addressed by generation-checked handles.

Every buffer the engine uses (paired activation/gradient buffers, layer
scratch space, Weights and their optimizer state) is a slot in one arena.
A slot carries:

- a flat NumPy array (the "device memory");
- a generation number, bumped whenever the slot is freed, so that handles
  held past `free` are detected instead of aliasing new data;
- a live (borrow) counter. `borrow` increments it, `release` decrements it,
  and a slot with a non-zero count may not be freed.

`outstanding()` / `assert_balanced()` expose the zero-at-end-of-step check
used by the device context in debug mode.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from ...domain._errors import InvalidOperationError, LiveCountError


@dataclass(frozen=True)
class Handle:
    """
    Opaque reference to an arena slot.

    Attributes
    ----------
    index : int
        Slot index in the arena.
    generation : int
        Generation of the slot at allocation time.
    """

    index: int
    generation: int

    def __str__(self) -> str:
        return f"#{self.index}.{self.generation}"


class _Slot:
    __slots__ = ("data", "generation", "live", "label")

    def __init__(self) -> None:
        self.data: Optional[np.ndarray] = None
        self.generation = 0
        self.live = 0
        self.label = ""


class DeviceArena:
    """
    Slot allocator with per-handle borrow counting.

    Parameters
    ----------
    dtype : numpy dtype, optional
        Element type of every allocation. Defaults to float32.
    live_limit : int, optional
        Live count above which a RuntimeWarning is emitted. A count this high
        almost always means a missing release. Defaults to 200.
    """

    def __init__(self, dtype=np.float32, live_limit: int = 200) -> None:
        self.dtype = np.dtype(dtype)
        self.live_limit = int(live_limit)
        self._slots: List[_Slot] = []
        self._free: List[int] = []

    def allocate(self, length: int, label: str = "") -> Handle:
        """
        Allocate a zero-filled region of `length` elements.

        Raises
        ------
        ValueError
            If `length` is negative.
        """
        if length < 0:
            raise ValueError(f"Allocation length must be >= 0, got {length}")
        if self._free:
            index = self._free.pop()
            slot = self._slots[index]
        else:
            index = len(self._slots)
            slot = _Slot()
            self._slots.append(slot)
        slot.data = np.zeros(int(length), dtype=self.dtype)
        slot.live = 0
        slot.label = label
        return Handle(index, slot.generation)

    def _slot(self, handle: Handle) -> _Slot:
        if not isinstance(handle, Handle) or handle.index >= len(self._slots):
            raise InvalidOperationError(f"Unknown device handle {handle!r}.")
        slot = self._slots[handle.index]
        if slot.data is None or slot.generation != handle.generation:
            raise InvalidOperationError(f"Device handle {handle} is stale.")
        return slot

    def free(self, handle: Handle) -> None:
        """
        Return a slot to the arena.

        Raises
        ------
        LiveCountError
            If the slot is still borrowed.
        """
        slot = self._slot(handle)
        if slot.live != 0:
            raise LiveCountError(
                f"Cannot free {slot.label or handle} while it has {slot.live} live borrow(s).",
                {str(handle): slot.live},
            )
        slot.data = None
        slot.generation += 1
        self._free.append(handle.index)

    def view(self, handle: Handle) -> np.ndarray:
        """Uncounted access to a slot's array."""
        return self._slot(handle).data

    def length(self, handle: Handle) -> int:
        return int(self._slot(handle).data.size)

    def borrow(self, handle: Handle) -> np.ndarray:
        """Increment the live count and return the slot's array."""
        slot = self._slot(handle)
        slot.live += 1
        if slot.live > self.live_limit:
            warnings.warn(
                f"Live count of {slot.label or handle} exceeds {self.live_limit}.",
                RuntimeWarning,
                stacklevel=3,
            )
        return slot.data

    def release(self, handle: Handle) -> None:
        """
        Decrement the live count.

        Raises
        ------
        LiveCountError
            If the slot is not currently borrowed.
        """
        slot = self._slot(handle)
        if slot.live <= 0:
            raise LiveCountError(
                f"Released {slot.label or handle} more times than it was borrowed.",
                {str(handle): slot.live},
            )
        slot.live -= 1

    def live_count(self, handle: Handle) -> int:
        return self._slot(handle).live

    def outstanding(self) -> Dict[str, int]:
        """Map of every slot with a non-zero live count to that count."""
        out: Dict[str, int] = {}
        for index, slot in enumerate(self._slots):
            if slot.data is not None and slot.live != 0:
                key = slot.label or str(Handle(index, slot.generation))
                out[key] = slot.live
        return out

    def assert_balanced(self) -> None:
        """
        Raises
        ------
        LiveCountError
            If any slot still has outstanding borrows.
        """
        counts = self.outstanding()
        if counts:
            detail = ", ".join(f"{k}={v}" for k, v in sorted(counts.items()))
            raise LiveCountError(f"Unbalanced live counts at end of step: {detail}", counts)

    @property
    def allocated(self) -> int:
        """Number of live slots."""
        return sum(1 for s in self._slots if s.data is not None)

    @property
    def allocated_bytes(self) -> int:
        return sum(s.data.nbytes for s in self._slots if s.data is not None)

    def clear(self) -> None:
        """Drop every slot regardless of live counts."""
        for slot in self._slots:
            if slot.data is not None:
                slot.data = None
                slot.generation += 1
                slot.live = 0
        self._free = list(range(len(self._slots)))
