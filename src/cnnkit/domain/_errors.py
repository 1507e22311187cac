"""
Engine-level exceptions for cnnkit.

This module defines the error taxonomy raised by the execution engine. All of
these are raised synchronously on the host thread that issued the failing
call; none of them are caught and retried internally.

Categories
----------
- Shape errors: a tensor volume or per-sample area disagrees with the shape a
  layer declared.
- Constraint errors: a requested stride, filter size, or dimension ratio does
  not evenly relate the input and output geometry.
- Invalid operations: a network, Weights object, or device handle is used
  before it has been set up (or after it has been released).
- Numeric degeneracy: a loss evaluated to a non-finite value, so the step is
  abandoned before any gradient is propagated.
- Live-count violations: a device view was released more often than it was
  borrowed, or a borrowed allocation was freed.
- Unsupported devices.
"""

from typing import Dict


class ShapeMismatchError(ValueError):
    """
    Raised when a tensor's volume or area does not match a declared shape.

    Typical sources are `Input.set_input` receiving samples of the wrong
    size, `Reshape` with a different volume, concatenation of maps with
    different areas, and Weights whose stored length disagrees with the layer
    that adopts them.
    """


class ConstraintUnsatisfiableError(ValueError):
    """
    Raised when a geometric constraint cannot be met exactly.

    Fractional geometry (a stride that does not evenly divide a spatial
    size, a dimension count that is not a multiple of the requested output
    dimensions) is rejected at construction/startup time instead of being
    rounded.
    """


class InvalidOperationError(RuntimeError):
    """
    Raised when an object is used before its preconditions are satisfied.

    Examples include running a `Network` before `startup`, borrowing views of
    `Weights` that are not bound to a device context, and dereferencing a
    stale arena handle.
    """


class NumericDegenerateError(ArithmeticError):
    """
    Raised when a loss produces a non-finite value.

    Attributes
    ----------
    value : float
        The offending loss value (NaN or +/-inf).
    """

    def __init__(self, value: float) -> None:
        """
        Initialize the NumericDegenerateError.

        Parameters
        ----------
        value : float
            The non-finite loss value that aborted the step.
        """
        super().__init__(
            f"Loss evaluated to {value!r}; the step was aborted before backpropagation."
        )
        self.value = value


class LiveCountError(RuntimeError):
    """
    Raised when device-view borrowing becomes unbalanced.

    Attributes
    ----------
    counts : dict[str, int]
        Offending handle descriptions mapped to their live counts.
    """

    def __init__(self, message: str, counts: Dict[str, int] | None = None) -> None:
        super().__init__(message)
        self.counts = dict(counts or {})


class DeviceNotSupportedError(RuntimeError):
    """
    Raised when an operation is requested on a device backend that is not
    implemented.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted.
    device : str
        String representation of the device on which the operation
        was attempted.
    """

    def __init__(self, op: str, device: str) -> None:
        """
        Initialize the DeviceNotSupportedError.

        Parameters
        ----------
        op : str
            The operation name that is not supported on the given device.
        device : str
            The device identifier (e.g., "cuda:0").
        """
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device
