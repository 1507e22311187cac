"""
Device descriptors.

`Device` validates and normalizes user-facing device strings ("cpu",
"cuda:<index>"). It only names a device; memory and kernel launches are owned
by a device context built for that device.
"""

from enum import Enum
import re


class DeviceType(Enum):
    """
    Device category.

    Attributes
    ----------
    CPU : DeviceType
        Host processor; the only backend with a kernel implementation.
    CUDA : DeviceType
        NVIDIA GPU. Recognised so that requests fail with a clear error.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Normalized device descriptor.

    Parameters
    ----------
    device : str
        "cpu" or "cuda:<index>".

    Raises
    ------
    ValueError
        If the device string is malformed.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        return self.type is DeviceType.CUDA
