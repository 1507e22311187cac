from ._device import Device, DeviceType
from ._device_protocol import DeviceLike, IDeviceContext

__all__ = [
    Device.__name__,
    DeviceType.__name__,
    DeviceLike.__name__,
    IDeviceContext.__name__,
]
