from ._arena import DeviceArena, Handle
from ._context import DeviceContext

__all__ = [
    DeviceArena.__name__,
    Handle.__name__,
    DeviceContext.__name__,
]
