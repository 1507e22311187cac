from ._weights import Weights

__all__ = [
    Weights.__name__,
]
