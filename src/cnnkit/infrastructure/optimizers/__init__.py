from ._adam import AdamHyperParameters

__all__ = [
    AdamHyperParameters.__name__,
]
