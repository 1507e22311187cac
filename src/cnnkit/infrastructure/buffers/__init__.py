from ._paired_buffers import PairedBuffers

__all__ = [
    PairedBuffers.__name__,
]
