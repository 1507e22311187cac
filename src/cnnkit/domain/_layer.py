"""
Layer interface definitions.

Layers are dispatched as tagged variants: every concrete layer carries a
`LayerKind` tag and a `LayerCapabilities` flag set instead of implementing
marker interfaces. The behavioural contract is the small `ILayer` protocol.

Capabilities
------------
reflexive
    The layer reads and writes the same buffer region (in place), so the
    network does not swap its paired buffers after it.
weighted
    The layer owns trainable Weights that must be registered with the
    network's optimizer.
structural
    The layer only moves, copies, or reshapes data; it has no trainable
    parameters of its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ._shape import Shape

if TYPE_CHECKING:
    from .device._device_protocol import IDeviceContext


class LayerKind(Enum):
    """Tag identifying the concrete variant of a layer or layer descriptor."""

    INPUT = "input"
    CONVOLUTION = "convolution"
    TRANSPOSE_CONVOLUTION = "transpose_convolution"
    DENSE = "dense"
    BATCH_NORMALIZATION = "batch_normalization"
    ACTIVATION = "activation"
    RESHAPE = "reshape"
    AVERAGE_POOL = "average_pool"
    UPSAMPLING = "upsampling"
    SUMMATION = "summation"
    FORK = "fork"
    CONCATENATION = "concatenation"
    SKIP_OUT = "skip_out"
    AUGMENTATION = "augmentation"
    DROPOUT = "dropout"


@dataclass(frozen=True)
class LayerCapabilities:
    """
    Boolean capability flags carried by a layer variant.

    Parameters
    ----------
    reflexive : bool
        Whether the layer operates in place.
    weighted : bool
        Whether the layer owns trainable Weights.
    structural : bool
        Whether the layer only rearranges data.
    """

    reflexive: bool = False
    weighted: bool = False
    structural: bool = False


@runtime_checkable
class ILayer(Protocol):
    """
    Domain-level layer contract.

    Notes
    -----
    - `startup` is one-time per network and idempotent for an unchanged
      input shape.
    - `forward` and `backwards` operate on the first `batch_size` samples of
      the buffers handed to `startup`.
    """

    kind: LayerKind
    capabilities: LayerCapabilities

    def startup(
        self,
        input_shape: Shape,
        buffers: object,
        context: "IDeviceContext",
        max_batch_size: int,
    ) -> Shape:
        """
        Prepare the layer for a given input shape.

        Parameters
        ----------
        input_shape : Shape
            Shape of one input sample.
        buffers : PairedBuffers
            The buffer pair whose own view receives this layer's output.
        context : IDeviceContext
            Device context owning every allocation and kernel launch.
        max_batch_size : int
            Largest batch that will ever be passed to `forward`.

        Returns
        -------
        Shape
            Shape of one output sample.
        """
        ...

    def forward(self, batch_size: int) -> None:
        """Read the input view and write the output view."""
        ...

    def backwards(self, batch_size: int, update: bool) -> None:
        """
        Propagate the incoming gradient to the outgoing gradient.

        When `update` is True, weight and bias gradients are accumulated too.
        """
        ...

    def reset(self) -> None:
        """Reinitialize any owned Weights."""
        ...
