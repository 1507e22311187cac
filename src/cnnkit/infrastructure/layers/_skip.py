"""
Skip connections.

A `Fork` passes its input through unchanged and keeps a copy of it in a skip
buffer for every layer that later connects to it. The same skip buffer
carries the consumer's gradient back to the fork during the backward pass;
consumers always run their backward pass before the fork does.

Consumers
---------
`Concatenation`
    Appends the fork's tensor as extra dimensions of the stream.
`SkipOut`
    Replaces the stream with the fork's tensor. The stream that led up to
    the SkipOut receives a zero gradient.
"""

from __future__ import annotations

from typing import Any, Dict, List

import numpy as np

from ...domain._errors import InvalidOperationError, ShapeMismatchError
from ...domain._layer import LayerCapabilities, LayerKind
from ...domain._shape import Shape
from ..device._arena import Handle
from ..ops.memory_cpu import add_cpu, copy_cpu, copy_strided_cpu, gather_strided_cpu
from ._base import Layer


class Fork(Layer):
    """Reflexive pass-through layer that feeds skip buffers."""

    kind = LayerKind.FORK
    capabilities = LayerCapabilities(reflexive=True, structural=True)

    def __init__(self) -> None:
        super().__init__()
        self._skips: List[Handle] = []
        self.max_batch_size = 0

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        self.max_batch_size = max_batch_size
        return input_shape

    def connect(self, max_batch_size: int) -> int:
        """
        Register a consumer and allocate its skip buffer.

        Returns
        -------
        int
            Index of the consumer's skip buffer.
        """
        self._require_ready()
        if max_batch_size > self.max_batch_size:
            raise ShapeMismatchError(
                f"Consumer batch size {max_batch_size} exceeds the fork's {self.max_batch_size}."
            )
        handle = self.context.allocate(
            self.max_batch_size * self.output_shape.volume, f"{self.name}.skip{len(self._skips)}"
        )
        self._skips.append(handle)
        return len(self._skips) - 1

    @property
    def consumers(self) -> int:
        return len(self._skips)

    def skip_view(self, index: int) -> np.ndarray:
        try:
            return self.context.view(self._skips[index])
        except IndexError as e:
            raise InvalidOperationError(f"{self.name} has no skip buffer {index}.") from e

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        length = batch_size * self.output_shape.volume
        for index in range(len(self._skips)):
            self.context.launch(copy_cpu, self.input, self.skip_view(index), length)
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        length = batch_size * self.output_shape.volume
        for index in range(len(self._skips)):
            self.context.launch(add_cpu, self.skip_view(index), self.in_gradient, length)
        self._synchronize_and_release()

    def release(self) -> None:
        if self.context is not None and not self.context.closed:
            for handle in self._skips:
                self.context.free(handle)
        self._skips = []
        super().release()

    def get_config(self) -> Dict[str, Any]:
        return {}


class _SkipConsumer(Layer):
    capabilities = LayerCapabilities(structural=True)

    def __init__(self, fork: Fork) -> None:
        super().__init__()
        self.fork = fork
        self.skip_index = -1

    def _connect(self, max_batch_size: int) -> Shape:
        if not self.fork.ready:
            raise InvalidOperationError(
                f"{self.name} must be started after the fork it connects to."
            )
        self.skip_index = self.fork.connect(max_batch_size)
        return self.fork.output_shape

    @property
    def skip(self) -> np.ndarray:
        return self.fork.skip_view(self.skip_index)


class Concatenation(_SkipConsumer):
    """
    Stack the fork's tensor after the stream's dimensions.

    Raises
    ------
    ShapeMismatchError
        At startup, if the stream and the fork disagree on width or length.
    """

    kind = LayerKind.CONCATENATION

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        skip_shape = self._connect(max_batch_size)
        if (skip_shape.width, skip_shape.length) != (input_shape.width, input_shape.length):
            raise ShapeMismatchError(
                f"Input shapes do not match. {input_shape} cannot be concatenated with {skip_shape}."
            )
        self.skip_shape = skip_shape
        return input_shape.with_dimensions(input_shape.dimensions + skip_shape.dimensions)

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        stream, skip, out = self.input_shape.volume, self.skip_shape.volume, self.output_shape.volume
        self.context.launch(copy_strided_cpu, self.input, self.output, batch_size, stream, out, 0, stream)
        self.context.launch(copy_strided_cpu, self.skip, self.output, batch_size, skip, out, stream, skip)
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        stream, skip, out = self.input_shape.volume, self.skip_shape.volume, self.output_shape.volume
        self.context.launch(gather_strided_cpu, self.in_gradient, self.out_gradient, batch_size, out, 0, stream, stream)
        self.context.launch(gather_strided_cpu, self.in_gradient, self.skip, batch_size, out, stream, skip, skip)
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {}


class SkipOut(_SkipConsumer):
    """Continue the pipeline from the fork's tensor."""

    kind = LayerKind.SKIP_OUT

    def _startup(self, input_shape: Shape, max_batch_size: int) -> Shape:
        return self._connect(max_batch_size)

    def forward(self, batch_size: int) -> None:
        self._require_ready()
        self.context.launch(copy_cpu, self.skip, self.output, batch_size * self.output_shape.volume)
        self._synchronize_and_release()

    def backwards(self, batch_size: int, update: bool) -> None:
        self._require_ready()
        self.context.launch(copy_cpu, self.in_gradient, self.skip, batch_size * self.output_shape.volume)
        self._zero(self.out_gradient, batch_size * self.input_shape.volume)
        self._synchronize_and_release()

    def get_config(self) -> Dict[str, Any]:
        return {}
