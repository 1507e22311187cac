"""
Serializable layer descriptors.

A descriptor is the persistent description of one pipeline stage: its
`LayerKind` tag, its parameters, and (for weighted kinds) references to the
`Weights` objects it uses. `Network` keeps descriptors, not layers; layers
are built from descriptors at startup through `construct`.

Descriptors compare by identity so the same descriptor (for example a fork)
can be used as a dictionary key while building.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

from ...domain._layer import LayerKind
from ...domain._shape import Shape
from ..layers import (
    AveragePool,
    BatchNormalization,
    Concatenation,
    Convolution,
    Dense,
    Dropout,
    Fork,
    Input,
    Layer,
    Reshape,
    SkipOut,
    Summation,
    TransposeConvolution,
    Translation,
    Upsampling,
    make_activation,
)
from ..weights._weights import Weights

ForkMap = Dict["ForkDescriptor", Fork]


class LayerDescriptor(ABC):
    """Base class of every descriptor variant."""

    kind: ClassVar[LayerKind]

    @abstractmethod
    def construct(self, forks: ForkMap) -> Layer:
        """Build a fresh layer; `forks` maps already-built fork descriptors to layers."""

    def all_weights(self) -> List[Weights]:
        return []


@dataclass(eq=False)
class InputDescriptor(LayerDescriptor):
    shape: Shape
    kind: ClassVar[LayerKind] = LayerKind.INPUT

    def construct(self, forks: ForkMap) -> Layer:
        return Input(self.shape)


@dataclass(eq=False)
class _WeightedDescriptor(LayerDescriptor):
    weights: Weights
    bias: Optional[Weights]

    def all_weights(self) -> List[Weights]:
        return [w for w in (self.weights, self.bias) if w is not None]


@dataclass(eq=False)
class ConvolutionDescriptor(_WeightedDescriptor):
    output_dimensions: int = 1
    filter_size: int = 3
    stride: int = 1
    kind: ClassVar[LayerKind] = LayerKind.CONVOLUTION

    def construct(self, forks: ForkMap) -> Layer:
        return Convolution(
            self.filter_size, self.stride, self.output_dimensions, self.weights, self.bias
        )


@dataclass(eq=False)
class TransposeConvolutionDescriptor(ConvolutionDescriptor):
    kind: ClassVar[LayerKind] = LayerKind.TRANSPOSE_CONVOLUTION

    def construct(self, forks: ForkMap) -> Layer:
        return TransposeConvolution(
            self.filter_size, self.stride, self.output_dimensions, self.weights, self.bias
        )


@dataclass(eq=False)
class DenseDescriptor(_WeightedDescriptor):
    units: int = 1
    kind: ClassVar[LayerKind] = LayerKind.DENSE

    def construct(self, forks: ForkMap) -> Layer:
        return Dense(self.units, self.weights, self.bias)


@dataclass(eq=False)
class BatchNormalizationDescriptor(_WeightedDescriptor):
    epsilon: float = 1e-5
    kind: ClassVar[LayerKind] = LayerKind.BATCH_NORMALIZATION

    def construct(self, forks: ForkMap) -> Layer:
        return BatchNormalization(self.weights, self.bias, self.epsilon)


@dataclass(eq=False)
class ActivationDescriptor(LayerDescriptor):
    activation: str
    params: Dict[str, Any] = field(default_factory=dict)
    kind: ClassVar[LayerKind] = LayerKind.ACTIVATION

    def construct(self, forks: ForkMap) -> Layer:
        return make_activation(self.activation, **self.params)


@dataclass(eq=False)
class ReshapeDescriptor(LayerDescriptor):
    output_shape: Shape
    kind: ClassVar[LayerKind] = LayerKind.RESHAPE

    def construct(self, forks: ForkMap) -> Layer:
        return Reshape(self.output_shape)


@dataclass(eq=False)
class AveragePoolDescriptor(LayerDescriptor):
    filter_size: int
    kind: ClassVar[LayerKind] = LayerKind.AVERAGE_POOL

    def construct(self, forks: ForkMap) -> Layer:
        return AveragePool(self.filter_size)


@dataclass(eq=False)
class UpsamplingDescriptor(LayerDescriptor):
    scale: int
    kind: ClassVar[LayerKind] = LayerKind.UPSAMPLING

    def construct(self, forks: ForkMap) -> Layer:
        return Upsampling(self.scale)


@dataclass(eq=False)
class SummationDescriptor(LayerDescriptor):
    output_dimensions: int
    kind: ClassVar[LayerKind] = LayerKind.SUMMATION

    def construct(self, forks: ForkMap) -> Layer:
        return Summation(self.output_dimensions)


@dataclass(eq=False)
class ForkDescriptor(LayerDescriptor):
    kind: ClassVar[LayerKind] = LayerKind.FORK

    def construct(self, forks: ForkMap) -> Layer:
        fork = Fork()
        forks[self] = fork
        return fork


@dataclass(eq=False)
class _SkipDescriptor(LayerDescriptor):
    fork: ForkDescriptor

    def _fork(self, forks: ForkMap) -> Fork:
        try:
            return forks[self.fork]
        except KeyError as e:
            raise ValueError(
                f"{type(self).__name__} refers to a fork that does not precede it."
            ) from e


@dataclass(eq=False)
class ConcatenationDescriptor(_SkipDescriptor):
    kind: ClassVar[LayerKind] = LayerKind.CONCATENATION

    def construct(self, forks: ForkMap) -> Layer:
        return Concatenation(self._fork(forks))


@dataclass(eq=False)
class SkipOutDescriptor(_SkipDescriptor):
    kind: ClassVar[LayerKind] = LayerKind.SKIP_OUT

    def construct(self, forks: ForkMap) -> Layer:
        return SkipOut(self._fork(forks))


@dataclass(eq=False)
class AugmentationDescriptor(LayerDescriptor):
    augmentation: str = "translation"
    kind: ClassVar[LayerKind] = LayerKind.AUGMENTATION

    def __post_init__(self) -> None:
        if self.augmentation != "translation":
            raise ValueError(f"Unknown augmentation {self.augmentation!r}.")

    def construct(self, forks: ForkMap) -> Layer:
        return Translation()


@dataclass(eq=False)
class DropoutDescriptor(LayerDescriptor):
    rate: float = 0.2
    kind: ClassVar[LayerKind] = LayerKind.DROPOUT

    def construct(self, forks: ForkMap) -> Layer:
        return Dropout(self.rate)

    def __post_init__(self) -> None:
        if not 0.0 <= self.rate < 1.0:
            raise ValueError("Dropout rate must be in [0, 1).")
