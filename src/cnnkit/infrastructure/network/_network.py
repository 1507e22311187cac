"""
Network orchestration.

A `Network` is built from layer descriptors (see `cnnkit.infrastructure.serial`)
with the `add_*` builder methods, started once against an explicit
`DeviceContext`, and then driven with `train`, `test` and `generate`.

Buffer threading
----------------
`startup` walks the layers in order with two `PairedBuffers` that are each
other's complement. Every layer is started against the current pair; after a
non-reflexive layer the roles swap, so that layer's output becomes the next
layer's input. Reflexive layers work in place and do not swap. Both pairs
are allocated once, after every layer has declared its capacity. The pair
current after the last layer is handed to the loss, whose gradient view is
the network output.

Step
----
``train``: input -> forward (in order) -> loss (writes the output gradient in
place) -> backwards (in reverse) -> one `AdamHyperParameters.update()` ->
`Weights.update_weights` for every distinct Weights object -> end-of-step
barrier (which also checks live counts on a debug context).
"""

from __future__ import annotations

import json
import logging
import math
import os
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import InvalidOperationError, NumericDegenerateError, ShapeMismatchError
from ...domain._shape import Shape
from ...domain.device._device_protocol import IDeviceContext
from ..buffers._paired_buffers import PairedBuffers
from ..layers import Input, Layer, WeightedLayer
from ..losses._base import Loss
from ..optimizers._adam import AdamHyperParameters
from ..serial._codec import decode_network, encode_network
from ..serial._descriptors import (
    ActivationDescriptor,
    AugmentationDescriptor,
    AveragePoolDescriptor,
    BatchNormalizationDescriptor,
    ConcatenationDescriptor,
    ConvolutionDescriptor,
    DenseDescriptor,
    DropoutDescriptor,
    ForkDescriptor,
    InputDescriptor,
    LayerDescriptor,
    ReshapeDescriptor,
    SkipOutDescriptor,
    SummationDescriptor,
    TransposeConvolutionDescriptor,
    UpsamplingDescriptor,
)
from ..utils.weight_initializer import WeightInitializer
from ..weights._weights import Weights

logger = logging.getLogger(__name__)

InitializerLike = Union[WeightInitializer, str, None]
ShapeLike = Union[Shape, Sequence[int]]


def _as_shape(shape: ShapeLike) -> Shape:
    if isinstance(shape, Shape):
        return shape
    width, length, dimensions = shape
    return Shape(width, length, dimensions)


def _bias(use_bias: Union[bool, Weights], initializer: InitializerLike, name: str) -> Optional[Weights]:
    if isinstance(use_bias, Weights):
        return use_bias
    if not use_bias:
        return None
    return Weights(initializer or WeightInitializer("constant", value=0.0), name=name)


class Network:
    """
    Sequential pipeline of layers trained against an injected loss.

    Parameters
    ----------
    loss : Loss
        Evaluates the output and seeds the backward pass.
    context : IDeviceContext
        Device context every layer, buffer and Weights object is bound to.
        The network does not close it.

    Notes
    -----
    The builder methods return the descriptor they append. Fork descriptors
    are passed to `add_concatenation` / `add_skip_out` to connect skips.
    """

    def __init__(self, loss: Loss, context: IDeviceContext) -> None:
        self.loss = loss
        self.context = context
        self.hyperparameters = AdamHyperParameters()
        self.descriptors: List[LayerDescriptor] = []
        self.layers: List[Layer] = []
        self.weights: List[Weights] = []
        self.input_layer: Optional[Input] = None
        self.output_shape: Optional[Shape] = None
        self.max_batch_size = 0
        self.last_output: Optional[np.ndarray] = None
        self._start = PairedBuffers("start")
        self._middle = PairedBuffers("middle")
        self._end: Optional[PairedBuffers] = None
        self._batch_size = 0
        self._ready = False

    def __repr__(self) -> str:
        return (
            f"Network(layers={len(self.descriptors)}, ready={self._ready}, "
            f"loss={type(self.loss).__name__})"
        )

    @property
    def ready(self) -> bool:
        return self._ready

    # builder

    def add_descriptor(self, descriptor: LayerDescriptor) -> LayerDescriptor:
        """Append an already constructed descriptor."""
        if self._ready:
            raise InvalidOperationError("Cannot add layers to a network that has been started.")
        self.descriptors.append(descriptor)
        return descriptor

    def add_input(self, shape: ShapeLike) -> InputDescriptor:
        return self.add_descriptor(InputDescriptor(_as_shape(shape)))

    def add_convolution(
        self,
        output_dimensions: int,
        filter_size: int,
        stride: int = 1,
        initializer: InitializerLike = None,
        use_bias: Union[bool, Weights] = True,
        bias_initializer: InitializerLike = None,
        activation: Optional[str] = None,
        weights: Optional[Weights] = None,
    ) -> ConvolutionDescriptor:
        """
        Append a convolution.

        Parameters
        ----------
        output_dimensions : int
            Number of output dimensions (filters).
        filter_size : int
            Width and length of each filter.
        stride : int, optional
            Filter step; input width and length must be divisible by it.
        initializer : WeightInitializer or str, optional
            Filter initializer. Defaults to glorot_uniform.
        use_bias : bool or Weights, optional
            Whether to add a per-dimension bias, or the bias Weights to use.
        bias_initializer : WeightInitializer or str, optional
            Defaults to constant 0.
        activation : str, optional
            Name of an activation layer appended after the convolution.
        weights : Weights, optional
            Existing filter Weights to share with another layer.
        """
        descriptor = ConvolutionDescriptor(
            weights or Weights(initializer, name="convolution.weights"),
            _bias(use_bias, bias_initializer, "convolution.bias"),
            output_dimensions,
            filter_size,
            stride,
        )
        self.add_descriptor(descriptor)
        if activation is not None:
            self.add_activation(activation)
        return descriptor

    def add_trans_conv(
        self,
        output_dimensions: int,
        filter_size: int,
        stride: int = 1,
        initializer: InitializerLike = None,
        use_bias: Union[bool, Weights] = True,
        bias_initializer: InitializerLike = None,
        activation: Optional[str] = None,
        weights: Optional[Weights] = None,
    ) -> TransposeConvolutionDescriptor:
        """Append a transposed convolution; parameters as in `add_convolution`."""
        descriptor = TransposeConvolutionDescriptor(
            weights or Weights(initializer, name="transpose_convolution.weights"),
            _bias(use_bias, bias_initializer, "transpose_convolution.bias"),
            output_dimensions,
            filter_size,
            stride,
        )
        self.add_descriptor(descriptor)
        if activation is not None:
            self.add_activation(activation)
        return descriptor

    def add_dense(
        self,
        units: int,
        initializer: InitializerLike = None,
        use_bias: Union[bool, Weights] = True,
        bias_initializer: InitializerLike = None,
        activation: Optional[str] = None,
        weights: Optional[Weights] = None,
    ) -> DenseDescriptor:
        descriptor = DenseDescriptor(
            weights or Weights(initializer, name="dense.weights"),
            _bias(use_bias, bias_initializer, "dense.bias"),
            units,
        )
        self.add_descriptor(descriptor)
        if activation is not None:
            self.add_activation(activation)
        return descriptor

    def add_batch_normalization(self, epsilon: float = 1e-5) -> BatchNormalizationDescriptor:
        return self.add_descriptor(
            BatchNormalizationDescriptor(
                Weights(WeightInitializer("constant", value=1.0), name="batch_normalization.weights"),
                Weights(WeightInitializer("constant", value=0.0), name="batch_normalization.bias"),
                epsilon,
            )
        )

    def add_activation(self, activation: str, **params: Any) -> ActivationDescriptor:
        return self.add_descriptor(ActivationDescriptor(activation, dict(params)))

    def add_augmentation(self, augmentation: str = "translation") -> AugmentationDescriptor:
        return self.add_descriptor(AugmentationDescriptor(augmentation))

    def add_dropout(self, rate: float = 0.2) -> DropoutDescriptor:
        return self.add_descriptor(DropoutDescriptor(rate))

    def add_fork(self) -> ForkDescriptor:
        return self.add_descriptor(ForkDescriptor())

    def add_concatenation(self, fork: ForkDescriptor) -> ConcatenationDescriptor:
        return self.add_descriptor(ConcatenationDescriptor(fork))

    def add_skip_out(self, fork: ForkDescriptor) -> SkipOutDescriptor:
        return self.add_descriptor(SkipOutDescriptor(fork))

    def add_reshape(self, output_shape: ShapeLike) -> ReshapeDescriptor:
        return self.add_descriptor(ReshapeDescriptor(_as_shape(output_shape)))

    def add_average_pool(self, filter_size: int) -> AveragePoolDescriptor:
        return self.add_descriptor(AveragePoolDescriptor(filter_size))

    def add_upsampling(self, scale: int) -> UpsamplingDescriptor:
        return self.add_descriptor(UpsamplingDescriptor(scale))

    def add_summation(self, output_dimensions: int) -> SummationDescriptor:
        return self.add_descriptor(SummationDescriptor(output_dimensions))

    # startup

    def startup(
        self,
        max_batch_size: int,
        hyperparameters: Optional[AdamHyperParameters] = None,
    ) -> None:
        """
        Build the layers, thread shapes and buffers, and bind every Weights.

        Calling it again on a started network is a no-op as long as
        `max_batch_size` does not grow.

        Raises
        ------
        InvalidOperationError
            If the network does not start with exactly one input layer, or a
            started network is asked for a larger batch.
        ShapeMismatchError, ConstraintUnsatisfiableError
            If consecutive layers have incompatible geometry.
        """
        if self._ready:
            if max_batch_size > self.max_batch_size:
                raise InvalidOperationError(
                    f"Network was started for batches of {self.max_batch_size}; "
                    f"close it before starting with {max_batch_size}."
                )
            return
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1, got {max_batch_size}")
        inputs = [d for d in self.descriptors if isinstance(d, InputDescriptor)]
        if len(inputs) != 1 or self.descriptors[0] is not inputs[0]:
            raise InvalidOperationError("A network must start with exactly one input layer.")
        if hyperparameters is not None:
            self.hyperparameters = hyperparameters

        started = time.perf_counter()
        try:
            self._build(max_batch_size)
        except Exception:
            self._teardown()
            raise
        self._ready = True
        logger.info(
            "started network: %d layers, %d weights (%d parameters), %s -> %s, max batch %d, "
            "%.1f ms",
            len(self.layers),
            len(self.weights),
            sum(w.length for w in self.weights),
            self.input_layer.shape,
            self.output_shape,
            max_batch_size,
            (time.perf_counter() - started) * 1e3,
        )

    def _build(self, max_batch_size: int) -> None:
        forks: Dict[ForkDescriptor, Any] = {}
        self.layers = [d.construct(forks) for d in self.descriptors]
        self.input_layer = self.layers[0]

        PairedBuffers.set_complement(self._start, self._middle)
        shape = self.input_layer.shape
        self._middle.output_dimension_area(shape.volume)

        current = self._start
        for layer in self.layers:
            shape = layer.startup(shape, current, self.context, max_batch_size)
            logger.debug("%s: %s -> %s", layer.name, layer.input_shape, shape)
            if not layer.reflexive:
                current = current.complement

        self._start.allocate(self.context, max_batch_size)
        self._middle.allocate(self.context, max_batch_size)
        self._end = current
        self.output_shape = shape
        self.max_batch_size = max_batch_size
        self.loss.startup(current, shape, max_batch_size)

        seen = set()
        self.weights = []
        for layer in self.layers:
            if isinstance(layer, WeightedLayer):
                for w in layer.all_weights():
                    if id(w) not in seen:
                        seen.add(id(w))
                        self.weights.append(w)

    def _require_ready(self) -> None:
        if not self._ready:
            raise InvalidOperationError("Network has not been started.")

    # passes

    def _forward(self, inputs: np.ndarray, training: bool) -> int:
        batch_size = self.input_layer.set_input(inputs)
        self._batch_size = batch_size
        for layer in self.layers:
            layer.training = training
            started = time.perf_counter()
            layer.forward(batch_size)
            logger.debug(
                "forward %s: %.3f ms", layer.name, (time.perf_counter() - started) * 1e3
            )
        return batch_size

    def _backwards(self, batch_size: int, update: bool) -> None:
        for layer in reversed(self.layers):
            started = time.perf_counter()
            layer.backwards(batch_size, update)
            logger.debug(
                "backwards %s: %.3f ms", layer.name, (time.perf_counter() - started) * 1e3
            )

    def _output(self, batch_size: int) -> np.ndarray:
        volume = self.output_shape.volume
        return np.array(
            self._end.gradient[: batch_size * volume].reshape(
                self.output_shape.batch_shape(batch_size)
            )
        )

    def _loss(self, expected: Any, batch_size: int) -> Tuple[float, float]:
        if len(expected) != batch_size:
            raise ShapeMismatchError(
                f"Got {len(expected)} expected outputs for a batch of {batch_size}."
            )
        value, metric = self.loss.get_loss(expected)
        if not math.isfinite(value):
            logger.error("non-finite loss %r, aborting the step before backpropagation", value)
            raise NumericDegenerateError(value)
        return value, metric

    def _apply_updates(self) -> None:
        self.hyperparameters.update()
        for w in self.weights:
            w.update_weights(self.hyperparameters)

    def train(
        self,
        inputs: np.ndarray,
        expected: Any,
        update: bool = True,
        save_output: bool = False,
    ) -> Tuple[float, float]:
        """
        Run one training step.

        Parameters
        ----------
        inputs : ndarray
            Batch of inputs, ``(batch, dimensions, length, width)`` or
            ``(batch, volume)``.
        expected : array_like
            Ground truth, one row per sample.
        update : bool, optional
            When False, only the gradient with respect to the input is
            propagated and no Weights change (for example a frozen critic
            training a generator).
        save_output : bool, optional
            Copy the network output to `last_output` before the loss
            overwrites it with the gradient.

        Returns
        -------
        tuple[float, float]
            ``(loss, metric)`` of the batch.

        Raises
        ------
        NumericDegenerateError
            If the loss is not finite; no gradient is propagated.
        """
        self._require_ready()
        batch_size = self._forward(inputs, training=True)
        if save_output:
            self.last_output = self._output(batch_size)
        result = self._loss(expected, batch_size)
        self._backwards(batch_size, update)
        if update:
            self._apply_updates()
        self.context.end_step()
        return result

    def test(self, inputs: np.ndarray, expected: Any, save_output: bool = False) -> Tuple[float, float]:
        """Forward pass and loss without any backward pass or update."""
        self._require_ready()
        batch_size = self._forward(inputs, training=False)
        if save_output:
            self.last_output = self._output(batch_size)
        result = self._loss(expected, batch_size)
        self.context.end_step()
        return result

    def generate(self, inputs: np.ndarray) -> np.ndarray:
        """
        Forward pass only.

        Returns
        -------
        ndarray
            The outputs, ``(batch, dimensions, length, width)``.
        """
        self._require_ready()
        batch_size = self._forward(inputs, training=False)
        self.last_output = self._output(batch_size)
        self.context.end_step()
        return self.last_output

    def compute_gradients(self, inputs: np.ndarray, expected: Any) -> Tuple[float, float]:
        """
        Accumulate weight gradients for one batch without applying them.

        Gradients are zeroed first. Layers run in inference mode, so the
        result is deterministic.
        """
        self._require_ready()
        for w in self.weights:
            w.zero_gradient()
        batch_size = self._forward(inputs, training=False)
        result = self._loss(expected, batch_size)
        self._backwards(batch_size, True)
        self.context.end_step()
        return result

    def apply_updates(self) -> None:
        """Apply one Adam step with the gradients accumulated so far."""
        self._require_ready()
        self._apply_updates()
        self.context.end_step()

    def input_gradient(self) -> np.ndarray:
        """Gradient of the last backward pass with respect to the input batch."""
        self._require_ready()
        if self._batch_size == 0:
            raise InvalidOperationError("No batch has been run yet.")
        shape = self.input_layer.shape
        return np.array(
            self.input_layer.in_gradient[: self._batch_size * shape.volume].reshape(
                shape.batch_shape(self._batch_size)
            )
        )

    # lifecycle

    def reset(self) -> None:
        """Re-initialize every Weights object and restart the Adam schedule."""
        for layer in self.layers:
            layer.reset()
        self.hyperparameters.updates = 0

    def _teardown(self) -> None:
        for layer in self.layers:
            layer.release()
        for w in self.weights:
            w.unbind()
        for descriptor in self.descriptors:
            for w in descriptor.all_weights():
                w.unbind()
        self._start.release()
        self._middle.release()
        self.layers = []
        self.weights = []
        self.input_layer = None
        self._end = None
        self._batch_size = 0

    def close(self) -> None:
        """
        Free every device allocation held by the network.

        Weights are downloaded to the host first, so a closed network can
        still be saved or started again.
        """
        if self.context.closed:
            raise InvalidOperationError(
                "The device context was closed before the network; Weights cannot be downloaded."
            )
        self._teardown()
        self._ready = False

    def __enter__(self) -> "Network":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.context.closed:
            self.close()

    # persistence

    def get_config(self) -> Dict[str, Any]:
        return encode_network(self.descriptors, self.hyperparameters)

    def save(self, path: Union[str, os.PathLike]) -> None:
        """Write the network (descriptors, Weights and Adam state) as JSON."""
        directory = os.path.dirname(os.fspath(path))
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.get_config(), f, indent=2)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], context: IDeviceContext, loss: Loss) -> "Network":
        descriptors, hyperparameters = decode_network(cfg)
        network = cls(loss, context)
        network.descriptors = descriptors
        network.hyperparameters = hyperparameters
        return network

    @classmethod
    def load(cls, path: Union[str, os.PathLike], context: IDeviceContext, loss: Loss) -> "Network":
        """
        Read a network written by `save`.

        The returned network still has to be started.
        """
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_config(json.load(f), context, loss)
