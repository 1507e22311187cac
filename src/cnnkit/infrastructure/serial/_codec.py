"""
Tagged-union codec for network configurations.

Every descriptor is encoded as ``{"kind": <LayerKind value>, "payload": {...}}``
and decoded through one explicit switch over `LayerKind`; there is no
reflection-based type lookup. Weights are written once to a table and
referenced by index, so Weights shared between layers stay shared after a
round trip.

Document layout
---------------
::

    {
      "format": 1,
      "hyperparameters": {...},          # AdamHyperParameters.get_config()
      "weights": [                       # one entry per distinct Weights
        {"name": ..., "initializer": {...}, "fan_in": n, "fan_out": n,
         "values": <b64 payload or null>,
         "first_moment": <b64 payload or null>,
         "second_moment": <b64 payload or null>}
      ],
      "layers": [{"kind": "convolution", "payload": {...}}, ...]
    }

Gradients are not persisted; they are recreated as zeros on load.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...domain._layer import LayerKind
from ...domain._shape import Shape
from ..encoding._b64 import ndarray_to_payload, payload_to_ndarray
from ..optimizers._adam import AdamHyperParameters
from ..utils.weight_initializer import WeightInitializer
from ..weights._weights import Weights
from ._descriptors import (
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

FORMAT_VERSION = 1


class _WeightsTable:
    """Assigns table indices to Weights objects by identity."""

    def __init__(self) -> None:
        self.entries: List[Weights] = []
        self._index: Dict[int, int] = {}

    def ref(self, weights: Optional[Weights]) -> Optional[int]:
        if weights is None:
            return None
        key = id(weights)
        if key not in self._index:
            self._index[key] = len(self.entries)
            self.entries.append(weights)
        return self._index[key]


def encode_weights(weights: Weights) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "name": weights.name,
        "initializer": weights.initializer.get_config(),
        "fan_in": weights.fan_in,
        "fan_out": weights.fan_out,
        "values": None,
        "first_moment": None,
        "second_moment": None,
    }
    if weights.initialized:
        first, second = weights.moments()
        entry["values"] = ndarray_to_payload(weights.to_numpy())
        entry["first_moment"] = ndarray_to_payload(first)
        entry["second_moment"] = ndarray_to_payload(second)
    return entry


def decode_weights(entry: Dict[str, Any]) -> Weights:
    weights = Weights(
        WeightInitializer.from_config(entry["initializer"]), name=str(entry.get("name", "weights"))
    )
    weights.fan_in = int(entry.get("fan_in", 1))
    weights.fan_out = int(entry.get("fan_out", 1))
    values = payload_to_ndarray(entry.get("values"))
    if values is not None:
        weights.restore(
            values,
            payload_to_ndarray(entry.get("first_moment")),
            payload_to_ndarray(entry.get("second_moment")),
        )
    return weights


def encode_layer(
    descriptor: LayerDescriptor,
    table: _WeightsTable,
    positions: Dict[int, int],
) -> Dict[str, Any]:
    """
    Encode one descriptor as a tagged union node.

    Parameters
    ----------
    descriptor : LayerDescriptor
        The descriptor to encode.
    table : _WeightsTable
        Weights table shared by the whole document.
    positions : dict
        Maps ``id(fork_descriptor)`` to its position in the layer list.
    """
    kind = descriptor.kind
    d: Any = descriptor
    if kind is LayerKind.INPUT or kind is LayerKind.RESHAPE:
        shape = d.shape if kind is LayerKind.INPUT else d.output_shape
        payload = {"shape": shape.get_config()}
    elif kind is LayerKind.CONVOLUTION or kind is LayerKind.TRANSPOSE_CONVOLUTION:
        payload = {
            "output_dimensions": d.output_dimensions,
            "filter_size": d.filter_size,
            "stride": d.stride,
            "weights": table.ref(d.weights),
            "bias": table.ref(d.bias),
        }
    elif kind is LayerKind.DENSE:
        payload = {"units": d.units, "weights": table.ref(d.weights), "bias": table.ref(d.bias)}
    elif kind is LayerKind.BATCH_NORMALIZATION:
        payload = {
            "epsilon": d.epsilon,
            "weights": table.ref(d.weights),
            "bias": table.ref(d.bias),
        }
    elif kind is LayerKind.ACTIVATION:
        payload = {"activation": d.activation, "params": dict(d.params)}
    elif kind is LayerKind.AVERAGE_POOL:
        payload = {"filter_size": d.filter_size}
    elif kind is LayerKind.UPSAMPLING:
        payload = {"scale": d.scale}
    elif kind is LayerKind.SUMMATION:
        payload = {"output_dimensions": d.output_dimensions}
    elif kind is LayerKind.FORK:
        payload = {}
    elif kind is LayerKind.CONCATENATION or kind is LayerKind.SKIP_OUT:
        try:
            payload = {"fork": positions[id(d.fork)]}
        except KeyError as e:
            raise ValueError(f"{kind.value} layer refers to a fork outside the network.") from e
    elif kind is LayerKind.AUGMENTATION:
        payload = {"augmentation": d.augmentation}
    elif kind is LayerKind.DROPOUT:
        payload = {"rate": d.rate}
    else:
        raise ValueError(f"Cannot encode layer kind {kind!r}.")
    return {"kind": kind.value, "payload": payload}


def decode_layer(
    node: Dict[str, Any],
    weights: Sequence[Weights],
    decoded: Sequence[LayerDescriptor],
) -> LayerDescriptor:
    """
    Decode one tagged union node.

    Parameters
    ----------
    node : dict
        ``{"kind": ..., "payload": ...}``.
    weights : sequence of Weights
        The decoded weights table.
    decoded : sequence of LayerDescriptor
        Descriptors decoded so far (forks are referenced by position).

    Raises
    ------
    ValueError
        If the kind is unknown or a reference is out of range.
    """
    try:
        kind = LayerKind(node["kind"])
    except ValueError as e:
        raise ValueError(f"Unknown layer kind {node.get('kind')!r}.") from e
    p = node.get("payload", {}) or {}

    def ref(index: Optional[int]) -> Optional[Weights]:
        if index is None:
            return None
        if not 0 <= int(index) < len(weights):
            raise ValueError(f"Weights reference {index} is out of range.")
        return weights[int(index)]

    def fork(index: int) -> ForkDescriptor:
        index = int(index)
        if not 0 <= index < len(decoded) or not isinstance(decoded[index], ForkDescriptor):
            raise ValueError(f"Layer {index} is not a preceding fork.")
        return decoded[index]

    if kind is LayerKind.INPUT:
        return InputDescriptor(Shape.from_config(p["shape"]))
    elif kind is LayerKind.CONVOLUTION:
        return ConvolutionDescriptor(
            ref(p["weights"]), ref(p.get("bias")), int(p["output_dimensions"]),
            int(p["filter_size"]), int(p["stride"]),
        )
    elif kind is LayerKind.TRANSPOSE_CONVOLUTION:
        return TransposeConvolutionDescriptor(
            ref(p["weights"]), ref(p.get("bias")), int(p["output_dimensions"]),
            int(p["filter_size"]), int(p["stride"]),
        )
    elif kind is LayerKind.DENSE:
        return DenseDescriptor(ref(p["weights"]), ref(p.get("bias")), int(p["units"]))
    elif kind is LayerKind.BATCH_NORMALIZATION:
        return BatchNormalizationDescriptor(
            ref(p["weights"]), ref(p.get("bias")), float(p.get("epsilon", 1e-5))
        )
    elif kind is LayerKind.ACTIVATION:
        return ActivationDescriptor(str(p["activation"]), dict(p.get("params", {}) or {}))
    elif kind is LayerKind.RESHAPE:
        return ReshapeDescriptor(Shape.from_config(p["shape"]))
    elif kind is LayerKind.AVERAGE_POOL:
        return AveragePoolDescriptor(int(p["filter_size"]))
    elif kind is LayerKind.UPSAMPLING:
        return UpsamplingDescriptor(int(p["scale"]))
    elif kind is LayerKind.SUMMATION:
        return SummationDescriptor(int(p["output_dimensions"]))
    elif kind is LayerKind.FORK:
        return ForkDescriptor()
    elif kind is LayerKind.CONCATENATION:
        return ConcatenationDescriptor(fork(p["fork"]))
    elif kind is LayerKind.SKIP_OUT:
        return SkipOutDescriptor(fork(p["fork"]))
    elif kind is LayerKind.AUGMENTATION:
        return AugmentationDescriptor(str(p.get("augmentation", "translation")))
    elif kind is LayerKind.DROPOUT:
        return DropoutDescriptor(float(p.get("rate", 0.2)))
    raise ValueError(f"Cannot decode layer kind {kind!r}.")


def encode_network(
    descriptors: Sequence[LayerDescriptor],
    hyperparameters: AdamHyperParameters,
) -> Dict[str, Any]:
    """Encode a descriptor list and its optimizer state as a JSON-ready dict."""
    table = _WeightsTable()
    positions = {
        id(d): i for i, d in enumerate(descriptors) if isinstance(d, ForkDescriptor)
    }
    layers = [encode_layer(d, table, positions) for d in descriptors]
    return {
        "format": FORMAT_VERSION,
        "hyperparameters": hyperparameters.get_config(),
        "weights": [encode_weights(w) for w in table.entries],
        "layers": layers,
    }


def decode_network(
    document: Dict[str, Any],
) -> Tuple[List[LayerDescriptor], AdamHyperParameters]:
    """
    Inverse of `encode_network`.

    Raises
    ------
    ValueError
        If the document format is not supported or any node is malformed.
    """
    version = document.get("format")
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported network format {version!r}.")
    weights = [decode_weights(entry) for entry in document.get("weights", [])]
    descriptors: List[LayerDescriptor] = []
    for node in document.get("layers", []):
        descriptors.append(decode_layer(node, weights, descriptors))
    hyperparameters = AdamHyperParameters.from_config(document.get("hyperparameters", {}))
    return descriptors, hyperparameters


def dumps(descriptors: Sequence[LayerDescriptor], hyperparameters: AdamHyperParameters) -> str:
    return json.dumps(encode_network(descriptors, hyperparameters))


def loads(text: str) -> Tuple[List[LayerDescriptor], AdamHyperParameters]:
    return decode_network(json.loads(text))
