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
from ._codec import decode_network, dumps, encode_network, loads

__all__ = [
    "ActivationDescriptor",
    "AugmentationDescriptor",
    "AveragePoolDescriptor",
    "BatchNormalizationDescriptor",
    "ConcatenationDescriptor",
    "ConvolutionDescriptor",
    "DenseDescriptor",
    "DropoutDescriptor",
    "ForkDescriptor",
    "InputDescriptor",
    "LayerDescriptor",
    "ReshapeDescriptor",
    "SkipOutDescriptor",
    "SummationDescriptor",
    "TransposeConvolutionDescriptor",
    "UpsamplingDescriptor",
    "decode_network",
    "dumps",
    "encode_network",
    "loads",
]
