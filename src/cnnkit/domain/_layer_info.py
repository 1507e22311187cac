"""
Convolution geometry shared by convolution and transposed convolution.

`LayerInfo` relates a *contraction* tensor (fewer spatial positions) to an
*expansion* tensor (more spatial positions) for a given filter size and
stride. A convolution contracts its input into its output; a transposed
convolution expands its input into its output. Because both directions are
described by the same indexing algebra, one set of kernels serves both layer
families with the roles of input and output swapped.

Addressing
----------
Contraction position ``(cx, cy)`` and filter tap ``(i, j)`` address the
expansion position::

    ex = cx * stride - padding // 2 + i
    ey = cy * stride - padding // 2 + j

where ``padding = filter_size - stride``. Taps that fall outside the expansion
map are skipped; padding values are never materialised.

Filter layout
-------------
Filters are stored flat as ``(expansion_dims, contraction_dims, K, K)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ._errors import ConstraintUnsatisfiableError
from ._shape import Shape


def _check_filter(filter_size: int, stride: int) -> None:
    if stride < 1:
        raise ConstraintUnsatisfiableError(f"stride must be >= 1, got {stride}")
    if filter_size < stride:
        raise ConstraintUnsatisfiableError(
            f"filter_size ({filter_size}) must be >= stride ({stride})"
        )


def contracted_size(expanded: int, stride: int) -> int:
    """
    Spatial size on the contraction side for a given expansion size.

    Raises
    ------
    ConstraintUnsatisfiableError
        If `stride` does not evenly divide `expanded`.
    """
    if expanded % stride != 0:
        raise ConstraintUnsatisfiableError(
            f"Stride {stride} does not evenly divide spatial size {expanded}."
        )
    return expanded // stride


def expanded_size(contracted: int, stride: int) -> int:
    """Spatial size on the expansion side for a given contraction size."""
    return contracted * stride


@dataclass(frozen=True)
class LayerInfo:
    """
    Geometry descriptor for a contraction/expansion pair.

    Parameters
    ----------
    filter_size : int
        Width and length of the square filter.
    stride : int
        Step between consecutive contraction positions on the expansion map.
    contraction : Shape
        The smaller-resolution side.
    expansion : Shape
        The larger-resolution side.

    Notes
    -----
    Construct through `from_convolution` or `from_transpose_convolution`,
    which derive the output shape and validate divisibility.
    """

    filter_size: int
    stride: int
    contraction: Shape
    expansion: Shape

    def __post_init__(self) -> None:
        _check_filter(self.filter_size, self.stride)
        if (
            self.contraction.width * self.stride != self.expansion.width
            or self.contraction.length * self.stride != self.expansion.length
        ):
            raise ConstraintUnsatisfiableError(
                f"Contraction {self.contraction} and expansion {self.expansion} "
                f"are not related by stride {self.stride}."
            )

    @classmethod
    def from_convolution(
        cls, input_shape: Shape, filter_size: int, stride: int, output_dimensions: int
    ) -> "LayerInfo":
        """Geometry of a convolution: the output is the contraction side."""
        _check_filter(filter_size, stride)
        output_shape = Shape(
            contracted_size(input_shape.width, stride),
            contracted_size(input_shape.length, stride),
            output_dimensions,
        )
        return cls(filter_size, stride, output_shape, input_shape)

    @classmethod
    def from_transpose_convolution(
        cls, input_shape: Shape, filter_size: int, stride: int, output_dimensions: int
    ) -> "LayerInfo":
        """Geometry of a transposed convolution: the input is the contraction side."""
        _check_filter(filter_size, stride)
        output_shape = Shape(
            expanded_size(input_shape.width, stride),
            expanded_size(input_shape.length, stride),
            output_dimensions,
        )
        return cls(filter_size, stride, input_shape, output_shape)

    @property
    def padding(self) -> int:
        """Total padding (``filter_size - stride``)."""
        return self.filter_size - self.stride

    @property
    def leading_padding(self) -> int:
        return self.padding // 2

    @property
    def filter_area(self) -> int:
        return self.filter_size * self.filter_size

    @property
    def filter_length(self) -> int:
        """Number of filter coefficients for all dimension pairs."""
        return (
            self.filter_area * self.expansion.dimensions * self.contraction.dimensions
        )

    def contraction_coordinates(self, position: int) -> Tuple[int, int]:
        return position % self.contraction.width, position // self.contraction.width

    def expansion_index(self, position: int, i: int, j: int) -> Optional[int]:
        """
        Expansion-side flat index touched by filter tap ``(i, j)`` at a
        contraction position, or None when the tap falls outside the map.
        """
        cx, cy = self.contraction_coordinates(position)
        ex = cx * self.stride - self.leading_padding + i
        ey = cy * self.stride - self.leading_padding + j
        if 0 <= ex < self.expansion.width and 0 <= ey < self.expansion.length:
            return ey * self.expansion.width + ex
        return None

    def filter_index(
        self, i: int, j: int, expansion_dimension: int, contraction_dimension: int
    ) -> int:
        dimension = (
            expansion_dimension * self.contraction.dimensions + contraction_dimension
        )
        return (dimension * self.filter_size + j) * self.filter_size + i
