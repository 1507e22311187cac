"""
Tensor shape bookkeeping.

A `Shape` describes one sample's activations as `(width, length, dimensions)`.
Buffers are laid out with the dimension (channel) index outside the spatial
index, and the batch index outside both, so a whole batch is a C-ordered
array of shape ``(batch, dimensions, length, width)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Shape:
    """
    Immutable spatial/channel shape of a single sample.

    Parameters
    ----------
    width : int
        Number of columns.
    length : int
        Number of rows.
    dimensions : int
        Number of channels (feature maps).

    Raises
    ------
    ValueError
        If any component is negative or not an integer.

    Notes
    -----
    Layers never mutate a Shape; a new one is computed whenever geometry
    changes.
    """

    width: int
    length: int
    dimensions: int

    def __post_init__(self) -> None:
        for name in ("width", "length", "dimensions"):
            value = getattr(self, name)
            if isinstance(value, bool) or int(value) != value:
                raise ValueError(f"Shape.{name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"Shape.{name} must be >= 0, got {value}")
            object.__setattr__(self, name, int(value))

    @property
    def area(self) -> int:
        """Number of spatial positions (``width * length``)."""
        return self.width * self.length

    @property
    def volume(self) -> int:
        """Number of floats in one sample (``area * dimensions``)."""
        return self.area * self.dimensions

    def offset(self, batch_index: int, dimension: int) -> int:
        """
        Flat offset of a feature map inside a multi-batch buffer.

        Parameters
        ----------
        batch_index : int
            Index of the sample within the batch.
        dimension : int
            Channel index within the sample.

        Returns
        -------
        int
            ``(batch_index * dimensions + dimension) * area``.
        """
        return (batch_index * self.dimensions + dimension) * self.area

    def try_get_index(self, index: int, shift_x: int, shift_y: int) -> Optional[int]:
        """
        Shift a flat spatial index and return the new flat index.

        Returns None when the shifted position leaves the map.
        """
        x = index % self.width + shift_x
        y = index // self.width + shift_y
        if 0 <= x < self.width and 0 <= y < self.length:
            return y * self.width + x
        return None

    def batch_shape(self, batch_size: int) -> Tuple[int, int, int, int]:
        """Array shape of a batch laid out with this Shape."""
        return (batch_size, self.dimensions, self.length, self.width)

    def with_dimensions(self, dimensions: int) -> "Shape":
        return Shape(self.width, self.length, dimensions)

    def get_config(self) -> Dict[str, Any]:
        return {"width": self.width, "length": self.length, "dimensions": self.dimensions}

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Shape":
        return cls(int(cfg["width"]), int(cfg["length"]), int(cfg["dimensions"]))

    def __str__(self) -> str:
        return f"{self.width}x{self.length}x{self.dimensions}"
