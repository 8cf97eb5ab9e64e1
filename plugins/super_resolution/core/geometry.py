"""Tile geometry, edge-replicated padding and tile grid enumeration."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

import numpy as np

from .buffers import PixelBuffer
from .errors import GeometryError

DEFAULT_TILE_SIZE_X2 = 64
DEFAULT_TILE_SIZE_X4 = 128
DEFAULT_OVERLAP = 8


def default_tile_size(factor: int) -> int:
    return DEFAULT_TILE_SIZE_X4 if factor == 4 else DEFAULT_TILE_SIZE_X2


@dataclass(frozen=True)
class TileGeometry:
    tile_width: int
    tile_height: int
    overlap: int = 0

    def __post_init__(self) -> None:
        if self.tile_width <= 0 or self.tile_height <= 0:
            raise GeometryError(
                f"Tile size must be positive, got {self.tile_width}x{self.tile_height}"
            )
        if self.overlap < 0:
            raise GeometryError(f"Overlap must be non-negative, got {self.overlap}")
        limit = min(self.tile_width, self.tile_height) // 4
        if self.overlap > limit:
            raise GeometryError(
                f"Overlap {self.overlap} exceeds {limit} for a "
                f"{self.tile_width}x{self.tile_height} tile"
            )
        if self.stride_x <= 0 or self.stride_y <= 0:
            raise GeometryError("Tile stride must be positive")

    @property
    def stride_x(self) -> int:
        return self.tile_width - 2 * self.overlap

    @property
    def stride_y(self) -> int:
        return self.tile_height - 2 * self.overlap

    @classmethod
    def from_hint(
        cls,
        tile_width: int | None = None,
        tile_height: int | None = None,
        *,
        factor: int = 2,
        max_overlap: int = DEFAULT_OVERLAP,
    ) -> "TileGeometry":
        """Build a geometry from a possibly partial hint.

        Missing dimensions fall back to the default for ``factor`` and the
        overlap is clamped to a quarter of the shorter tile side.
        """

        width = tile_width or tile_height or default_tile_size(factor)
        height = tile_height or width
        width = max(1, int(round(width)))
        height = max(1, int(round(height)))
        overlap = max(0, min(int(max_overlap), min(width, height) // 4))
        return cls(tile_width=width, tile_height=height, overlap=overlap)


@dataclass(frozen=True)
class TileDescriptor:
    tx: int
    ty: int
    sx: int
    sy: int
    is_left_edge: bool
    is_top_edge: bool
    is_right_edge: bool
    is_bottom_edge: bool


def _padded_extent(size: int, tile: int, stride: int, overlap: int) -> int:
    if size <= tile:
        return tile
    if size % stride == 0:
        return size + 2 * overlap
    return math.ceil((size - tile) / stride) * stride + tile


def _tile_count(padded: int, tile: int, stride: int) -> int:
    if padded <= tile:
        return 1
    return math.ceil((padded - tile) / stride) + 1


@dataclass(frozen=True)
class PaddedPlan:
    geometry: TileGeometry
    source_width: int
    source_height: int
    padded_width: int
    padded_height: int
    tiles_x: int
    tiles_y: int

    @property
    def tile_count(self) -> int:
        return self.tiles_x * self.tiles_y

    def tile_origin(self, tx: int, ty: int) -> tuple[int, int]:
        g = self.geometry
        sx = min(tx * g.stride_x, self.padded_width - g.tile_width)
        sy = min(ty * g.stride_y, self.padded_height - g.tile_height)
        return sx, sy

    def describe(self, tx: int, ty: int) -> TileDescriptor:
        g = self.geometry
        sx, sy = self.tile_origin(tx, ty)
        return TileDescriptor(
            tx=tx,
            ty=ty,
            sx=sx,
            sy=sy,
            is_left_edge=sx == 0,
            is_top_edge=sy == 0,
            is_right_edge=sx + g.tile_width >= self.padded_width,
            is_bottom_edge=sy + g.tile_height >= self.padded_height,
        )

    def tiles(self) -> Iterator[TileDescriptor]:
        """Yield every tile in row-major order."""

        for ty in range(self.tiles_y):
            for tx in range(self.tiles_x):
                yield self.describe(tx, ty)


def plan_padding(width: int, height: int, geometry: TileGeometry) -> PaddedPlan:
    if width <= 0 or height <= 0:
        raise GeometryError(f"Source size must be positive, got {width}x{height}")
    g = geometry
    padded_width = _padded_extent(width, g.tile_width, g.stride_x, g.overlap)
    padded_height = _padded_extent(height, g.tile_height, g.stride_y, g.overlap)
    return PaddedPlan(
        geometry=g,
        source_width=width,
        source_height=height,
        padded_width=padded_width,
        padded_height=padded_height,
        tiles_x=_tile_count(padded_width, g.tile_width, g.stride_x),
        tiles_y=_tile_count(padded_height, g.tile_height, g.stride_y),
    )


def pad_buffer(source: PixelBuffer, plan: PaddedPlan) -> PixelBuffer:
    """Place ``source`` at the origin and replicate its edges into the padding.

    Columns right of the source repeat its last column, rows below repeat
    its last row and the bottom-right corner repeats its last pixel.
    """

    if (source.width, source.height) != (plan.source_width, plan.source_height):
        raise GeometryError("Padding plan does not match the source buffer size")
    pad_right = plan.padded_width - source.width
    pad_bottom = plan.padded_height - source.height
    if pad_right == 0 and pad_bottom == 0:
        return source
    padded = np.pad(source.pixels, ((0, pad_bottom), (0, pad_right), (0, 0)), mode="edge")
    return PixelBuffer(padded)


__all__ = [
    "DEFAULT_TILE_SIZE_X2",
    "DEFAULT_TILE_SIZE_X4",
    "DEFAULT_OVERLAP",
    "default_tile_size",
    "TileGeometry",
    "TileDescriptor",
    "PaddedPlan",
    "plan_padding",
    "pad_buffer",
]
