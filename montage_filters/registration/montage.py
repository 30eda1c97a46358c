"""Geometry types shared by the overlap and cost-function modules.

All positions are in montage pixel units: the tile origins divided by their
spacing, so every tile lives on one integer grid.
"""
from dataclasses import dataclass
from typing import NamedTuple, Tuple

import numpy as np

from ._typing_utils import BoolArray, FloatArray, GridKey, GridPair, IntArray


class Region(NamedTuple):
    """A rectangle given by its first pixel and its size."""

    x: int
    y: int
    width: int
    height: int

    @property
    def size(self) -> int:
        return max(self.width, 0) * max(self.height, 0)


@dataclass(frozen=True)
class RegionBounds:
    """Top/left are the first row/column, bottom/right are one past the last."""

    top: int
    bottom: int
    left: int
    right: int

    @classmethod
    def from_region(cls, region: Region) -> "RegionBounds":
        return cls(
            top=region.y,
            bottom=region.y + region.height,
            left=region.x,
            right=region.x + region.width,
        )

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def shrink_toward(self, xs: IntArray, ys: IntArray, region: Region) -> "RegionBounds":
        """Tighten the bounds around invalid pixels at (xs, ys).

        Each pixel moves whichever edge of `region` it is nearest to. Ties go
        to top, then bottom, then left, then right. The pixel's own row or
        column becomes the new bound.
        """
        xs = np.asarray(xs, dtype=np.int64).ravel()
        ys = np.asarray(ys, dtype=np.int64).ravel()
        if xs.size == 0:
            return self

        dist_top = ys - region.y
        dist_bot = region.y + region.height - ys
        dist_left = xs - region.x
        dist_right = region.x + region.width - xs

        is_top = (dist_top <= dist_bot) & (dist_top <= dist_left) & (dist_top <= dist_right)
        is_bot = ~is_top & (dist_bot <= dist_left) & (dist_bot <= dist_right)
        is_left = ~is_top & ~is_bot & (dist_left <= dist_right)
        is_right = ~is_top & ~is_bot & ~is_left

        top, bottom, left, right = self.top, self.bottom, self.left, self.right
        if is_top.any():
            top = max(top, int(ys[is_top].max()))
        if is_bot.any():
            bottom = min(bottom, int(ys[is_bot].min()))
        if is_left.any():
            left = max(left, int(xs[is_left].max()))
        if is_right.any():
            right = min(right, int(xs[is_right].min()))
        return RegionBounds(top=top, bottom=bottom, left=left, right=right)


@dataclass
class TileImage:
    """Pixels materialized from one montage tile."""

    pixels: FloatArray
    """(height, width) array."""
    origin: Tuple[int, int]
    """(x, y) of pixels[0, 0] in montage pixel units."""
    tile_origin: Tuple[int, int]
    """(x, y) of the full tile's first pixel; differs from `origin` for trimmed edge tiles."""

    @property
    def region(self) -> Region:
        height, width = self.pixels.shape
        return Region(self.origin[0], self.origin[1], width, height)

    @property
    def bounds(self) -> RegionBounds:
        return RegionBounds.from_region(self.region)

    def contains(self, xs: IntArray, ys: IntArray) -> BoolArray:
        region = self.region
        return (
            (xs >= region.x)
            & (xs < region.x + region.width)
            & (ys >= region.y)
            & (ys < region.y + region.height)
        )

    def sample(self, xs: IntArray, ys: IntArray) -> FloatArray:
        """Pixel values at (xs, ys); positions must lie inside the tile."""
        return self.pixels[ys - self.origin[1], xs - self.origin[0]]


@dataclass(frozen=True)
class OverlapPair:
    keys: GridPair
    """(left, right) or (top, bottom) tile keys."""
    region: Region
    """Shared area in montage pixel units."""

    @property
    def direction(self) -> str:
        (c0, r0), (c1, r1) = self.keys
        return "right" if (c1, r1) == (c0 + 1, r0) else "bottom"


ImageGrid = dict[GridKey, TileImage]
CropMap = dict[GridKey, RegionBounds]
