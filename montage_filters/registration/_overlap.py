"""Overlap geometry for a tile montage.

This module turns montage tiles into in-memory images, works out where
neighbouring tiles overlap, and renders the warped content of both tiles
over each overlap so the pair can be compared.

The module includes:
- Tile materialization with trimmed edge tiles
- Crop-bound and overlap-pair derivation
- Warped overlap images with region-bound tracking
"""
import logging
import math
from typing import List, Tuple

import numpy as np

from ..datamodel import GridMontage
from ._typing_utils import FloatArray, GridKey, ParametersType
from .dewarp import get_old_index, tile_center
from .montage import CropMap, ImageGrid, OverlapPair, Region, RegionBounds, TileImage

# Configure logger
logger = logging.getLogger(__name__)


def calculate_image_dim(montage: GridMontage) -> Tuple[float, float]:
    """Nominal tile width and height.

    Taken from an interior tile where the montage has one, since tiles on the
    first row or column may be larger than the rest.
    """
    x = 1 if montage.column_count > 2 else 0
    y = 1 if montage.row_count > 2 else 0
    x_geom = montage.get_data_container(montage.get_tile_index(0, x)).geometry
    y_geom = montage.get_data_container(montage.get_tile_index(y, 0)).geometry
    if x_geom is None or y_geom is None:
        raise ValueError("Montage tiles must carry an image geometry")
    return float(x_geom.dimensions[0]), float(y_geom.dimensions[1])


def materialize_tile(
    montage: GridMontage,
    row: int,
    column: int,
    am_name: str,
    da_name: str,
    image_dim_x: float,
    image_dim_y: float,
) -> Tuple[GridKey, TileImage]:
    """Copy one tile's pixels into a TileImage keyed by (column, row).

    Tiles are at most image_dim_x by image_dim_y. On grids with more than two
    rows (columns), a tile in the first row (column) keeps its trailing rows
    (columns), the part that borders the next tile.
    """
    dc = montage.get_data_container(montage.get_tile_index(row, column))
    am = dc.get_attribute_matrix(am_name)
    if am is None:
        raise KeyError(f"Tile ({row}, {column}) has no attribute matrix '{am_name}'")
    da = am.get_attribute_array(da_name)
    if da is None:
        raise KeyError(f"Tile ({row}, {column}) has no data array '{da_name}' in '{am_name}'")
    geom = dc.geometry
    if geom is None:
        raise ValueError(f"Tile ({row}, {column}) has no image geometry")

    geom_width, geom_height = int(geom.dimensions[0]), int(geom.dimensions[1])
    if da.number_of_tuples < geom_width * geom_height:
        raise ValueError(
            f"Tile ({row}, {column}) array '{da_name}' has {da.number_of_tuples} tuples, "
            f"geometry needs {geom_width * geom_height}"
        )

    # Treat the montage as having unit spacing so tiles share one pixel grid.
    x_origin = math.floor(geom.origin[0] / geom.spacing[0])
    y_origin = math.floor(geom.origin[1] / geom.spacing[1])
    tile_origin = (x_origin, y_origin)
    tile_height = min(geom_height, math.floor(image_dim_y))
    tile_width = min(geom_width, math.floor(image_dim_x))
    offset_x = 0
    offset_y = 0

    if row == 0 and montage.row_count > 2:
        offset_y = geom_height - tile_height
        y_origin += offset_y
    if column == 0 and montage.column_count > 2:
        offset_x = geom_width - tile_width
        x_origin += offset_x

    # Only the first component is used for color data.
    values = da.component_view(0)[: geom_width * geom_height].reshape(geom_height, geom_width)
    pixels = values[offset_y:offset_y + tile_height, offset_x:offset_x + tile_width]
    tile = TileImage(
        pixels=pixels.astype(np.float64),
        origin=(x_origin, y_origin),
        tile_origin=tile_origin,
    )
    return (column, row), tile


def precalc_crop_map(image_grid: ImageGrid) -> CropMap:
    return {key: image.bounds for key, image in image_grid.items()}


def create_right_region(left: RegionBounds, right: RegionBounds) -> Region:
    top = max(left.top, right.top)
    bottom = min(left.bottom, right.bottom)
    return Region(right.left, top, left.right - right.left, bottom - top)


def create_bottom_region(top: RegionBounds, bottom: RegionBounds) -> Region:
    left = max(top.left, bottom.left)
    right = min(top.right, bottom.right)
    return Region(left, bottom.top, right - left, top.bottom - bottom.top)


def create_overlap_pairs(crop_map: CropMap) -> List[OverlapPair]:
    """One pair per (tile, right neighbour) and (tile, bottom neighbour), in key order."""
    overlaps = []
    for key in sorted(crop_map):
        bounds = crop_map[key]
        column, row = key

        right_key = (column + 1, row)
        if right_key in crop_map:
            region = create_right_region(bounds, crop_map[right_key])
            overlaps.append(OverlapPair((key, right_key), region))

        bottom_key = (column, row + 1)
        if bottom_key in crop_map:
            region = create_bottom_region(bounds, crop_map[bottom_key])
            overlaps.append(OverlapPair((key, bottom_key), region))

    for overlap in overlaps:
        if overlap.region.size == 0:
            logger.warning(f"Tiles {overlap.keys} do not overlap: {overlap.region}")
    return overlaps


def generate_overlap_image(
    base: TileImage,
    region: Region,
    image_dim_x: float,
    image_dim_y: float,
    parameters: ParametersType,
    bounds: RegionBounds,
) -> Tuple[FloatArray, RegionBounds]:
    """Render `base` over `region` through the dewarp transform.

    Pixels whose source position falls outside the base tile are set to 0
    and tighten `bounds`.
    """
    ys, xs = np.mgrid[
        region.y:region.y + max(region.height, 0),
        region.x:region.x + max(region.width, 0),
    ]
    center = tile_center(base.tile_origin, image_dim_x, image_dim_y)
    old_x, old_y = get_old_index(xs, ys, center, parameters)
    valid = base.contains(old_x, old_y)

    pixels = np.zeros(xs.shape, dtype=np.float64)
    pixels[valid] = base.sample(old_x[valid], old_y[valid])
    invalid = ~valid
    return pixels, bounds.shrink_toward(xs[invalid], ys[invalid], region)


def crop_overlap_images(
    images: Tuple[FloatArray, FloatArray], region: Region, bounds: RegionBounds
) -> Tuple[FloatArray, FloatArray]:
    """Cut both overlap images down to `bounds`; empty if the bounds collapsed."""
    if bounds.is_empty:
        empty = np.zeros((0, 0), dtype=np.float64)
        return empty, empty
    rows = slice(bounds.top - region.y, bounds.bottom - region.y)
    cols = slice(bounds.left - region.x, bounds.right - region.x)
    first, second = images
    return first[rows, cols], second[rows, cols]


def create_overlap_images(
    overlap: OverlapPair,
    image_grid: ImageGrid,
    image_dim_x: float,
    image_dim_y: float,
    parameters: ParametersType,
) -> Tuple[Tuple[FloatArray, FloatArray], RegionBounds]:
    """Warped, cropped images of both tiles over the overlap, plus the shared bounds."""
    region = overlap.region
    bounds = RegionBounds.from_region(region)
    first_key, second_key = overlap.keys

    first, bounds = generate_overlap_image(
        image_grid[first_key], region, image_dim_x, image_dim_y, parameters, bounds
    )
    second, bounds = generate_overlap_image(
        image_grid[second_key], region, image_dim_x, image_dim_y, parameters, bounds
    )
    return crop_overlap_images((first, second), region, bounds), bounds
