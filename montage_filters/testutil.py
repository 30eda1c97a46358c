from typing import Optional, Sequence

import numpy as np

from .datamodel import (
    AttributeMatrix,
    DataArray,
    DataArrayPath,
    DataContainer,
    DataContainerArray,
    GridMontage,
    ImageGeometry,
)

STACK_CONTAINER = "ImageStack"
STACK_MATRIX = "CellData"
TILE_MATRIX = "TileData"
TILE_ARRAY = "Grayscale"


def image_stack_dca(
    images: Sequence[np.ndarray],
    names: Optional[Sequence[str]] = None,
) -> tuple[DataContainerArray, DataArrayPath]:
    """A data container array with one attribute matrix holding every image.

    Images are (height, width) arrays stored row-major, so the matrix tuple
    dimensions are (width, height, 1).
    """
    height, width = images[0].shape
    names = names or [f"Image_{i}" for i in range(len(images))]
    am = AttributeMatrix(STACK_MATRIX, (width, height, 1))
    for name, image in zip(names, images):
        am.add_attribute_array(DataArray(name, np.ascontiguousarray(image).reshape(-1).copy()))

    dc = DataContainer(STACK_CONTAINER, ImageGeometry((width, height, 1)))
    dc.add_attribute_matrix(am)
    dca = DataContainerArray()
    dca.add_data_container(dc)
    return dca, DataArrayPath(STACK_CONTAINER, STACK_MATRIX)


def polynomial_field(coeffs: Sequence[float], width: int, height: int) -> np.ndarray:
    """c0 + c1 x + c2 y + c3 xy + c4 x^2 + c5 y^2 on a (height, width) grid, x = row, y = column."""
    x, y = np.mgrid[:height, :width].astype(np.float64)
    c = coeffs
    return c[0] + c[1] * x + c[2] * y + c[3] * x * y + c[4] * x * x + c[5] * y * y


def tile_container(
    name: str,
    pixels: np.ndarray,
    origin_x: float,
    origin_y: float,
    spacing: float = 1.0,
) -> DataContainer:
    height, width = pixels.shape
    am = AttributeMatrix(TILE_MATRIX, (width, height, 1))
    am.add_attribute_array(DataArray(TILE_ARRAY, pixels.reshape(-1).copy()))
    dc = DataContainer(
        name,
        ImageGeometry((width, height, 1), (origin_x, origin_y, 0.0), (spacing, spacing, 1.0)),
    )
    dc.add_attribute_matrix(am)
    return dc


def scene_montage(
    scene: np.ndarray,
    n_rows: int,
    n_cols: int,
    tile_width: int,
    tile_height: int,
    overlap: int,
    spacing: float = 1.0,
) -> GridMontage:
    """Cut a scene into an n_rows x n_cols grid of tiles sharing `overlap` pixels."""
    step_x = tile_width - overlap
    step_y = tile_height - overlap
    needed = ((n_rows - 1) * step_y + tile_height, (n_cols - 1) * step_x + tile_width)
    if scene.shape[0] < needed[0] or scene.shape[1] < needed[1]:
        raise ValueError(f"Scene {scene.shape} too small, need {needed}")

    montage = GridMontage(n_rows, n_cols)
    for r in range(n_rows):
        for c in range(n_cols):
            y0, x0 = r * step_y, c * step_x
            pixels = scene[y0:y0 + tile_height, x0:x0 + tile_width]
            montage.set_data_container(
                r, c, tile_container(f"Tile_{r}_{c}", pixels, x0 * spacing, y0 * spacing, spacing)
            )
    return montage


def random_scene(height: int, width: int, seed: int = 0) -> np.ndarray:
    return np.random.default_rng(seed).integers(0, 256, size=(height, width), dtype=np.uint8)
