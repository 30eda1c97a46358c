"""In-process view of the host application's data structures.

The filters in this package read and write named, typed arrays that live in
attribute matrices inside data containers. The host owns the storage; the
classes here only hold references to numpy arrays supplied by the caller so
that the filters can borrow views into them.
"""
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np


class DataArrayPath(NamedTuple):
    """A (data container, attribute matrix, data array) path."""

    data_container: str
    attribute_matrix: str
    data_array: str = ""


@dataclass
class DataArray:
    name: str
    data: np.ndarray
    """Array of shape (tuples,) or (tuples, components)."""

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def number_of_tuples(self) -> int:
        return int(self.data.shape[0]) if self.data.ndim else 0

    @property
    def number_of_components(self) -> int:
        return int(np.prod(self.data.shape[1:])) if self.data.ndim > 1 else 1

    def tuple_view(self) -> np.ndarray:
        """Return a (tuples, components) view sharing memory with `data`."""
        return self.data.reshape(self.number_of_tuples, self.number_of_components)

    def component_view(self, component: int = 0) -> np.ndarray:
        """Return a flat view of one component, sharing memory with `data`."""
        return self.tuple_view()[:, component]


@dataclass
class AttributeMatrix:
    name: str
    tuple_dimensions: Tuple[int, ...]
    arrays: Dict[str, DataArray] = field(default_factory=dict)

    @property
    def number_of_tuples(self) -> int:
        return int(np.prod(self.tuple_dimensions)) if self.tuple_dimensions else 0

    def attribute_array_names(self) -> List[str]:
        return list(self.arrays.keys())

    def get_attribute_array(self, name: str) -> Optional[DataArray]:
        return self.arrays.get(name)

    def add_attribute_array(self, array: DataArray) -> None:
        self.arrays[array.name] = array

    def resize_attribute_arrays(self, tuple_dimensions: Tuple[int, ...]) -> None:
        """Change the tuple dimensions, reallocating any array whose size no longer fits."""
        self.tuple_dimensions = tuple(int(d) for d in tuple_dimensions)
        n = self.number_of_tuples
        for name, array in self.arrays.items():
            if array.number_of_tuples == n:
                continue
            shape = (n,) + array.data.shape[1:]
            self.arrays[name] = DataArray(name, np.zeros(shape, dtype=array.dtype))


@dataclass
class ImageGeometry:
    dimensions: Tuple[int, int, int]
    """Number of pixels along x, y, z."""
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)


@dataclass
class DataContainer:
    name: str
    geometry: Optional[ImageGeometry] = None
    attribute_matrices: Dict[str, AttributeMatrix] = field(default_factory=dict)

    def get_attribute_matrix(self, name: str) -> Optional[AttributeMatrix]:
        return self.attribute_matrices.get(name)

    def add_attribute_matrix(self, matrix: AttributeMatrix) -> None:
        self.attribute_matrices[matrix.name] = matrix


@dataclass
class DataContainerArray:
    containers: Dict[str, DataContainer] = field(default_factory=dict)

    def add_data_container(self, container: DataContainer) -> None:
        self.containers[container.name] = container

    def get_data_container(self, name: str) -> Optional[DataContainer]:
        return self.containers.get(name)

    def get_attribute_matrix(self, path: DataArrayPath) -> Optional[AttributeMatrix]:
        dc = self.get_data_container(path.data_container)
        if dc is None:
            return None
        return dc.get_attribute_matrix(path.attribute_matrix)

    def get_data_array(self, path: DataArrayPath) -> Optional[DataArray]:
        am = self.get_attribute_matrix(path)
        if am is None:
            return None
        return am.get_attribute_array(path.data_array)


@dataclass
class GridMontage:
    """A rows x columns grid of tiles, each stored in its own data container."""

    row_count: int
    column_count: int
    tiles: Dict[Tuple[int, int], DataContainer] = field(default_factory=dict)

    def get_tile_index(self, row: int, column: int) -> Tuple[int, int]:
        if not (0 <= row < self.row_count and 0 <= column < self.column_count):
            raise IndexError(
                f"Tile ({row}, {column}) outside {self.row_count}x{self.column_count} montage"
            )
        return (row, column)

    def get_data_container(self, index: Tuple[int, int]) -> DataContainer:
        try:
            return self.tiles[index]
        except KeyError:
            raise KeyError(f"No data container for tile {index}") from None

    def set_data_container(self, row: int, column: int, container: DataContainer) -> None:
        self.tiles[self.get_tile_index(row, column)] = container
