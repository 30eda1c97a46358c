"""Dewarp cost function for a tile montage.

For a dewarp parameter vector, every pair of neighbouring tiles is warped
into their shared overlap, cropped to the area both tiles actually cover,
and scored by the peak of an FFT convolution. The cost is the square of the
summed peaks, so better-aligned overlaps give larger values.

Tile materialization and pair scoring run on a thread pool. Each task
returns its own result and the results are combined afterwards in a fixed
order, so the cost does not depend on scheduling.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..benchmarking_util import debug_timing
from ..datamodel import GridMontage
from ._overlap import (
    calculate_image_dim,
    create_overlap_images,
    create_overlap_pairs,
    materialize_tile,
    precalc_crop_map,
)
from ._tensor_backend import TensorBackend, get_tensor_backend
from ._typing_utils import ParametersType
from .dewarp import REQUIRED_PARAMETER_SIZE, validate_parameters
from .fft_convolution import convolution_peak
from .montage import ImageGrid, OverlapPair, RegionBounds

# Configure logger
logger = logging.getLogger(__name__)


class FFTConvolutionCostFunction:
    def __init__(
        self,
        backend: Optional[TensorBackend] = None,
        max_workers: Optional[int] = None,
        show_progress: bool = False,
    ):
        self.backend = backend
        self.max_workers = max_workers
        self.show_progress = show_progress

        self.montage: Optional[GridMontage] = None
        self._image_grid: ImageGrid = {}
        self._overlaps: List[OverlapPair] = []
        self._image_dim_x = 0.0
        self._image_dim_y = 0.0

    @property
    def image_grid(self) -> ImageGrid:
        return dict(self._image_grid)

    @property
    def overlaps(self) -> List[OverlapPair]:
        return list(self._overlaps)

    @property
    def image_dim_x(self) -> float:
        return self._image_dim_x

    @property
    def image_dim_y(self) -> float:
        return self._image_dim_y

    @property
    def number_of_parameters(self) -> int:
        return REQUIRED_PARAMETER_SIZE

    def _resolve_backend(self) -> TensorBackend:
        # Pool threads only ever see an already resolved backend.
        if self.backend is None:
            self.backend = get_tensor_backend()
        return self.backend

    def initialize(self, montage: GridMontage, am_name: str, da_name: str) -> None:
        """Materialize every tile of `montage` and derive the overlap pairs.

        Args:
            montage: Tile grid; each tile's data container holds `am_name`/`da_name`.
            am_name: Attribute matrix with the tile pixels.
            da_name: Grayscale data array inside `am_name`.
        """
        self.montage = montage
        self._resolve_backend()
        self._image_dim_x, self._image_dim_y = calculate_image_dim(montage)

        cells = [
            (row, column)
            for row in range(montage.row_count)
            for column in range(montage.column_count)
        ]

        def materialize(cell: Tuple[int, int]):
            row, column = cell
            return materialize_tile(
                montage, row, column, am_name, da_name, self._image_dim_x, self._image_dim_y
            )

        with debug_timing("materialize montage tiles"):
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                tiles = list(
                    tqdm(
                        executor.map(materialize, cells),
                        total=len(cells),
                        desc="materialize",
                        disable=not self.show_progress,
                    )
                )
        self._image_grid = dict(tiles)

        crop_map = precalc_crop_map(self._image_grid)
        self._overlaps = create_overlap_pairs(crop_map)
        logger.info(
            f"Initialized {len(self._image_grid)} tiles with {len(self._overlaps)} overlaps "
            f"(nominal tile {self._image_dim_x:g}x{self._image_dim_y:g})"
        )

    def _score_overlap(
        self, overlap: OverlapPair, parameters: ParametersType, backend: TensorBackend
    ) -> Tuple[float, RegionBounds]:
        (first, second), bounds = create_overlap_images(
            overlap, self._image_grid, self._image_dim_x, self._image_dim_y, parameters
        )
        if first.size == 0:
            logger.debug(f"Overlap {overlap.keys} has no valid pixels for these parameters")
            return 0.0, bounds
        return convolution_peak(first, second, backend), bounds

    def _score_all(self, parameters: ParametersType) -> List[Tuple[float, RegionBounds]]:
        if self.montage is None:
            raise RuntimeError("initialize() must be called before evaluating the cost")
        params = validate_parameters(parameters)
        backend = self._resolve_backend()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(
                executor.map(lambda o: self._score_overlap(o, params, backend), self._overlaps)
            )

    def get_value(self, parameters: ParametersType) -> float:
        """Square of the summed convolution peaks over every overlap."""
        scores = self._score_all(parameters)
        residual = float(sum(score for score, _ in scores))
        return residual * residual

    __call__ = get_value

    def get_derivative(self, parameters: ParametersType) -> np.ndarray:
        raise NotImplementedError(
            "FFTConvolutionCostFunction has no derivative; use a derivative-free optimizer"
        )

    def overlap_report(self, parameters: ParametersType) -> pd.DataFrame:
        """Per-overlap scores and cropped bounds for `parameters`."""
        scores = self._score_all(parameters)
        rows = []
        for overlap, (score, bounds) in zip(self._overlaps, scores):
            (c0, r0), (c1, r1) = overlap.keys
            rows.append(
                {
                    "first_col": c0,
                    "first_row": r0,
                    "second_col": c1,
                    "second_row": r1,
                    "direction": overlap.direction,
                    "region_x": overlap.region.x,
                    "region_y": overlap.region.y,
                    "region_width": overlap.region.width,
                    "region_height": overlap.region.height,
                    "top": bounds.top,
                    "bottom": bounds.bottom,
                    "left": bounds.left,
                    "right": bounds.right,
                    "score": score,
                }
            )
        return pd.DataFrame(rows)
