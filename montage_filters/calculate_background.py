import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from tqdm import tqdm

from . import messages
from .background import BackgroundEstimator, CorrectionResult, is_supported_dtype
from .benchmarking_util import debug_timing
from .datamodel import AttributeMatrix, DataArray, DataContainerArray
from .messages import FilterCallbacks, FilterError
from .parameters import CalculateBackgroundParameters, CorrectionMode

HUMAN_LABEL = "Calculate Background"


@dataclass
class BackgroundResult:
    background: DataArray
    """The centered background surface, stored in the new attribute matrix."""
    coefficients: np.ndarray
    """The six polynomial coefficients before centering."""
    invalid_pixels: int
    """Pixels for which no image had an in-threshold value."""
    corrections: dict[str, CorrectionResult] = field(default_factory=dict)


class CalculateBackground:
    """Estimate a smooth background shared by every image in an attribute matrix.

    Every array in the selected attribute matrix is one image. The filter
    averages the in-threshold pixel values across images, fits a 2nd-order
    polynomial surface, stores the mean-centered surface as a new float64
    array and, if requested, subtracts it from or divides it into the source
    images in place.
    """

    def __init__(
        self,
        data_container_array: DataContainerArray,
        params: CalculateBackgroundParameters,
        callbacks: Optional[FilterCallbacks] = None,
    ):
        self.dca = data_container_array
        self.params = params
        self.callbacks = callbacks or FilterCallbacks.logged(logging.getLogger(__name__), HUMAN_LABEL)
        self.tqdm_class = tqdm

        self.error_condition = 0
        self._first_error: Optional[FilterError] = None
        self.total_points = 0

    def _set_error(self, code: int, message: str) -> None:
        self.error_condition = code
        if self._first_error is None:
            self._first_error = FilterError(code, message)
        self.callbacks.error(code, message)

    def _image_arrays(self, am: AttributeMatrix) -> list[DataArray]:
        return [am.get_attribute_array(name) for name in am.attribute_array_names()]

    def data_check(self) -> None:
        """Validate the inputs; every problem is reported through the error callback.

        Nothing is created or modified unless every check passes.
        """
        self.error_condition = 0
        self._first_error = None
        self.total_points = 0
        path = self.params.attribute_matrix_path

        am = self.dca.get_attribute_matrix(path)
        if am is None:
            self._set_error(
                messages.ATTRIBUTE_MATRIX_NOT_FOUND,
                "The attribute matrix has not been selected properly",
            )
            return

        arrays = self._image_arrays(am)
        if not arrays:
            self._set_error(messages.NO_IMAGE_ARRAYS, f"Attribute matrix '{am.name}' holds no image arrays")

        for array in arrays:
            if array is None or not is_supported_dtype(array.dtype):
                name = array.name if array is not None else "<missing>"
                dtype = array.dtype if array is not None else None
                self._set_error(
                    messages.DATA_ARRAY_NOT_FOUND,
                    f"The data was not found: array '{name}' must be uint8 or uint16, got {dtype}",
                )

        if self.params.subtract_background and self.params.divide_background:
            self._set_error(
                messages.SUBTRACT_AND_DIVIDE_SELECTED,
                "Cannot choose BOTH subtract and divide. Choose one or neither.",
            )

        if self.error_condition < 0:
            return

        expected = am.number_of_tuples
        for array in arrays:
            if array.number_of_tuples != expected or array.number_of_components != 1:
                self._set_error(
                    messages.IMAGE_SIZE_MISMATCH,
                    f"Array '{array.name}' has {array.number_of_tuples}x{array.number_of_components} "
                    f"values, expected {expected} single-component tuples",
                )
        if self.error_condition < 0:
            return

        dc = self.dca.get_data_container(path.data_container)
        if dc.get_attribute_matrix(self.params.background_attribute_matrix_name) is not None:
            self._set_error(
                messages.BACKGROUND_MATRIX_EXISTS,
                f"Attribute matrix '{self.params.background_attribute_matrix_name}' already exists",
            )
            return

        self.total_points = expected

    def _geometry(self, am: AttributeMatrix) -> tuple[int, int]:
        """(width, height) of the images: the first tuple dimension and the rest."""
        dims = tuple(am.tuple_dimensions)
        width = int(dims[0])
        height = int(np.prod(dims[1:])) if len(dims) > 1 else 1
        return width, height

    def execute(self) -> BackgroundResult:
        self.data_check()
        if self.error_condition < 0:
            raise self._first_error

        path = self.params.attribute_matrix_path
        am = self.dca.get_attribute_matrix(path)
        arrays = self._image_arrays(am)
        images = [array.component_view() for array in arrays]
        width, height = self._geometry(am)

        estimator = BackgroundEstimator(
            width, height, self.params.low_thresh, self.params.high_thresh
        )
        estimator.aggregate(
            self.tqdm_class(images, desc="Accumulating images", disable=not self.params.verbose)
        )
        avg = estimator.compute_average()
        if not avg.valid.any():
            self._set_error(
                messages.NO_PIXELS_IN_THRESHOLD,
                f"No pixel has a value between {self.params.low_thresh} and "
                f"{self.params.high_thresh} in any image; there is nothing to fit",
            )
            raise self._first_error
        if avg.invalid_count:
            self.callbacks.warning(
                messages.PIXELS_WITHOUT_SAMPLES,
                f"{avg.invalid_count} pixels had no value between {self.params.low_thresh} "
                f"and {self.params.high_thresh}; they are excluded from the fit",
            )

        self.callbacks.status(
            "Fitting a polynomial to data. May take a while to solve if images are large"
        )
        with debug_timing("background polynomial fit"):
            coefficients = estimator.fit()
        surface = estimator.center()

        dc = self.dca.get_data_container(path.data_container)
        background_am = AttributeMatrix(
            self.params.background_attribute_matrix_name, tuple(am.tuple_dimensions)
        )
        background = DataArray(self.params.background_image_array_name, surface.copy())
        background_am.add_attribute_array(background)
        dc.add_attribute_matrix(background_am)

        result = BackgroundResult(
            background=background,
            coefficients=coefficients,
            invalid_pixels=avg.invalid_count,
        )

        mode = self.params.correction_mode
        if mode is not CorrectionMode.NONE:
            corrections = estimator.apply(images, mode)
            for i, (array, correction) in enumerate(zip(arrays, corrections)):
                result.corrections[array.name] = correction
                if correction.skipped_count:
                    self.callbacks.warning(
                        messages.DIVIDE_PIXELS_SKIPPED,
                        f"{correction.skipped_count} pixels of '{array.name}' could not be divided "
                        "by the background and were left unchanged",
                    )
                self.callbacks.progress(i + 1, len(arrays))

        self.callbacks.status("Complete")
        return result
