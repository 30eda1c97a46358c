"""Background estimation for a stack of images sharing one geometry.

The estimate is built in stages:

1. Threshold-gated aggregation: every pixel sums the values of the images
   whose value at that pixel lies in [low, high] and counts them.
2. Averaging: sum / count. A pixel no image qualified for has 0 / 0, which
   is kept as NaN and marked invalid rather than silently replaced.
3. Least-squares fit of f(x, y) = c0 + c1 x + c2 y + c3 xy + c4 x^2 + c5 y^2
   to the valid average pixels, using column-pivoted QR.
4. Centering: the fitted surface minus its mean, so the background describes
   deviation from uniform illumination rather than an absolute level.
5. Optional in-place correction of the source images (subtract or divide).

All fields are flat arrays addressed by linear pixel index. The polynomial
coordinates follow the host's tuple ordering: x = index // width and
y = index % width, where width is the first geometry dimension.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import scipy.linalg

from .parameters import CorrectionMode
from .registration._typing_utils import BoolArray, FloatArray, IntArray, NumArray

logger = logging.getLogger(__name__)

NUM_COEFFICIENTS_2ND_ORDER = 6

# Pixel element types the estimator accepts. Correction results are clamped
# to the range of the image's own type.
SUPPORTED_DTYPES = (np.dtype(np.uint8), np.dtype(np.uint16))


def is_supported_dtype(dtype: np.dtype) -> bool:
    return np.dtype(dtype) in SUPPORTED_DTYPES


def _check_supported(image: NumArray) -> None:
    if not is_supported_dtype(image.dtype):
        supported = ", ".join(str(d) for d in SUPPORTED_DTYPES)
        raise TypeError(f"Unsupported pixel type {image.dtype}; expected one of {supported}")


@dataclass
class BackgroundAverage:
    values: FloatArray
    """Per-pixel mean of the qualifying samples; NaN where no sample qualified."""
    valid: BoolArray
    """True where at least one sample qualified."""

    @property
    def invalid_count(self) -> int:
        return int(np.count_nonzero(~self.valid))


@dataclass
class CorrectionResult:
    modified: int
    """Number of pixels written."""
    skipped: BoolArray
    """Pixels inside the threshold that could not be corrected (divide mode only)."""

    @property
    def skipped_count(self) -> int:
        return int(np.count_nonzero(self.skipped))


def aggregate(
    images: Iterable[NumArray], low: int, high: int
) -> Tuple[FloatArray, IntArray]:
    """Sum the in-threshold values of every image per pixel and count contributors.

    Raises:
        ValueError: If no images are given or their sizes differ.
        TypeError: If an image has an unsupported element type.
    """
    background: Optional[FloatArray] = None
    counts: Optional[IntArray] = None

    for i, image in enumerate(images):
        _check_supported(image)
        flat = np.ravel(image)
        if background is None:
            background = np.zeros(flat.size, dtype=np.float64)
            counts = np.zeros(flat.size, dtype=np.int64)
        elif flat.size != background.size:
            raise ValueError(
                f"Image {i} has {flat.size} pixels, expected {background.size}"
            )
        in_range = (flat >= low) & (flat <= high)
        background[in_range] += flat[in_range]
        counts += in_range

    if background is None:
        raise ValueError("At least one image is required to estimate a background")
    return background, counts


def average(background: FloatArray, counts: IntArray) -> BackgroundAverage:
    """Divide the aggregated sums by their counts."""
    with np.errstate(divide="ignore", invalid="ignore"):
        values = background / counts
    return BackgroundAverage(values=values, valid=counts > 0)


def design_matrix(num_points: int, width: int) -> FloatArray:
    """Least-squares design matrix with columns [1, x, y, xy, x^2, y^2]."""
    if width <= 0:
        raise ValueError(f"width must be positive, got {width}")
    index = np.arange(num_points, dtype=np.int64)
    x = (index // width).astype(np.float64)
    y = (index % width).astype(np.float64)
    return np.column_stack([np.ones(num_points), x, y, x * y, x * x, y * y])


def _solve_pivoted_qr(A: FloatArray, b: FloatArray) -> FloatArray:
    """Least-squares solve of A p = b by QR with column pivoting.

    Columns whose diagonal entry in R is negligible are treated as
    rank-deficient and get a zero coefficient.
    """
    Q, R, perm = scipy.linalg.qr(A, mode="economic", pivoting=True)
    diag = np.abs(np.diag(R))
    if diag.size == 0 or diag[0] == 0.0:
        return np.zeros(A.shape[1])
    threshold = diag[0] * max(A.shape) * np.finfo(np.float64).eps
    rank = int(np.count_nonzero(diag > threshold))

    qtb = Q[:, :rank].T @ b
    z = scipy.linalg.solve_triangular(R[:rank, :rank], qtb)

    p = np.zeros(A.shape[1])
    p[perm[:rank]] = z
    return p


def fit_polynomial(
    background: FloatArray, width: int, valid: Optional[BoolArray] = None
) -> FloatArray:
    """Fit the six 2nd-order coefficients to a background field.

    Cells that are not finite, or are False in `valid`, are left out of the
    system.

    Raises:
        ValueError: If no cell can be used.
    """
    values = np.ravel(np.asarray(background, dtype=np.float64))
    usable = np.isfinite(values)
    if valid is not None:
        usable &= np.ravel(valid)
    if not usable.any():
        raise ValueError("Background field has no valid pixels to fit")

    A = design_matrix(values.size, width)
    if not usable.all():
        logger.debug(f"Fitting background on {usable.sum()} of {values.size} pixels")
    return _solve_pivoted_qr(A[usable], values[usable])


def evaluate_polynomial(coeffs: FloatArray, num_points: int, width: int) -> FloatArray:
    return design_matrix(num_points, width) @ np.asarray(coeffs, dtype=np.float64)


def centered_surface(coeffs: FloatArray, width: int, height: int) -> FloatArray:
    """Evaluate the polynomial over width * height pixels and remove its mean."""
    surface = evaluate_polynomial(coeffs, width * height, width)
    return surface - surface.mean()


def apply_correction(
    image: NumArray,
    surface: FloatArray,
    low: int,
    high: int,
    mode: CorrectionMode,
) -> CorrectionResult:
    """Correct the in-threshold pixels of `image` in place.

    Subtract mode writes clip(value - surface, type min, type max), truncated
    toward zero. Divide mode writes value / surface without clamping; a
    quotient that is not finite or does not fit the pixel type leaves the
    pixel unchanged and is reported in `CorrectionResult.skipped`.
    """
    _check_supported(image)
    flat = image.reshape(-1)
    if not np.shares_memory(flat, image):
        raise ValueError("Image must be contiguous to be corrected in place")
    surface = np.ravel(surface)
    if surface.size != flat.size:
        raise ValueError(f"Surface has {surface.size} pixels, image has {flat.size}")

    skipped = np.zeros(flat.size, dtype=bool)
    if mode is CorrectionMode.NONE:
        return CorrectionResult(modified=0, skipped=skipped)

    info = np.iinfo(flat.dtype)
    in_range = (flat >= low) & (flat <= high)
    values = flat[in_range].astype(np.float64)

    if mode is CorrectionMode.SUBTRACT:
        corrected = np.clip(values - surface[in_range], info.min, info.max)
        flat[in_range] = corrected.astype(flat.dtype)
        return CorrectionResult(modified=int(in_range.sum()), skipped=skipped)

    if mode is CorrectionMode.DIVIDE:
        with np.errstate(divide="ignore", invalid="ignore"):
            quotient = values / surface[in_range]
        representable = np.isfinite(quotient) & (quotient >= info.min) & (quotient < info.max + 1)
        target = np.flatnonzero(in_range)
        flat[target[representable]] = quotient[representable].astype(flat.dtype)
        skipped[target[~representable]] = True
        return CorrectionResult(modified=int(representable.sum()), skipped=skipped)

    raise ValueError(f"Unexpected CorrectionMode value: {mode}")


class BackgroundStage(enum.IntEnum):
    IDLE = 0
    AGGREGATED = 1
    AVERAGED = 2
    FITTED = 3
    CENTERED = 4
    APPLIED = 5


class BackgroundEstimator:
    """Single-pass background estimation over images of one geometry.

    Each stage requires the previous one; there is no rollback. A stage that
    raises leaves the estimator where it was.
    """

    def __init__(self, width: int, height: int, low: int = 0, high: int = 255):
        self.width = width
        self.height = height
        self.low = low
        self.high = high
        self.stage = BackgroundStage.IDLE

        self.sums: Optional[FloatArray] = None
        self.counts: Optional[IntArray] = None
        self.average: Optional[BackgroundAverage] = None
        self.coefficients: Optional[FloatArray] = None
        self.surface: Optional[FloatArray] = None

    @property
    def num_points(self) -> int:
        return self.width * self.height

    def _require(self, expected: BackgroundStage, new: BackgroundStage) -> None:
        if self.stage != expected:
            raise RuntimeError(
                f"Cannot move to {new.name}: estimator is {self.stage.name}, expected {expected.name}"
            )

    def aggregate(self, images: Iterable[NumArray]) -> None:
        if self.stage != BackgroundStage.IDLE:
            raise RuntimeError(f"Images already aggregated (stage {self.stage.name})")
        sums, counts = aggregate(images, self.low, self.high)
        if sums.size != self.num_points:
            raise ValueError(
                f"Images have {sums.size} pixels, expected {self.width}x{self.height}"
            )
        self.sums, self.counts = sums, counts
        self.stage = BackgroundStage.AGGREGATED

    # A stage is committed only after its work succeeds.
    def compute_average(self) -> BackgroundAverage:
        self._require(BackgroundStage.AGGREGATED, BackgroundStage.AVERAGED)
        self.average = average(self.sums, self.counts)
        self.stage = BackgroundStage.AVERAGED
        return self.average

    def fit(self) -> FloatArray:
        self._require(BackgroundStage.AVERAGED, BackgroundStage.FITTED)
        self.coefficients = fit_polynomial(self.average.values, self.width, self.average.valid)
        self.stage = BackgroundStage.FITTED
        return self.coefficients

    def center(self) -> FloatArray:
        self._require(BackgroundStage.FITTED, BackgroundStage.CENTERED)
        self.surface = centered_surface(self.coefficients, self.width, self.height)
        self.stage = BackgroundStage.CENTERED
        return self.surface

    def apply(self, images: Sequence[NumArray], mode: CorrectionMode) -> list[CorrectionResult]:
        self._require(BackgroundStage.CENTERED, BackgroundStage.APPLIED)
        results = [
            apply_correction(image, self.surface, self.low, self.high, mode)
            for image in images
        ]
        self.stage = BackgroundStage.APPLIED
        return results

    def run(self, images: Sequence[NumArray]) -> FloatArray:
        """Aggregate, average, fit and center in one call; returns the centered surface."""
        self.aggregate(images)
        self.compute_average()
        self.fit()
        return self.center()
