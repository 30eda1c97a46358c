import enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, model_validator

from .datamodel import DataArrayPath

BYTE_MIN = 0
BYTE_MAX = 255


class CorrectionMode(enum.Enum):
    NONE = "none"
    SUBTRACT = "subtract"
    DIVIDE = "divide"


def non_empty_name(name: str) -> str:
    """Pydantic validator rejecting blank names."""
    if not name.strip():
        raise ValueError("Name must not be empty")
    return name


class _JsonFileModel(BaseModel):
    @classmethod
    def from_json_file(cls, json_path: str):
        """Create parameters from a JSON file.

        Args:
            json_path: Path to JSON file containing parameters
        """
        with open(json_path) as f:
            return cls.model_validate_json(f.read())

    def to_json_file(self, json_path: str) -> None:
        """Save parameters to a JSON file.

        Args:
            json_path: Path where JSON file should be saved
        """
        with open(json_path, "w") as f:
            f.write(self.model_dump_json(indent=2))


class CalculateBackgroundParameters(
    _JsonFileModel,
    use_attribute_docstrings=True,
):
    """Parameters for estimating and removing a smooth background from an image stack."""

    attribute_matrix_path: DataArrayPath
    """(data container, attribute matrix) holding one array per image.

    The data array component of the path is ignored; every array in the
    matrix is treated as an image.
    """

    low_thresh: int = Field(default=BYTE_MIN, ge=BYTE_MIN, le=BYTE_MAX)
    """Lowest image value included in the background average."""

    high_thresh: int = Field(default=BYTE_MAX, ge=BYTE_MIN, le=BYTE_MAX)
    """Highest image value included in the background average.

    A range with low_thresh > high_thresh is accepted and simply excludes
    every pixel.
    """

    background_attribute_matrix_name: Annotated[str, AfterValidator(non_empty_name)] = "Background"
    """Name of the attribute matrix created to hold the background image."""

    background_image_array_name: Annotated[str, AfterValidator(non_empty_name)] = "BackgroundImage"
    """Name of the float64 background array."""

    subtract_background: bool = False
    """Subtract the background from every source image in place."""

    divide_background: bool = False
    """Divide every source image by the background in place."""

    verbose: bool = False
    """Show per-image progress bars."""

    @property
    def correction_mode(self) -> CorrectionMode:
        if self.subtract_background and self.divide_background:
            raise ValueError("Cannot choose BOTH subtract and divide. Choose one or neither.")
        if self.subtract_background:
            return CorrectionMode.SUBTRACT
        if self.divide_background:
            return CorrectionMode.DIVIDE
        return CorrectionMode.NONE


class DewarpRegistrationParameters(
    _JsonFileModel,
    use_attribute_docstrings=True,
):
    """Parameters for scoring and optimizing dewarp coefficients over a tile montage."""

    attribute_matrix_name: Annotated[str, AfterValidator(non_empty_name)]
    """Attribute matrix holding the tile pixels in every tile's data container."""

    data_array_name: Annotated[str, AfterValidator(non_empty_name)]
    """Grayscale array inside `attribute_matrix_name`."""

    max_workers: Optional[int] = Field(default=None, ge=1)
    """Thread pool size for tile materialization and overlap scoring. None lets
    the executor choose."""

    tensor_engine: Optional[str] = "numpy"
    """FFT engine: 'numpy', 'torch', 'cupy', or None to pick the first available."""

    initial_parameters: Optional[list[float]] = None
    """Starting dewarp coefficients; the identity transform when unset."""

    max_iterations: int = Field(default=500, ge=1)
    """Upper bound on cost evaluations across all restarts."""

    initial_simplex_delta: Optional[list[float]] = None
    """Per-parameter simplex edge lengths. None builds the simplex automatically."""

    function_tolerance: float = Field(default=1e-4, gt=0)
    """Convergence threshold on the spread of simplex cost values."""

    parameters_tolerance: float = Field(default=1e-8, gt=0)
    """Convergence threshold on the simplex diameter."""

    optimize_with_restarts: bool = False
    """Rerun the simplex from the best point with halved edges until converged."""

    maximize: bool = True
    """The convolution cost grows with alignment quality, so it is maximized by default."""

    @model_validator(mode="after")
    def _check_vector_lengths(self) -> "DewarpRegistrationParameters":
        from .registration.dewarp import REQUIRED_PARAMETER_SIZE

        for name in ("initial_parameters", "initial_simplex_delta"):
            value = getattr(self, name)
            if value is not None and len(value) != REQUIRED_PARAMETER_SIZE:
                raise ValueError(
                    f"{name} must have {REQUIRED_PARAMETER_SIZE} entries, got {len(value)}"
                )
        return self
