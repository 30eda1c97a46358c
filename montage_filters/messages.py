"""Numeric codes and the status/error sink shared by the filters.

Errors found while checking inputs are reported through FilterCallbacks.error
and raised as FilterError from execute(); warnings never stop a filter.
"""
import logging
from dataclasses import dataclass
from typing import Callable

# Error codes reported by CalculateBackground. All but the last come from data_check().
ATTRIBUTE_MATRIX_NOT_FOUND = -76000
DATA_ARRAY_NOT_FOUND = -76001
SUBTRACT_AND_DIVIDE_SELECTED = -76002
NO_IMAGE_ARRAYS = -76003
IMAGE_SIZE_MISMATCH = -76004
BACKGROUND_MATRIX_EXISTS = -76005
NO_PIXELS_IN_THRESHOLD = -76006

# Warning codes reported while executing.
PIXELS_WITHOUT_SAMPLES = -76100
DIVIDE_PIXELS_SKIPPED = -76101


class FilterError(Exception):
    """A filter failed with a host-visible error code."""

    def __init__(self, code: int, message: str):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message


@dataclass
class FilterCallbacks:
    status: Callable[[str], None]
    error: Callable[[int, str], None]
    warning: Callable[[int, str], None]
    progress: Callable[[int, int], None]

    @classmethod
    def no_op(cls):
        return cls(
            status=lambda _s: None,
            error=lambda _c, _s: None,
            warning=lambda _c, _s: None,
            progress=lambda _a, _b: None,
        )

    @classmethod
    def logged(cls, logger: logging.Logger, label: str = ""):
        """Callbacks that forward every message to `logger`."""
        prefix = f"{label}: " if label else ""
        return cls(
            status=lambda s: logger.info(f"{prefix}{s}"),
            error=lambda c, s: logger.error(f"{prefix}{s} ({c})"),
            warning=lambda c, s: logger.warning(f"{prefix}{s} ({c})"),
            progress=lambda a, b: logger.debug(f"{prefix}{a}/{b}"),
        )
