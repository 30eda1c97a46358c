"""FFT convolution scoring of two overlap images."""
from typing import Any, Optional, Tuple

import numpy as np

from ._tensor_backend import TensorBackend, get_tensor_backend
from ._typing_utils import FloatArray


def full_shape(first: FloatArray, second: FloatArray) -> Tuple[int, int]:
    return (
        first.shape[0] + second.shape[0] - 1,
        first.shape[1] + second.shape[1] - 1,
    )


def _convolve(first: FloatArray, second: FloatArray, backend: TensorBackend) -> Any:
    if first.size == 0 or second.size == 0:
        raise ValueError("Cannot convolve empty images")
    shape = full_shape(first, second)
    kernel = np.ascontiguousarray(second[::-1, ::-1])
    f1 = backend.fft2(backend.asarray(first, dtype=np.float64), shape)
    f2 = backend.fft2(backend.asarray(kernel, dtype=np.float64), shape)
    return backend.ifft2(f1 * f2).real


def fft_convolve(
    first: FloatArray, second: FloatArray, backend: Optional[TensorBackend] = None
) -> FloatArray:
    """Full, zero padded convolution of `first` with `second` reversed in both axes.

    Reversing the kernel makes the product a cross-correlation, so identical
    images peak at zero shift with their total energy sum(first ** 2).
    """
    backend = backend or get_tensor_backend()
    try:
        return backend.asnumpy(_convolve(first, second, backend))
    finally:
        backend.cleanup_memory()


def convolution_peak(
    first: FloatArray, second: FloatArray, backend: Optional[TensorBackend] = None
) -> float:
    """Maximum of fft_convolve(first, second), computed on the backend's device."""
    backend = backend or get_tensor_backend()
    try:
        return backend.max(_convolve(first, second, backend))
    finally:
        backend.cleanup_memory()
