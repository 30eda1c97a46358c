"""Tensor backend abstraction for supporting cupy, torch, and numpy."""

import logging
import warnings
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

ENGINES = ('cupy', 'torch', 'numpy')


class TensorBackend(ABC):
    """Abstract base class for tensor backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def is_gpu(self) -> bool:
        pass

    @abstractmethod
    def asarray(self, array: Any, dtype: Any = None) -> Any:
        pass

    @abstractmethod
    def asnumpy(self, array: Any) -> np.ndarray:
        pass

    @abstractmethod
    def fft2(self, array: Any, shape: Optional[Tuple[int, int]] = None) -> Any:
        """2D FFT, zero padding the input to `shape` when given."""

    @abstractmethod
    def ifft2(self, array: Any) -> Any:
        pass

    @abstractmethod
    def max(self, array: Any) -> float:
        pass

    @abstractmethod
    def cleanup_memory(self) -> None:
        pass


class CupyBackend(TensorBackend):
    """CuPy tensor backend."""

    def __init__(self):
        try:
            import cupy as cp
        except ImportError:
            raise ImportError("CuPy not available")
        self.cp = cp
        try:
            # Test GPU functionality with a simple operation
            _ = cp.sum(cp.array([1.0, 2.0, 3.0]))
            cp.cuda.Device().synchronize()
        except Exception as e:
            raise RuntimeError(f"CuPy available but CUDA operations failed: {e}")

    @property
    def name(self) -> str:
        return "cupy"

    @property
    def is_gpu(self) -> bool:
        return True

    def asarray(self, array: Any, dtype: Any = None) -> Any:
        return self.cp.asarray(array, dtype=dtype)

    def asnumpy(self, array: Any) -> np.ndarray:
        return self.cp.asnumpy(array)

    def fft2(self, array: Any, shape: Optional[Tuple[int, int]] = None) -> Any:
        return self.cp.fft.fft2(array, s=shape)

    def ifft2(self, array: Any) -> Any:
        return self.cp.fft.ifft2(array)

    def max(self, array: Any) -> float:
        return float(self.cp.max(array))

    def cleanup_memory(self) -> None:
        self.cp.get_default_memory_pool().free_all_blocks()
        self.cp.get_default_pinned_memory_pool().free_all_blocks()


class TorchBackend(TensorBackend):
    """PyTorch tensor backend."""

    def __init__(self):
        try:
            import torch
        except ImportError:
            raise ImportError("PyTorch not available")
        self.torch = torch
        self.device = 'cuda' if torch.cuda.is_available() else 'cpu'

        # Test GPU functionality if CUDA is reported as available
        if self.device == 'cuda':
            try:
                _ = torch.sum(torch.tensor([1.0, 2.0, 3.0], device='cuda'))
                torch.cuda.synchronize()
            except Exception as e:
                raise RuntimeError(f"PyTorch available but CUDA operations failed: {e}")

    @property
    def name(self) -> str:
        return "torch"

    @property
    def is_gpu(self) -> bool:
        return self.device == 'cuda'

    def _convert_dtype(self, dtype: Any) -> Any:
        """Convert numpy dtype to torch dtype."""
        if dtype is None:
            return self.torch.float64
        if np.dtype(dtype) == np.float32:
            return self.torch.float32
        return self.torch.float64

    def asarray(self, array: Any, dtype: Any = None) -> Any:
        return self.torch.as_tensor(
            np.ascontiguousarray(array), device=self.device, dtype=self._convert_dtype(dtype)
        )

    def asnumpy(self, array: Any) -> np.ndarray:
        return array.detach().cpu().numpy()

    def fft2(self, array: Any, shape: Optional[Tuple[int, int]] = None) -> Any:
        return self.torch.fft.fft2(array, s=shape)

    def ifft2(self, array: Any) -> Any:
        return self.torch.fft.ifft2(array)

    def max(self, array: Any) -> float:
        return float(self.torch.max(array).item())

    def cleanup_memory(self) -> None:
        if self.is_gpu:
            self.torch.cuda.empty_cache()


class NumpyBackend(TensorBackend):
    """NumPy tensor backend (CPU only)."""

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_gpu(self) -> bool:
        return False

    def asarray(self, array: Any, dtype: Any = None) -> Any:
        return np.asarray(array, dtype=dtype)

    def asnumpy(self, array: Any) -> np.ndarray:
        return np.asarray(array)

    def fft2(self, array: Any, shape: Optional[Tuple[int, int]] = None) -> Any:
        return np.fft.fft2(array, s=shape)

    def ifft2(self, array: Any) -> Any:
        return np.fft.ifft2(array)

    def max(self, array: Any) -> float:
        return float(np.max(array))

    def cleanup_memory(self) -> None:
        pass  # No GPU memory to clean up


def create_tensor_backend(engine: Optional[str] = None, allow_fallback: bool = True) -> TensorBackend:
    """Create a tensor backend with optional automatic fallback.

    Args:
        engine: Preferred engine ('cupy', 'torch', 'numpy'), None for auto
        allow_fallback: Whether to try fallback engines if preferred engine fails

    Returns:
        TensorBackend instance

    Raises:
        ValueError: If `engine` is not a known engine name
        RuntimeError: If no backends are available
    """
    if engine is not None and engine not in ENGINES:
        raise ValueError(f"Unknown tensor engine {engine!r}; expected one of {ENGINES}")

    engines_to_try = [engine] if engine else list(ENGINES)
    # Add remaining engines as fallbacks only if allowed
    if allow_fallback:
        engines_to_try += [e for e in ENGINES if e not in engines_to_try]

    constructors = {'cupy': CupyBackend, 'torch': TorchBackend, 'numpy': NumpyBackend}
    for engine_name in engines_to_try:
        try:
            backend = constructors[engine_name]()
        except (ImportError, RuntimeError) as e:
            warnings.warn(f"Failed to initialize {engine_name} backend: {e}")
            continue
        logger.info(f"Using tensor backend: {backend.name} ({'GPU' if backend.is_gpu else 'CPU'})")
        return backend

    raise RuntimeError("No tensor backends available")


# Global tensor backend instance
_tensor_backend: Optional[TensorBackend] = None


def get_tensor_backend() -> TensorBackend:
    """Get or create the global tensor backend instance."""
    global _tensor_backend
    if _tensor_backend is None:
        _tensor_backend = create_tensor_backend()
    return _tensor_backend


def set_tensor_backend(engine: Optional[str] = None) -> TensorBackend:
    """Set the global tensor backend to use a specific engine.

    Parameters
    ----------
    engine : Optional[str]
        Preferred engine ('cupy', 'torch', 'numpy'), None for auto

    Returns
    -------
    TensorBackend
        The created backend instance
    """
    global _tensor_backend
    _tensor_backend = create_tensor_backend(engine)
    return _tensor_backend
