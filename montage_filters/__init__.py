"""Montage Filters Package.

This package provides image-processing filters for stacks and montages of
microscope images held in a host application's data containers.

Main functionality:
- Background estimation: Fit and remove a smooth illumination background
  shared by a stack of images
- Tile overlap registration: Score dewarp parameters by FFT convolution of
  neighbouring tile overlaps and optimize them with a simplex search
- Multiple tensor backends for CPU and GPU FFTs

The package exposes the main entry points at the top level for convenience.
"""

from .background import BackgroundEstimator, apply_correction, centered_surface, fit_polynomial
from .calculate_background import BackgroundResult, CalculateBackground
from .messages import FilterCallbacks, FilterError
from .parameters import CalculateBackgroundParameters, CorrectionMode, DewarpRegistrationParameters
from .registration import (
    FFTAmoebaOptimizer,
    FFTConvolutionCostFunction,
    identity_parameters,
    register_montage,
)
from .registration._tensor_backend import TensorBackend, create_tensor_backend, get_tensor_backend, set_tensor_backend

__all__ = [
    'BackgroundEstimator',
    'apply_correction',
    'centered_surface',
    'fit_polynomial',
    'BackgroundResult',
    'CalculateBackground',
    'FilterCallbacks',
    'FilterError',
    'CalculateBackgroundParameters',
    'CorrectionMode',
    'DewarpRegistrationParameters',
    'FFTAmoebaOptimizer',
    'FFTConvolutionCostFunction',
    'identity_parameters',
    'register_montage',
    'TensorBackend',
    'create_tensor_backend',
    'get_tensor_backend',
    'set_tensor_backend',
]
