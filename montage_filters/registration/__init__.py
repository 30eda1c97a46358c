"""Registration module for tile montages.

This module scores how well neighbouring tiles line up under a dewarp
transform and searches for the transform that aligns them best.
"""

from .amoeba_optimizer import FFTAmoebaOptimizer, OptimizationResult
from .dewarp import REQUIRED_PARAMETER_SIZE, identity_parameters
from .dewarp_registration import DewarpResult, register_montage
from .fft_convolution_cost import FFTConvolutionCostFunction
from .montage import OverlapPair, Region, RegionBounds, TileImage

__all__ = [
    'FFTAmoebaOptimizer',
    'OptimizationResult',
    'REQUIRED_PARAMETER_SIZE',
    'identity_parameters',
    'DewarpResult',
    'register_montage',
    'FFTConvolutionCostFunction',
    'OverlapPair',
    'Region',
    'RegionBounds',
    'TileImage',
]
