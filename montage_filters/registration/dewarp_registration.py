"""Dewarp coefficient search over a tile montage.

Combines FFTConvolutionCostFunction with FFTAmoebaOptimizer: the montage is
materialized once, then the simplex search evaluates the overlap cost for
candidate dewarp parameters until it converges.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from ..datamodel import GridMontage
from ..parameters import DewarpRegistrationParameters
from ._tensor_backend import TensorBackend, create_tensor_backend
from ._typing_utils import FloatArray
from .amoeba_optimizer import FFTAmoebaOptimizer, OptimizationResult
from .dewarp import identity_parameters
from .fft_convolution_cost import FFTConvolutionCostFunction

# Configure logger
logger = logging.getLogger(__name__)


@dataclass
class DewarpResult:
    parameters: FloatArray
    initial_value: float
    optimization: OptimizationResult
    overlaps: pd.DataFrame
    """Per-overlap scores at the final parameters."""

    @property
    def value(self) -> float:
        return self.optimization.value


def register_montage(
    montage: GridMontage,
    params: DewarpRegistrationParameters,
    backend: Optional[TensorBackend] = None,
    optimizer: Optional[FFTAmoebaOptimizer] = None,
) -> DewarpResult:
    """Search for the dewarp parameters that best align every tile overlap.

    Args:
        montage: The tile grid.
        params: Array names, worker count and optimizer settings.
        backend: FFT backend; created from params.tensor_engine when omitted.
        optimizer: Preconfigured optimizer whose cost function is replaced.
            Lets a caller keep a handle for cancel().

    Returns:
        DewarpResult with the best parameters and a per-overlap report.
    """
    if backend is None:
        backend = create_tensor_backend(params.tensor_engine)

    cost = FFTConvolutionCostFunction(
        backend=backend, max_workers=params.max_workers, show_progress=logger.isEnabledFor(logging.DEBUG)
    )
    cost.initialize(montage, params.attribute_matrix_name, params.data_array_name)

    start = (
        np.asarray(params.initial_parameters, dtype=np.float64)
        if params.initial_parameters is not None
        else identity_parameters()
    )
    initial_value = cost.get_value(start)
    logger.info(f"Initial dewarp cost: {initial_value:g}")

    if optimizer is None:
        optimizer = FFTAmoebaOptimizer(
            cost,
            max_iterations=params.max_iterations,
            initial_simplex_delta=params.initial_simplex_delta,
            function_tolerance=params.function_tolerance,
            parameters_tolerance=params.parameters_tolerance,
            optimize_with_restarts=params.optimize_with_restarts,
            maximize=params.maximize,
        )
    else:
        optimizer.cost_function = cost

    result = optimizer.start_optimization(start)
    return DewarpResult(
        parameters=result.parameters,
        initial_value=initial_value,
        optimization=result,
        overlaps=cost.overlap_report(result.parameters),
    )
