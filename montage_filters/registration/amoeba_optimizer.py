"""Nelder-Mead simplex optimizer for derivative-free cost functions.

The simplex has n + 1 corners in an n-dimensional parameter space. It is
built either automatically around the start position or from user supplied
per-parameter edge lengths. With restarts enabled, the search is repeated
from the best point found so far with the simplex edges halved each time,
until the cost and the position both stop moving or the evaluation budget
runs out.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np
from scipy.optimize import minimize

from ._typing_utils import FloatArray

# Configure logger
logger = logging.getLogger(__name__)

# Edge lengths used when building the simplex automatically, relative to
# the start value, or absolute for parameters that start at zero.
AUTO_SIMPLEX_RELATIVE_DELTA = 0.05
AUTO_SIMPLEX_ZERO_DELTA = 0.00025


class OptimizationCancelled(Exception):
    pass


@dataclass
class OptimizationResult:
    parameters: FloatArray
    value: float
    """Cost at `parameters`, as returned by the cost function."""
    evaluations: int
    runs: int
    stop_condition: str


class FFTAmoebaOptimizer:
    def __init__(
        self,
        cost_function: Callable[[FloatArray], float],
        max_iterations: int = 500,
        initial_simplex_delta: Optional[Sequence[float]] = None,
        function_tolerance: float = 1e-4,
        parameters_tolerance: float = 1e-8,
        optimize_with_restarts: bool = False,
        maximize: bool = False,
    ):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")
        self.cost_function = cost_function
        self.max_iterations = max_iterations
        self.initial_simplex_delta = (
            None if initial_simplex_delta is None else np.asarray(initial_simplex_delta, dtype=np.float64)
        )
        self.function_tolerance = function_tolerance
        self.parameters_tolerance = parameters_tolerance
        self.optimize_with_restarts = optimize_with_restarts
        self.maximize = maximize

        self._cancel = False
        self._evaluations = 0
        self._best_x: Optional[FloatArray] = None
        self._best_cost = np.inf
        self.stop_condition_description = "Optimization not started"

    @property
    def automatic_initial_simplex(self) -> bool:
        return self.initial_simplex_delta is None

    def cancel(self) -> None:
        """Stop at the next cost evaluation; the best point so far is returned."""
        self._cancel = True

    def _objective(self, x: FloatArray) -> float:
        if self._cancel:
            raise OptimizationCancelled()
        if self._evaluations >= self.max_iterations:
            raise OptimizationCancelled()
        self._evaluations += 1
        value = float(self.cost_function(x))
        cost = -value if self.maximize else value
        if cost < self._best_cost:
            self._best_cost = cost
            self._best_x = np.array(x, dtype=np.float64)
        return cost

    def _simplex_delta(self, x0: FloatArray) -> FloatArray:
        if self.initial_simplex_delta is not None:
            if self.initial_simplex_delta.shape != x0.shape:
                raise ValueError(
                    f"initial_simplex_delta has {self.initial_simplex_delta.size} entries, "
                    f"expected {x0.size}"
                )
            return self.initial_simplex_delta.copy()
        return np.where(x0 != 0, AUTO_SIMPLEX_RELATIVE_DELTA * x0, AUTO_SIMPLEX_ZERO_DELTA)

    @staticmethod
    def _simplex(x0: FloatArray, delta: FloatArray) -> FloatArray:
        return np.vstack([x0, x0 + np.diag(delta)])

    def _value(self, cost: float) -> float:
        return -cost if self.maximize else cost

    def start_optimization(self, initial_position: Sequence[float]) -> OptimizationResult:
        x0 = np.asarray(initial_position, dtype=np.float64).ravel()
        self._cancel = False
        self._evaluations = 0
        self._best_x = x0.copy()
        self._best_cost = np.inf

        delta = self._simplex_delta(x0)
        start = x0
        runs = 0
        previous_cost = np.inf
        previous_x = x0

        while True:
            runs += 1
            try:
                minimize(
                    self._objective,
                    start,
                    method="Nelder-Mead",
                    options={
                        "initial_simplex": self._simplex(start, delta),
                        "maxfev": self.max_iterations - self._evaluations,
                        "xatol": self.parameters_tolerance,
                        "fatol": self.function_tolerance,
                    },
                )
            except OptimizationCancelled:
                pass

            if self._cancel:
                self.stop_condition_description = "Optimization cancelled"
                break
            if self._evaluations >= self.max_iterations:
                self.stop_condition_description = (
                    f"Maximum number of iterations ({self.max_iterations}) reached"
                )
                break
            if not self.optimize_with_restarts:
                self.stop_condition_description = "Simplex converged"
                break

            cost_change = abs(previous_cost - self._best_cost)
            position_change = float(np.max(np.abs(previous_x - self._best_x)))
            if cost_change < self.function_tolerance and position_change < self.parameters_tolerance:
                self.stop_condition_description = (
                    f"Converged after {runs} runs: cost change {cost_change:g}, "
                    f"parameter change {position_change:g}"
                )
                break

            logger.debug(f"Restarting simplex from cost {self._value(self._best_cost):g}")
            previous_cost = self._best_cost
            previous_x = self._best_x.copy()
            start = self._best_x
            delta = delta / 2.0

        logger.info(
            f"{self.stop_condition_description}; {self._evaluations} evaluations, "
            f"best cost {self._value(self._best_cost):g}"
        )
        return OptimizationResult(
            parameters=self._best_x.copy(),
            value=self._value(self._best_cost),
            evaluations=self._evaluations,
            runs=runs,
            stop_condition=self.stop_condition_description,
        )
