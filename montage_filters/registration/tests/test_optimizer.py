"""Tests for the simplex optimizer and the montage registration entry point."""
import numpy as np
import pytest

from ...parameters import DewarpRegistrationParameters
from ...testutil import TILE_ARRAY, TILE_MATRIX, random_scene, scene_montage
from .._tensor_backend import NumpyBackend
from ..amoeba_optimizer import AUTO_SIMPLEX_ZERO_DELTA, FFTAmoebaOptimizer
from ..dewarp import REQUIRED_PARAMETER_SIZE, identity_parameters
from ..dewarp_registration import register_montage
from ..fft_convolution_cost import FFTConvolutionCostFunction


def bowl(x):
    return float(np.sum((np.asarray(x) - 3.0) ** 2))


def test_minimizes_quadratic():
    optimizer = FFTAmoebaOptimizer(
        bowl, max_iterations=2000, function_tolerance=1e-12, parameters_tolerance=1e-8
    )
    result = optimizer.start_optimization([0.0, 0.0])
    np.testing.assert_allclose(result.parameters, [3.0, 3.0], atol=1e-4)
    assert result.value == pytest.approx(0.0, abs=1e-8)
    assert result.stop_condition == "Simplex converged"
    assert result.runs == 1
    assert result.evaluations <= 2000


def test_maximizes():
    optimizer = FFTAmoebaOptimizer(
        lambda x: -float(np.sum((np.asarray(x) - 1.0) ** 2)),
        max_iterations=2000,
        function_tolerance=1e-12,
        maximize=True,
    )
    result = optimizer.start_optimization([0.0, 0.0, 0.0])
    np.testing.assert_allclose(result.parameters, [1.0, 1.0, 1.0], atol=1e-4)
    # The reported value is the cost itself, not its negation.
    assert result.value <= 0.0
    assert result.value == pytest.approx(0.0, abs=1e-8)


def test_restarts():
    optimizer = FFTAmoebaOptimizer(
        bowl,
        max_iterations=5000,
        function_tolerance=1e-10,
        parameters_tolerance=1e-6,
        optimize_with_restarts=True,
    )
    result = optimizer.start_optimization([10.0, -4.0])
    np.testing.assert_allclose(result.parameters, [3.0, 3.0], atol=1e-3)
    assert result.runs >= 2
    assert result.evaluations <= 5000


def test_iteration_budget():
    optimizer = FFTAmoebaOptimizer(bowl, max_iterations=10)
    result = optimizer.start_optimization([0.0, 0.0])
    assert result.evaluations == 10
    assert result.stop_condition == "Maximum number of iterations (10) reached"


def test_cancel_returns_best_so_far():
    calls = []

    def cost(x):
        calls.append(np.array(x))
        if len(calls) == 5:
            optimizer.cancel()
        return bowl(x)

    optimizer = FFTAmoebaOptimizer(cost, max_iterations=100)
    result = optimizer.start_optimization([0.0, 0.0])
    assert result.evaluations == 5
    assert result.stop_condition == "Optimization cancelled"
    best = min(calls, key=bowl)
    np.testing.assert_array_equal(result.parameters, best)


def test_automatic_simplex():
    optimizer = FFTAmoebaOptimizer(bowl)
    assert optimizer.automatic_initial_simplex
    delta = optimizer._simplex_delta(np.array([0.0, 2.0]))
    np.testing.assert_allclose(delta, [AUTO_SIMPLEX_ZERO_DELTA, 0.1])


def test_explicit_simplex_must_match():
    optimizer = FFTAmoebaOptimizer(bowl, initial_simplex_delta=[0.5, 0.5, 0.5])
    assert not optimizer.automatic_initial_simplex
    with pytest.raises(ValueError):
        optimizer.start_optimization([0.0, 0.0])


def test_register_montage():
    scene = random_scene(20, 20, seed=8)
    montage = scene_montage(scene, 2, 2, tile_width=12, tile_height=12, overlap=4)
    params = DewarpRegistrationParameters(
        attribute_matrix_name=TILE_MATRIX,
        data_array_name=TILE_ARRAY,
        max_iterations=40,
        max_workers=2,
    )
    result = register_montage(montage, params, backend=NumpyBackend())

    assert result.parameters.shape == (REQUIRED_PARAMETER_SIZE,)
    assert result.optimization.evaluations <= 40
    # The start point is evaluated first, so the best value can only improve on it.
    assert result.value >= result.initial_value
    assert len(result.overlaps) == 4
    np.testing.assert_allclose(result.overlaps["score"].sum() ** 2, result.value, rtol=1e-9)


def test_register_montage_keeps_caller_optimizer():
    scene = random_scene(20, 20, seed=9)
    montage = scene_montage(scene, 1, 2, tile_width=12, tile_height=12, overlap=4)
    params = DewarpRegistrationParameters(
        attribute_matrix_name=TILE_MATRIX,
        data_array_name=TILE_ARRAY,
        initial_parameters=list(identity_parameters()),
    )
    optimizer = FFTAmoebaOptimizer(lambda x: 0.0, max_iterations=5, maximize=True)
    result = register_montage(montage, params, backend=NumpyBackend(), optimizer=optimizer)
    assert result.optimization.evaluations == 5
    assert isinstance(optimizer.cost_function, FFTConvolutionCostFunction)
