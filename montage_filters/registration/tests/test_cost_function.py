"""Tests for the FFT convolution dewarp cost."""
import numpy as np
import pytest

from ...testutil import TILE_ARRAY, TILE_MATRIX, random_scene, scene_montage
from .._tensor_backend import NumpyBackend, set_tensor_backend
from ..dewarp import REQUIRED_PARAMETER_SIZE, identity_parameters
from ..fft_convolution_cost import FFTConvolutionCostFunction


def energy(block):
    return float(np.sum(block.astype(np.float64) ** 2))


@pytest.fixture
def scene():
    return random_scene(24, 24, seed=5)


def make_cost(montage, max_workers=None):
    cost = FFTConvolutionCostFunction(backend=NumpyBackend(), max_workers=max_workers)
    cost.initialize(montage, TILE_MATRIX, TILE_ARRAY)
    return cost


def test_identical_overlap_scores_its_energy(scene):
    montage = scene_montage(scene[:10, :20], 1, 2, tile_width=12, tile_height=10, overlap=4)
    cost = make_cost(montage)

    assert len(cost.overlaps) == 1
    expected = energy(scene[0:10, 8:12])
    assert cost.get_value(identity_parameters()) == pytest.approx(expected ** 2, rel=1e-9)


def test_cost_sums_every_overlap(scene):
    montage = scene_montage(scene, 2, 2, tile_width=12, tile_height=12, overlap=4)
    cost = make_cost(montage)

    total = (
        energy(scene[0:12, 8:12])   # (0,0) | (1,0)
        + energy(scene[8:12, 0:12])  # (0,0) / (0,1)
        + energy(scene[8:20, 8:12])  # (0,1) | (1,1)
        + energy(scene[8:12, 8:20])  # (1,0) / (1,1)
    )
    assert cost(identity_parameters()) == pytest.approx(total ** 2, rel=1e-9)


def test_worker_count_does_not_change_the_value(scene):
    montage = scene_montage(scene, 2, 2, tile_width=12, tile_height=12, overlap=4)
    params = identity_parameters()
    params[2] = 0.01
    params[9] = -0.02
    single = make_cost(montage, max_workers=1).get_value(params)
    pooled = make_cost(montage, max_workers=4).get_value(params)
    assert single == pooled


def test_properties(scene):
    montage = scene_montage(scene, 2, 2, tile_width=12, tile_height=10, overlap=4)
    cost = make_cost(montage)
    assert cost.number_of_parameters == REQUIRED_PARAMETER_SIZE
    assert (cost.image_dim_x, cost.image_dim_y) == (12.0, 10.0)
    assert sorted(cost.image_grid) == [(0, 0), (0, 1), (1, 0), (1, 1)]


def test_overlap_report(scene):
    montage = scene_montage(scene, 2, 2, tile_width=12, tile_height=12, overlap=4)
    cost = make_cost(montage)
    report = cost.overlap_report(identity_parameters())

    assert len(report) == 4
    assert list(report["direction"]) == ["right", "bottom", "right", "bottom"]
    assert list(report["region_width"]) == [4, 12, 4, 12]
    assert report["score"].sum() ** 2 == pytest.approx(cost.get_value(identity_parameters()))


def test_overlap_sampled_outside_tiles_scores_zero(scene):
    montage = scene_montage(scene[:10, :20], 1, 2, tile_width=12, tile_height=10, overlap=4)
    cost = make_cost(montage)
    params = identity_parameters()
    params[0] = 10.0  # every overlap pixel samples far outside its tile
    assert cost.get_value(params) == 0.0


def test_usage_errors(scene):
    cost = FFTConvolutionCostFunction(backend=NumpyBackend())
    with pytest.raises(RuntimeError):
        cost.get_value(identity_parameters())

    cost.initialize(scene_montage(scene, 1, 2, 12, 10, 4), TILE_MATRIX, TILE_ARRAY)
    with pytest.raises(ValueError):
        cost.get_value(np.ones(3))
    with pytest.raises(NotImplementedError):
        cost.get_derivative(identity_parameters())


def test_backend_is_resolved_before_scoring(scene):
    backend = set_tensor_backend("numpy")
    cost = FFTConvolutionCostFunction(max_workers=4)
    assert cost.backend is None

    cost.initialize(scene_montage(scene, 2, 2, 12, 12, 4), TILE_MATRIX, TILE_ARRAY)
    assert cost.backend is backend
    cost.get_value(identity_parameters())
    assert cost.backend is backend
