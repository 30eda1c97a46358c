"""Tests for the dewarp pixel transform."""
import numpy as np
import pytest

from ..dewarp import (
    REQUIRED_PARAMETER_SIZE,
    TERMS_PER_AXIS,
    calculate_new_to_old_pixel,
    get_old_index,
    identity_parameters,
    tile_center,
    validate_parameters,
)


def test_identity_maps_every_pixel_to_itself():
    ys, xs = np.mgrid[0:6, 0:9]
    old_x, old_y = get_old_index(xs, ys, tile_center((0, 0), 9, 6), identity_parameters())
    np.testing.assert_array_equal(old_x, xs)
    np.testing.assert_array_equal(old_y, ys)


def test_tile_center():
    np.testing.assert_array_equal(tile_center((10, 20), 5, 4), [12.0, 21.5])


def test_linear_scale_about_center():
    params = identity_parameters()
    params[0] = 2.0
    assert calculate_new_to_old_pixel(6, 5, params, 5.0, 5.0) == (7, 5)
    assert calculate_new_to_old_pixel(3, 5, params, 5.0, 5.0) == (1, 5)
    # The center itself never moves.
    assert calculate_new_to_old_pixel(5, 5, params, 5.0, 5.0) == (5, 5)


def test_quadratic_term_and_rounding():
    params = identity_parameters()
    params[TERMS_PER_AXIS + 2] = 0.5  # y_old += 0.5 u^2
    assert calculate_new_to_old_pixel(2, 0, params, 0.0, 0.0) == (2, 2)

    params = identity_parameters()
    params[0] = 1.25
    assert calculate_new_to_old_pixel(3, 0, params, 0.0, 0.0) == (4, 0)


def test_shapes_are_preserved():
    xs = np.arange(12).reshape(3, 4)
    old_x, old_y = get_old_index(xs, xs, np.zeros(2), identity_parameters())
    assert old_x.shape == (3, 4)
    assert old_x.dtype == np.int64


def test_identity_layout():
    params = identity_parameters()
    assert params.shape == (REQUIRED_PARAMETER_SIZE,)
    assert params.sum() == 2.0
    assert params[0] == 1.0 and params[TERMS_PER_AXIS + 1] == 1.0


def test_wrong_parameter_count():
    with pytest.raises(ValueError):
        validate_parameters(np.zeros(REQUIRED_PARAMETER_SIZE - 1))
    with pytest.raises(ValueError):
        get_old_index(np.zeros(1), np.zeros(1), np.zeros(2), (1.0, 0.0))
