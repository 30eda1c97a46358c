"""Pixel coordinate transforms for the dewarp model.

A dewarp parameter vector holds two 7-term polynomials, one per axis, in
coordinates centered on the tile:

    x_old = a0 u + a1 v + a2 u^2 + a3 v^2 + a4 uv + a5 u^2 v + a6 u v^2
    y_old = b0 u + b1 v + b2 u^2 + b3 v^2 + b4 uv + b5 u^2 v + b6 u v^2

where (u, v) is the new pixel position relative to the tile center. The
vector is laid out as [a0..a6, b0..b6]; the identity transform has a0 = 1
and b1 = 1 with every other coefficient zero.
"""
from typing import Tuple

import numpy as np

from ._typing_utils import Float, FloatArray, IntArray, ParametersType

TERMS_PER_AXIS = 7
REQUIRED_PARAMETER_SIZE = 2 * TERMS_PER_AXIS


def identity_parameters() -> FloatArray:
    params = np.zeros(REQUIRED_PARAMETER_SIZE)
    params[0] = 1.0
    params[TERMS_PER_AXIS + 1] = 1.0
    return params


def validate_parameters(parameters: ParametersType) -> FloatArray:
    params = np.asarray(parameters, dtype=np.float64).ravel()
    if params.size != REQUIRED_PARAMETER_SIZE:
        raise ValueError(
            f"Dewarp model needs {REQUIRED_PARAMETER_SIZE} parameters, got {params.size}"
        )
    return params


def pixel_index(x: Float, y: Float) -> FloatArray:
    return np.array([x, y], dtype=np.float64)


def tile_center(origin: Tuple[int, int], dim_x: Float, dim_y: Float) -> FloatArray:
    """Center of a tile whose first pixel is at `origin`, in the same frame as `origin`."""
    return pixel_index(origin[0] + (dim_x - 1) / 2.0, origin[1] + (dim_y - 1) / 2.0)


def _terms(u: FloatArray, v: FloatArray) -> FloatArray:
    return np.stack([u, v, u * u, v * v, u * v, u * u * v, u * v * v])


def get_old_index(
    xs: IntArray, ys: IntArray, offset: FloatArray, parameters: ParametersType
) -> Tuple[IntArray, IntArray]:
    """Map new pixel positions to the positions they are sampled from.

    Args:
        xs, ys: New pixel positions (any matching shapes).
        offset: Position of the transform center in the same frame.
        parameters: Dewarp coefficients.

    Returns:
        Old positions, rounded to the nearest pixel, in the frame of xs/ys.
    """
    params = validate_parameters(parameters)
    u = np.asarray(xs, dtype=np.float64) - offset[0]
    v = np.asarray(ys, dtype=np.float64) - offset[1]
    terms = _terms(u, v)
    a = params[:TERMS_PER_AXIS].reshape((-1,) + (1,) * u.ndim)
    b = params[TERMS_PER_AXIS:].reshape((-1,) + (1,) * u.ndim)
    old_x = np.sum(a * terms, axis=0) + offset[0]
    old_y = np.sum(b * terms, axis=0) + offset[1]
    return np.rint(old_x).astype(np.int64), np.rint(old_y).astype(np.int64)


def calculate_new_to_old_pixel(
    x: int, y: int, parameters: ParametersType, x_trans: Float, y_trans: Float
) -> Tuple[int, int]:
    """Scalar form of get_old_index for a transform centered at (x_trans, y_trans)."""
    old_x, old_y = get_old_index(
        np.array(x), np.array(y), pixel_index(x_trans, y_trans), parameters
    )
    return int(old_x), int(old_y)
