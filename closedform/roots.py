"""Closed-form polynomial roots for small symmetric eigenproblems.

This module solves the characteristic polynomial of a symmetric 3x3 matrix
without iteration: the trigonometric (Viete) solution of the depressed cubic,
with a quadratic fallback when one root is numerically zero.

The routines assume a positive semi-definite input. For indefinite matrices
the result is undefined: a negative smallest root is not corrected, it is
re-routed to the quadratic branch, which assumes that root is zero.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

logger = logging.getLogger(__name__)


def as_float_array(values, shape: Tuple[int, ...]) -> np.ndarray:
    """Convert input to a float32/float64 array of the expected shape.

    float32 and float64 inputs keep their precision, anything else is
    computed in float64.
    """
    arr = np.asarray(values)
    if arr.dtype not in (np.float32, np.float64):
        arr = arr.astype(np.float64)
    if arr.shape != shape:
        raise ValueError(f"Expected array of shape {shape}, got shape {arr.shape}")
    return arr


def solve_quadratic(b, c, dtype=np.float64) -> np.ndarray:
    """Solve x^2 - b*x + c = 0 for the remaining two eigenvalues.

    This is the quadratic factor of x^3 - b*x^2 + c*x once the constant
    term of the characteristic cubic vanishes, so the first slot is the known
    zero root.

    Args:
        b: Sum of the two roots (the trace)
        c: Product of the two roots

    Returns:
        Array [0, r1, r2] with r1 <= r2
    """
    dtype = np.dtype(dtype)
    b = dtype.type(b)
    c = dtype.type(c)
    half = dtype.type(0.5)

    d = b * b - dtype.type(4.0) * c
    if d < 0:
        # Cannot happen for a symmetric matrix; clamp to a double root
        logger.debug(f"Negative discriminant {d} clamped to zero")
        d = dtype.type(0.0)

    sd = np.sqrt(d)
    return np.array([0.0, half * (b - sd), half * (b + sd)], dtype=dtype)


def characteristic_coefficients(m: np.ndarray) -> Tuple[float, float, float]:
    """Coefficients of x^3 - c2*x^2 + c1*x - c0 for a symmetric 3x3 matrix.

    Args:
        m: Symmetric 3x3 matrix

    Returns:
        Tuple of (c0, c1, c2): determinant, sum of principal minors, trace
    """
    two = m.dtype.type(2.0)
    c0 = (m[0, 0] * m[1, 1] * m[2, 2]
          + two * m[0, 1] * m[0, 2] * m[1, 2]
          - m[0, 0] * m[1, 2] * m[1, 2]
          - m[1, 1] * m[0, 2] * m[0, 2]
          - m[2, 2] * m[0, 1] * m[0, 1])
    c1 = (m[0, 0] * m[1, 1] - m[0, 1] * m[0, 1]
          + m[0, 0] * m[2, 2] - m[0, 2] * m[0, 2]
          + m[1, 1] * m[2, 2] - m[1, 2] * m[1, 2])
    c2 = m[0, 0] + m[1, 1] + m[2, 2]
    return c0, c1, c2


def solve_characteristic_cubic(m: np.ndarray) -> np.ndarray:
    """Compute the eigenvalues of a symmetric 3x3 matrix in closed form.

    Args:
        m: Symmetric positive semi-definite 3x3 matrix, ideally scaled so its
            entries lie in [-1, 1]

    Returns:
        Array of the three roots in ascending order
    """
    m = as_float_array(m, (3, 3))
    dtype = m.dtype
    eps = np.finfo(dtype).eps

    c0, c1, c2 = characteristic_coefficients(m)

    # One root is zero, what remains is a quadratic
    if abs(c0) < eps:
        return solve_quadratic(c2, c1, dtype)

    s_inv3 = dtype.type(1.0 / 3.0)
    s_sqrt3 = np.sqrt(dtype.type(3.0))
    zero = dtype.type(0.0)
    two = dtype.type(2.0)

    c2_over_3 = c2 * s_inv3
    a_over_3 = (c1 - c2 * c2_over_3) * s_inv3
    if a_over_3 > zero:
        a_over_3 = zero

    half_b = dtype.type(0.5) * (c0 + c2_over_3 * (two * c2_over_3 * c2_over_3 - c1))

    q = half_b * half_b + a_over_3 * a_over_3 * a_over_3
    if q > zero:
        q = zero

    rho = np.sqrt(-a_over_3)
    theta = np.arctan2(np.sqrt(-q), half_b) * s_inv3
    cos_theta = np.cos(theta)
    sin_theta = np.sin(theta)

    r0 = c2_over_3 + two * rho * cos_theta
    r1 = c2_over_3 - rho * (cos_theta + s_sqrt3 * sin_theta)
    r2 = c2_over_3 - rho * (cos_theta - s_sqrt3 * sin_theta)

    # Fixed sorting network, ascending
    if r0 >= r1:
        r0, r1 = r1, r0
    if r1 >= r2:
        r1, r2 = r2, r1
        if r0 >= r1:
            r0, r1 = r1, r0

    # A positive semi-definite matrix has no negative eigenvalue
    if r0 <= 0:
        logger.debug(f"Smallest cubic root {r0} <= 0, using quadratic branch")
        return solve_quadratic(c2, c1, dtype)

    return np.array([r0, r1, r2], dtype=dtype)
