"""Closed-form eigendecomposition of symmetric 2x2 and 3x3 matrices.

This module implements the eigen solvers used by normal and local reference
frame estimation. Eigenvalues come from the characteristic polynomial
(see :mod:`closedform.roots`), eigenvectors from the null space of the shifted
matrix, found as the largest cross product of two of its rows. No iterative
solver is involved, so every call runs in bounded time.

Inputs are assumed symmetric and positive semi-definite. Results keep the
dtype (float32 or float64) of the input.
"""

from __future__ import annotations

import enum
import logging
from typing import NamedTuple, Tuple

import numpy as np

from closedform.roots import as_float_array, solve_characteristic_cubic

logger = logging.getLogger(__name__)


class EigenCase(enum.Enum):
    """Branch taken by a decomposition, by coincidence of the eigenvalues."""

    DIAGONAL = "diagonal"
    ALL_EQUAL = "all_equal"
    TWO_ROOTS_EQUAL_LOW = "two_roots_equal_low"
    TWO_ROOTS_EQUAL_HIGH = "two_roots_equal_high"
    ALL_DISTINCT = "all_distinct"


class EigenPair(NamedTuple):
    """A single eigenvalue and its unit eigenvector."""

    value: float
    vector: np.ndarray
    valid: bool


class Eigendecomposition(NamedTuple):
    """Ascending eigenvalues with eigenvectors in the matching columns.

    ``valid`` is False when a column is not a finite unit vector.
    """

    values: np.ndarray
    vectors: np.ndarray
    case: EigenCase
    valid: bool


def _is_unit(v: np.ndarray) -> bool:
    if not np.all(np.isfinite(v)):
        return False
    return abs(float(np.dot(v, v)) - 1.0) <= 1e3 * np.finfo(v.dtype).eps


def _columns_are_unit(vectors: np.ndarray) -> bool:
    return all(_is_unit(vectors[:, i]) for i in range(vectors.shape[1]))


def _matrix_scale(m: np.ndarray):
    """Largest absolute entry, or 1 for a (numerically) zero matrix."""
    scale = np.max(np.abs(m))
    if scale <= np.finfo(m.dtype).tiny:
        scale = m.dtype.type(1.0)
    return scale


def _normalized(v: np.ndarray) -> np.ndarray:
    # Divide by the largest component first so the squared norm cannot underflow
    largest = np.max(np.abs(v))
    if largest > 0:
        v = v / largest
        return v / np.sqrt(np.dot(v, v))
    return v


def _largest_row_cross(shifted: np.ndarray) -> Tuple[np.ndarray, float]:
    """Null-space direction of a rank-2 matrix.

    Returns the largest of the three pairwise row cross products, unnormalized,
    together with its squared norm.
    """
    vec1 = np.cross(shifted[0], shifted[1])
    vec2 = np.cross(shifted[0], shifted[2])
    vec3 = np.cross(shifted[1], shifted[2])

    len1 = np.dot(vec1, vec1)
    len2 = np.dot(vec2, vec2)
    len3 = np.dot(vec3, vec3)

    if len1 >= len2 and len1 >= len3:
        return vec1, len1
    if len2 >= len1 and len2 >= len3:
        return vec2, len2
    return vec3, len3


def _shifted(scaled: np.ndarray, value) -> np.ndarray:
    shifted = scaled.copy()
    shifted[np.diag_indices(3)] -= value
    return shifted


def _null_vector(shifted: np.ndarray) -> np.ndarray:
    """Unit vector in the null space of the shifted matrix.

    When the null space has dimension two or more no row cross product
    survives, and any unit vector orthogonal to the dominant row will do.
    """
    vec, sq_norm = _largest_row_cross(shifted)
    tiny = np.finfo(shifted.dtype).tiny
    if sq_norm > tiny:
        return vec / np.sqrt(sq_norm)

    row_norms = np.einsum("ij,ij->i", shifted, shifted)
    dominant = int(np.argmax(row_norms))
    if row_norms[dominant] > tiny:
        logger.debug("Repeated eigenvalue, eigenvector taken orthogonal to dominant row")
        return unit_orthogonal(shifted[dominant])

    logger.debug("Shifted matrix vanishes, every vector is an eigenvector")
    return np.array([1.0, 0.0, 0.0], dtype=shifted.dtype)


def unit_orthogonal(v: np.ndarray) -> np.ndarray:
    """Return some unit vector orthogonal to a non-zero 3D vector.

    Args:
        v: 3D vector

    Returns:
        Unit vector u with dot(u, v) == 0
    """
    v = as_float_array(v, (3,))
    eps = np.finfo(v.dtype).eps
    x, y, z = np.abs(v)

    # Unless x and y are both negligible next to z, rotate in the xy plane
    if not (x <= eps * z and y <= eps * z):
        inv_norm = 1.0 / np.hypot(v[0], v[1])
        return np.array([-v[1] * inv_norm, v[0] * inv_norm, 0.0], dtype=v.dtype)

    inv_norm = 1.0 / np.hypot(v[1], v[2])
    return np.array([0.0, -v[2] * inv_norm, v[1] * inv_norm], dtype=v.dtype)


def classify_eigenvalues(values: np.ndarray, eps: float) -> EigenCase:
    """Select the decomposition branch for ascending eigenvalues.

    Args:
        values: Three eigenvalues in ascending order
        eps: Tolerance below which two eigenvalues count as equal

    Returns:
        The EigenCase describing which eigenvalues coincide
    """
    if values[2] - values[0] <= eps:
        return EigenCase.ALL_EQUAL
    if values[1] - values[0] <= eps:
        return EigenCase.TWO_ROOTS_EQUAL_LOW
    if values[2] - values[1] <= eps:
        return EigenCase.TWO_ROOTS_EQUAL_HIGH
    return EigenCase.ALL_DISTINCT


def smallest_eigenpair_2x2(m: np.ndarray) -> EigenPair:
    """Smallest eigenvalue and eigenvector of a symmetric 2x2 matrix.

    Args:
        m: Symmetric 2x2 matrix

    Returns:
        EigenPair of the smallest eigenvalue
    """
    m = as_float_array(m, (2, 2))
    dtype = m.dtype

    # Diagonal matrix: the eigenvalues are the diagonal entries
    if abs(m[0, 1]) <= np.finfo(dtype).tiny:
        if m[0, 0] < m[1, 1]:
            return EigenPair(m[0, 0], np.array([1.0, 0.0], dtype=dtype), True)
        return EigenPair(m[1, 1], np.array([0.0, 1.0], dtype=dtype), True)

    trace, root = _half_trace_and_root(m)
    value = trace - root
    vector = _normalized(np.array([-m[0, 1], m[0, 0] - value], dtype=dtype))
    return EigenPair(value, vector, _is_unit(vector))


def _half_trace_and_root(m: np.ndarray):
    """Eigenvalues of a 2x2 matrix are trace/2 -/+ root."""
    dtype = m.dtype
    # 0.5 folded in for the later terms
    trace = dtype.type(0.5) * (m[0, 0] + m[1, 1])
    determinant = m[0, 0] * m[1, 1] - m[0, 1] * m[0, 1]

    temp = trace * trace - determinant
    if temp < 0:
        temp = dtype.type(0.0)
    return trace, np.sqrt(temp)


def eigen_2x2(m: np.ndarray) -> Eigendecomposition:
    """Full eigendecomposition of a symmetric 2x2 matrix.

    Args:
        m: Symmetric 2x2 matrix

    Returns:
        Eigendecomposition with ascending eigenvalues; the second eigenvector
        is the first one rotated by +90 degrees
    """
    m = as_float_array(m, (2, 2))
    dtype = m.dtype

    if abs(m[0, 1]) <= np.finfo(dtype).tiny:
        if m[0, 0] < m[1, 1]:
            values = np.array([m[0, 0], m[1, 1]], dtype=dtype)
            vectors = np.eye(2, dtype=dtype)
        else:
            values = np.array([m[1, 1], m[0, 0]], dtype=dtype)
            vectors = np.array([[0.0, 1.0], [1.0, 0.0]], dtype=dtype)
        return Eigendecomposition(values, vectors, EigenCase.DIAGONAL, True)

    trace, root = _half_trace_and_root(m)
    values = np.array([trace - root, trace + root], dtype=dtype)
    first = _normalized(np.array([-m[0, 1], m[0, 0] - values[0]], dtype=dtype))
    vectors = np.column_stack((first, [-first[1], first[0]])).astype(dtype)

    case = EigenCase.ALL_EQUAL if root == 0 else EigenCase.ALL_DISTINCT
    return Eigendecomposition(values, vectors, case, _columns_are_unit(vectors))


def corresponding_eigenvector(m: np.ndarray, eigenvalue) -> EigenPair:
    """Eigenvector of a symmetric 3x3 matrix for a known eigenvalue.

    Args:
        m: Symmetric positive semi-definite 3x3 matrix
        eigenvalue: One of the eigenvalues of m

    Returns:
        EigenPair of the given eigenvalue
    """
    m = as_float_array(m, (3, 3))
    scale = _matrix_scale(m)
    scaled = m / scale

    vector = _null_vector(_shifted(scaled, eigenvalue / scale))
    return EigenPair(m.dtype.type(eigenvalue), vector, _is_unit(vector))


def smallest_eigenpair_3x3(m: np.ndarray) -> EigenPair:
    """Smallest eigenvalue and eigenvector of a symmetric 3x3 matrix.

    If the smallest eigenvalue is repeated, any unit vector of its eigenspace
    may be returned.

    Args:
        m: Symmetric positive semi-definite 3x3 matrix

    Returns:
        EigenPair of the smallest eigenvalue
    """
    m = as_float_array(m, (3, 3))

    # Keep entries in [-1, 1]
    scale = _matrix_scale(m)
    scaled = m / scale

    values = solve_characteristic_cubic(scaled)
    vector = _null_vector(_shifted(scaled, values[0]))

    return EigenPair(values[0] * scale, vector, _is_unit(vector))


def eigenvalues_3x3(m: np.ndarray) -> np.ndarray:
    """Eigenvalues of a symmetric 3x3 matrix in ascending order."""
    m = as_float_array(m, (3, 3))
    scale = _matrix_scale(m)
    return solve_characteristic_cubic(m / scale) * scale


def eigen_3x3(m: np.ndarray) -> Eigendecomposition:
    """Full eigendecomposition of a symmetric 3x3 matrix.

    The eigenvector matrix is orthonormal with determinant +1.

    Args:
        m: Symmetric positive semi-definite 3x3 matrix

    Returns:
        Eigendecomposition with ascending eigenvalues
    """
    m = as_float_array(m, (3, 3))
    dtype = m.dtype

    scale = _matrix_scale(m)
    scaled = m / scale

    values = solve_characteristic_cubic(scaled)
    case = classify_eigenvalues(values, np.finfo(dtype).eps)
    vectors = np.zeros((3, 3), dtype=dtype)

    if case is EigenCase.ALL_EQUAL:
        vectors = np.eye(3, dtype=dtype)

    elif case is EigenCase.TWO_ROOTS_EQUAL_LOW:
        vec, _ = _largest_row_cross(_shifted(scaled, values[2]))
        vectors[:, 2] = _normalized(vec)
        vectors[:, 1] = unit_orthogonal(vectors[:, 2])
        vectors[:, 0] = np.cross(vectors[:, 1], vectors[:, 2])

    elif case is EigenCase.TWO_ROOTS_EQUAL_HIGH:
        vec, _ = _largest_row_cross(_shifted(scaled, values[0]))
        vectors[:, 0] = _normalized(vec)
        vectors[:, 1] = unit_orthogonal(vectors[:, 0])
        vectors[:, 2] = np.cross(vectors[:, 0], vectors[:, 1])

    else:
        vectors = _distinct_eigenvectors(scaled, values)

    return Eigendecomposition(values * scale, vectors, case, _columns_are_unit(vectors))


def _distinct_eigenvectors(scaled: np.ndarray, values: np.ndarray) -> np.ndarray:
    """Eigenvectors for three distinct eigenvalues.

    The squared norm of each candidate cross product measures how well the
    slot is determined. Only the most confident slot is kept as computed; the
    other two are rebuilt as cyclic cross products so the basis stays
    orthonormal and right-handed near eigenvalue ties.
    """
    vectors = np.zeros((3, 3), dtype=scaled.dtype)
    confidence = [0.0, 0.0, 0.0]
    min_el = max_el = 2

    for slot in (2, 1, 0):
        vec, sq_norm = _largest_row_cross(_shifted(scaled, values[slot]))
        confidence[slot] = sq_norm
        vectors[:, slot] = _normalized(vec)
        if slot == 2:
            continue
        if sq_norm <= confidence[min_el]:
            min_el = slot
        if sq_norm > confidence[max_el]:
            max_el = slot

    mid_el = 3 - min_el - max_el
    vectors[:, min_el] = _normalized(
        np.cross(vectors[:, (min_el + 1) % 3], vectors[:, (min_el + 2) % 3]))
    vectors[:, mid_el] = _normalized(
        np.cross(vectors[:, (mid_el + 1) % 3], vectors[:, (mid_el + 2) % 3]))
    return vectors
