"""Least-squares similarity alignment of corresponding point sets.

Implements the closed-form solution of S. Umeyama, "Least-squares estimation
of transformation parameters between two point patterns", PAMI 1991. Given
corresponding points x_i (source) and y_i (destination) it finds c, R and t
minimizing

    1/n * sum_i ||y_i - (c * R @ x_i + t)||^2

Point sets are (N, d) arrays with one point per row.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np
from scipy import linalg

from closedform.inverse import determinant_3x3

logger = logging.getLogger(__name__)


class Alignment(NamedTuple):
    """Similarity transform between two point sets.

    ``transform`` is the (d+1)x(d+1) homogeneous matrix ``[c*R | t]``. When
    ``valid`` is False the correspondences did not determine a transform and
    the identity is returned.
    """

    transform: np.ndarray
    scale: float
    rotation: np.ndarray
    translation: np.ndarray
    valid: bool


def _determinant(m: np.ndarray) -> float:
    if m.shape == (3, 3):
        return determinant_3x3(m)
    if m.shape == (2, 2):
        return m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0]
    return linalg.det(m)


def _identity(d: int, dtype) -> Alignment:
    return Alignment(
        transform=np.eye(d + 1, dtype=dtype),
        scale=1.0,
        rotation=np.eye(d, dtype=dtype),
        translation=np.zeros(d, dtype=dtype),
        valid=False,
    )


def umeyama(src: np.ndarray, dst: np.ndarray, with_scaling: bool = False) -> Alignment:
    """Estimate the similarity transform mapping src onto dst.

    Args:
        src: Nxd array of source points
        dst: Nxd array of corresponding destination points
        with_scaling: Estimate the scale c; when False c is fixed to 1

    Returns:
        Alignment holding c, R, t and the homogeneous transform. The result
        is flagged invalid (identity) when fewer than d correspondences are
        given or the points are too degenerate to fix the rotation.
    """
    src = np.asarray(src)
    dst = np.asarray(dst)
    if src.ndim != 2 or src.shape != dst.shape:
        raise ValueError(
            f"Expected matching Nxd point arrays, got shapes {src.shape} and {dst.shape}"
        )

    dtype = np.result_type(src.dtype, dst.dtype)
    if dtype not in (np.float32, np.float64):
        dtype = np.dtype(np.float64)
    src = src.astype(dtype, copy=False)
    dst = dst.astype(dtype, copy=False)

    n, d = src.shape
    if n < d:
        logger.warning(f"Umeyama needs at least {d} correspondences, got {n}")
        return _identity(d, dtype)

    src_mean = src.mean(axis=0)
    dst_mean = dst.mean(axis=0)
    src_demean = src - src_mean
    dst_demean = dst - dst_mean

    src_var = np.sum(src_demean ** 2) / n

    # Cross-covariance of the centered point sets
    sigma = dst_demean.T @ src_demean / n
    U, singular_values, Vt = linalg.svd(sigma)

    eps = np.finfo(dtype).eps
    rank_tol = max(singular_values[0], src_var) * d * eps
    rank = int(np.sum(singular_values > rank_tol))
    if src_var <= np.finfo(dtype).tiny or rank < d - 1:
        logger.warning(
            f"Degenerate correspondences (rank {rank} of {d}), returning identity"
        )
        return _identity(d, dtype)

    # Flip the weakest axis when U and V differ in handedness so det(R) = +1
    S = np.ones(d, dtype=dtype)
    if _determinant(U) * _determinant(Vt) < 0:
        S[d - 1] = -1

    R = (U * S) @ Vt

    if with_scaling:
        c = float(singular_values @ S / src_var)
    else:
        c = 1.0

    t = dst_mean - c * (R @ src_mean)

    transform = np.eye(d + 1, dtype=dtype)
    transform[:d, :d] = c * R
    transform[:d, d] = t

    logger.debug(f"Umeyama alignment of {n} points: scale={c:.6f}, rank={rank}")
    return Alignment(transform, c, R.astype(dtype), t.astype(dtype), True)


def apply_transform(transform: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a homogeneous (d+1)x(d+1) transform to Nxd points."""
    transform = np.asarray(transform)
    points = np.asarray(points)
    d = transform.shape[0] - 1
    if transform.shape != (d + 1, d + 1) or points.ndim != 2 or points.shape[1] != d:
        raise ValueError(
            f"Cannot apply transform of shape {transform.shape} to points of shape {points.shape}"
        )
    return points @ transform[:d, :d].T + transform[:d, d]
