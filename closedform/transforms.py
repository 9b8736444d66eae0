"""Rigid 3D transforms from direction vectors and Euler angles.

Transforms are homogeneous 4x4 arrays ``[R | t]``. Euler angles follow the
XYZ convention, ``R = Rz(yaw) @ Ry(pitch) @ Rx(roll)``, with angles in radians
in the principal ranges of ``atan2`` and ``asin``.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from closedform.roots import as_float_array

logger = logging.getLogger(__name__)


def _normalized(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v)
    if norm > np.finfo(v.dtype).tiny:
        return v / norm
    logger.debug(f"Cannot normalize near-zero vector {v}")
    return v


def _from_rows(row0: np.ndarray, row1: np.ndarray, row2: np.ndarray) -> np.ndarray:
    transform = np.eye(4, dtype=row0.dtype)
    transform[0, :3] = row0
    transform[1, :3] = row1
    transform[2, :3] = row2
    return transform


def transform_from_zy(z_axis: np.ndarray, y_direction: np.ndarray) -> np.ndarray:
    """Rotation taking z_axis to (0,0,1) and y_direction into the x=0 plane.

    If y_direction is orthogonal to z_axis it is mapped onto (0,1,0).

    Args:
        z_axis: 3D vector that becomes the z axis
        y_direction: 3D vector giving the direction of the y axis

    Returns:
        4x4 homogeneous transform with zero translation
    """
    z_axis = as_float_array(z_axis, (3,))
    y_direction = as_float_array(y_direction, (3,)).astype(z_axis.dtype)

    row0 = _normalized(np.cross(y_direction, z_axis))
    row1 = _normalized(np.cross(z_axis, row0))
    row2 = _normalized(z_axis)
    return _from_rows(row0, row1, row2)


def transform_from_xy(x_axis: np.ndarray, y_direction: np.ndarray) -> np.ndarray:
    """Rotation taking x_axis to (1,0,0) and y_direction into the z=0 plane.

    If y_direction is orthogonal to x_axis it is mapped onto (0,1,0).

    Args:
        x_axis: 3D vector that becomes the x axis
        y_direction: 3D vector giving the direction of the y axis

    Returns:
        4x4 homogeneous transform with zero translation
    """
    x_axis = as_float_array(x_axis, (3,))
    y_direction = as_float_array(y_direction, (3,)).astype(x_axis.dtype)

    row2 = _normalized(np.cross(x_axis, y_direction))
    row1 = _normalized(np.cross(row2, x_axis))
    row0 = _normalized(x_axis)
    return _from_rows(row0, row1, row2)


def transform_from_two_unit_vectors(y_direction: np.ndarray, z_axis: np.ndarray) -> np.ndarray:
    """Same as :func:`transform_from_zy` with the arguments in (y, z) order."""
    return transform_from_zy(z_axis, y_direction)


def transform_from_two_unit_vectors_and_origin(
    y_direction: np.ndarray,
    z_axis: np.ndarray,
    origin: np.ndarray
) -> np.ndarray:
    """Rigid transform moving origin to (0,0,0) and aligning the axes.

    Args:
        y_direction: 3D vector giving the direction of the y axis
        z_axis: 3D vector that becomes the z axis
        origin: 3D point that becomes the origin

    Returns:
        4x4 homogeneous transform
    """
    transform = transform_from_two_unit_vectors(y_direction, z_axis)
    origin = as_float_array(origin, (3,))
    transform[:3, 3] = -(transform[:3, :3] @ origin)
    return transform


def euler_angles(transform: np.ndarray) -> Tuple[float, float, float]:
    """Extract XYZ Euler angles from a transform.

    Args:
        transform: 4x4 homogeneous transform (or 3x3 rotation)

    Returns:
        Tuple of (roll, pitch, yaw) in radians
    """
    t = np.asarray(transform)
    if t.shape not in ((4, 4), (3, 3)):
        raise ValueError(f"Expected 4x4 transform or 3x3 rotation, got shape {t.shape}")

    roll = np.arctan2(t[2, 1], t[2, 2])
    # Rounding can push |t[2, 0]| slightly past 1
    pitch = np.arcsin(np.clip(-t[2, 0], -1.0, 1.0))
    yaw = np.arctan2(t[1, 0], t[0, 0])
    return roll, pitch, yaw


def translation_and_euler_angles(transform: np.ndarray) -> Tuple[float, float, float, float, float, float]:
    """Extract translation and XYZ Euler angles from a transform.

    Args:
        transform: 4x4 homogeneous transform

    Returns:
        Tuple of (x, y, z, roll, pitch, yaw)
    """
    t = as_float_array(transform, (4, 4))
    roll, pitch, yaw = euler_angles(t)
    return t[0, 3], t[1, 3], t[2, 3], roll, pitch, yaw


def transform_from_euler(
    x: float, y: float, z: float,
    roll: float, pitch: float, yaw: float,
    dtype=np.float64
) -> np.ndarray:
    """Create a transform from a translation and XYZ Euler angles.

    Args:
        x, y, z: Translation
        roll: Rotation about the x axis in radians
        pitch: Rotation about the y axis in radians
        yaw: Rotation about the z axis in radians
        dtype: Scalar type of the result, float32 or float64

    Returns:
        4x4 homogeneous transform
    """
    dtype = np.dtype(dtype)
    if dtype not in (np.float32, np.float64):
        raise ValueError(f"Unsupported scalar type {dtype}")

    A, B = np.cos(yaw), np.sin(yaw)
    C, D = np.cos(pitch), np.sin(pitch)
    E, F = np.cos(roll), np.sin(roll)
    DE, DF = D * E, D * F

    return np.array([
        [A * C, A * DF - B * E, B * F + A * DE, x],
        [B * C, A * E + B * DF, B * DE - A * F, y],
        [-D, C * F, C * E, z],
        [0.0, 0.0, 0.0, 1.0]
    ], dtype=dtype)
