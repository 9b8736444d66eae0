"""Closed-form inverse and determinant of 2x2 and 3x3 matrices.

All inverses are computed from cofactors. A matrix with a determinant of
exactly zero has no inverse; the result then carries ``inverse=None`` and it is
up to the caller to check ``valid`` (or the determinant) before using it.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np

from closedform.roots import as_float_array

logger = logging.getLogger(__name__)


class Inversion(NamedTuple):
    """Determinant of a matrix and, when it is non-zero, its inverse."""

    determinant: float
    inverse: Optional[np.ndarray]

    @property
    def valid(self) -> bool:
        return self.inverse is not None


def invert_2x2(m: np.ndarray) -> Inversion:
    """Invert a general 2x2 matrix.

    Args:
        m: 2x2 matrix

    Returns:
        Inversion with the determinant and the inverse (None if singular)
    """
    m = as_float_array(m, (2, 2))
    det = m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0]

    if det == 0:
        logger.debug("Singular 2x2 matrix, no inverse")
        return Inversion(det, None)

    inverse = np.array([
        [m[1, 1], -m[0, 1]],
        [-m[1, 0], m[0, 0]]
    ], dtype=m.dtype) / det
    return Inversion(det, inverse)


def invert_3x3_symmetric(m: np.ndarray) -> Inversion:
    """Invert a symmetric 3x3 matrix.

    Only the upper triangle is read, so a non-symmetric input gives a wrong
    result.

    Args:
        m: Symmetric 3x3 matrix

    Returns:
        Inversion with the determinant and the symmetric inverse (None if singular)
    """
    m = as_float_array(m, (3, 3))

    # | a b c |-1             |   fd-ee    ce-bf   be-cd  |
    # | b d e |    =  1/det * |   ce-bf    af-cc   bc-ae  |
    # | c e f |               |   be-cd    bc-ae   ad-bb  |
    a, b, c = m[0, 0], m[0, 1], m[0, 2]
    d, e = m[1, 1], m[1, 2]
    f = m[2, 2]

    fd_ee = d * f - e * e
    ce_bf = c * e - b * f
    be_cd = b * e - c * d

    det = a * fd_ee + b * ce_bf + c * be_cd

    if det == 0:
        logger.debug("Singular symmetric 3x3 matrix, no inverse")
        return Inversion(det, None)

    af_cc = a * f - c * c
    bc_ae = b * c - a * e
    ad_bb = a * d - b * b

    inverse = np.array([
        [fd_ee, ce_bf, be_cd],
        [ce_bf, af_cc, bc_ae],
        [be_cd, bc_ae, ad_bb]
    ], dtype=m.dtype) / det
    return Inversion(det, inverse)


def invert_3x3(m: np.ndarray) -> Inversion:
    """Invert a general 3x3 matrix by cofactor expansion.

    The determinant is evaluated with the same expression as
    :func:`determinant_3x3`, so both return identical values.

    Args:
        m: 3x3 matrix

    Returns:
        Inversion with the determinant and the inverse (None if singular)
    """
    m = as_float_array(m, (3, 3))

    # | a b c |-1             |   ei-fh    ch-bi   bf-ce  |
    # | d e f |    =  1/det * |   fg-di    ai-cg   cd-af  |
    # | g h i |               |   dh-eg    bg-ah   ae-bd  |
    a, b, c = m[0]
    d, e, f = m[1]
    g, h, i = m[2]

    ei_fh = e * i - f * h
    fg_di = f * g - d * i
    dh_eg = d * h - e * g

    det = a * ei_fh + b * fg_di + c * dh_eg

    if det == 0:
        logger.debug("Singular 3x3 matrix, no inverse")
        return Inversion(det, None)

    inverse = np.array([
        [ei_fh, c * h - b * i, b * f - c * e],
        [fg_di, a * i - c * g, c * d - a * f],
        [dh_eg, b * g - a * h, a * e - b * d]
    ], dtype=m.dtype) / det
    return Inversion(det, inverse)


def determinant_3x3(m: np.ndarray):
    """Determinant of a 3x3 matrix by expansion along the first row."""
    m = as_float_array(m, (3, 3))
    a, b, c = m[0]
    d, e, f = m[1]
    g, h, i = m[2]
    return a * (e * i - f * h) + b * (f * g - d * i) + c * (d * h - e * g)
