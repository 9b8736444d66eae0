"""Closed-form linear algebra for small matrices.

Eigendecomposition of symmetric 2x2/3x3 matrices, 2x2/3x3 inverses and
determinants, rigid transforms from direction vectors and Euler angles, and
Umeyama point-set alignment, all without iterative solvers.
"""

from __future__ import annotations

__version__ = "0.1.0"
