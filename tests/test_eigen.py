"""Tests for eigen module.

This module tests the closed-form symmetric eigen solvers on matrices with
known spectra, including diagonal, rank-deficient and repeated-eigenvalue
cases.
"""

import sys
import unittest
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.append(str(Path(__file__).resolve().parent.parent))

from closedform import eigen
from closedform.eigen import EigenCase


def rotation_about(axis, angle):
    """Rodrigues rotation about an arbitrary axis."""
    axis = np.asarray(axis, dtype=np.float64)
    axis = axis / np.linalg.norm(axis)
    K = np.array([
        [0, -axis[2], axis[1]],
        [axis[2], 0, -axis[0]],
        [-axis[1], axis[0], 0]
    ])
    return np.eye(3) + np.sin(angle) * K + (1 - np.cos(angle)) * K @ K


class TestEigen2x2(unittest.TestCase):
    """Test the 2x2 symmetric eigen solver."""

    def test_diagonal_exact(self):
        """diag(2, 5) is solved exactly by the diagonal branch."""
        result = eigen.eigen_2x2(np.diag([2.0, 5.0]))
        np.testing.assert_array_equal(result.values, [2.0, 5.0])
        np.testing.assert_array_equal(result.vectors, np.eye(2))
        self.assertIs(result.case, EigenCase.DIAGONAL)

    def test_diagonal_descending(self):
        """Basis vectors follow the eigenvalues when the diagonal is descending."""
        result = eigen.eigen_2x2(np.diag([5.0, 2.0]))
        np.testing.assert_array_equal(result.values, [2.0, 5.0])
        np.testing.assert_array_equal(result.vectors[:, 0], [0.0, 1.0])
        np.testing.assert_array_equal(result.vectors[:, 1], [1.0, 0.0])

    def test_smallest_pair_diagonal(self):
        """The smallest diagonal entry and its basis vector are returned."""
        pair = eigen.smallest_eigenpair_2x2(np.diag([5.0, 2.0]))
        self.assertEqual(pair.value, 2.0)
        np.testing.assert_array_equal(pair.vector, [0.0, 1.0])
        self.assertTrue(pair.valid)

    def test_general(self):
        """A coupled matrix has orthonormal eigenvectors forming a rotation."""
        m = np.array([[2.0, 1.0], [1.0, 2.0]])
        result = eigen.eigen_2x2(m)

        np.testing.assert_allclose(result.values, [1.0, 3.0], atol=1e-14)
        self.assertTrue(result.valid)
        for i in range(2):
            np.testing.assert_allclose(
                m @ result.vectors[:, i], result.values[i] * result.vectors[:, i], atol=1e-14
            )
        np.testing.assert_allclose(result.vectors.T @ result.vectors, np.eye(2), atol=1e-14)
        self.assertAlmostEqual(np.linalg.det(result.vectors), 1.0, delta=1e-14)

    def test_tiny_off_diagonal(self):
        """An off-diagonal entry too small to square still gives a unit basis."""
        for dtype, off in ((np.float64, 1e-160), (np.float32, 1e-20)):
            m = np.array([[1.0, off], [off, 2.0]], dtype=dtype)
            result = eigen.eigen_2x2(m)
            self.assertTrue(result.valid)
            self.assertIs(result.case, EigenCase.ALL_DISTINCT)
            np.testing.assert_allclose(result.values, [1.0, 2.0], atol=1e-6)
            np.testing.assert_allclose(result.vectors.T @ result.vectors, np.eye(2), atol=1e-6)
            np.testing.assert_allclose(np.abs(result.vectors), np.eye(2), atol=1e-6)

            pair = eigen.smallest_eigenpair_2x2(m)
            self.assertTrue(pair.valid)
            self.assertAlmostEqual(abs(float(pair.vector[0])), 1.0, delta=1e-6)

    def test_smallest_pair_general(self):
        """The smallest eigenpair of a coupled matrix."""
        m = np.array([[3.0, -1.5], [-1.5, 1.0]])
        pair = eigen.smallest_eigenpair_2x2(m)

        expected = np.linalg.eigvalsh(m)[0]
        self.assertAlmostEqual(pair.value, expected, delta=1e-14)
        np.testing.assert_allclose(m @ pair.vector, pair.value * pair.vector, atol=1e-13)
        self.assertAlmostEqual(np.linalg.norm(pair.vector), 1.0, delta=1e-14)
        self.assertTrue(pair.valid)


class TestEigen3x3(unittest.TestCase):
    """Test the 3x3 symmetric eigen solver."""

    def setUp(self):
        """Set up a rotated matrix with a known spectrum."""
        self.Q = rotation_about([1.0, 2.0, 3.0], 0.7)
        self.values = np.array([1.0, 2.0, 5.0])
        self.m = self.Q @ np.diag(self.values) @ self.Q.T

    def assert_eigenbasis(self, m, result, atol):
        """Check eigenpairs, orthonormality and handedness."""
        self.assertTrue(result.valid)
        scale = max(np.linalg.norm(m, 2), 1.0)
        for i in range(3):
            v = result.vectors[:, i]
            np.testing.assert_allclose(m @ v, result.values[i] * v, atol=atol * scale)
        np.testing.assert_allclose(result.vectors.T @ result.vectors, np.eye(3), atol=atol)
        self.assertAlmostEqual(np.linalg.det(result.vectors), 1.0, delta=atol)

    def test_distinct(self):
        """Three distinct eigenvalues."""
        result = eigen.eigen_3x3(self.m)
        self.assertIs(result.case, EigenCase.ALL_DISTINCT)
        np.testing.assert_allclose(result.values, self.values, atol=1e-12)
        self.assert_eigenbasis(self.m, result, 1e-12)

    def test_eigenvalues_trace_and_determinant(self):
        """Eigenvalues are ascending and match trace and determinant."""
        values = eigen.eigenvalues_3x3(self.m)
        self.assertTrue(values[0] <= values[1] <= values[2])
        self.assertAlmostEqual(np.sum(values), np.trace(self.m), delta=1e-12)
        self.assertAlmostEqual(np.prod(values), np.linalg.det(self.m), delta=1e-11)

    def test_identity(self):
        """The identity returns unit eigenvalues and the identity basis."""
        result = eigen.eigen_3x3(np.eye(3))
        np.testing.assert_array_equal(result.values, [1.0, 1.0, 1.0])
        np.testing.assert_array_equal(result.vectors, np.eye(3))
        self.assertIs(result.case, EigenCase.ALL_EQUAL)

    def test_scaled_identity(self):
        """Scaling is undone on the eigenvalues."""
        result = eigen.eigen_3x3(7.0 * np.eye(3))
        np.testing.assert_array_equal(result.values, [7.0, 7.0, 7.0])
        np.testing.assert_array_equal(result.vectors, np.eye(3))

    def test_zero_matrix(self):
        """The zero matrix falls in the all-equal branch."""
        result = eigen.eigen_3x3(np.zeros((3, 3)))
        np.testing.assert_array_equal(result.values, [0.0, 0.0, 0.0])
        np.testing.assert_array_equal(result.vectors, np.eye(3))

    def test_two_roots_equal_high(self):
        """A singular matrix with a double top eigenvalue."""
        m = np.array([
            [1.0, 1.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 0.0, 2.0]
        ])
        result = eigen.eigen_3x3(m)
        self.assertIs(result.case, EigenCase.TWO_ROOTS_EQUAL_HIGH)
        np.testing.assert_array_equal(result.values, [0.0, 2.0, 2.0])
        self.assert_eigenbasis(m, result, 1e-14)
        self.assertAlmostEqual(abs(result.vectors[:, 0] @ [1.0, -1.0, 0.0]), np.sqrt(2.0), delta=1e-14)

    def test_two_roots_equal_low(self):
        """A rank-one matrix has a double zero eigenvalue."""
        v = np.array([1.0, 2.0, 2.0])
        m = np.outer(v, v)
        result = eigen.eigen_3x3(m)
        self.assertIs(result.case, EigenCase.TWO_ROOTS_EQUAL_LOW)
        np.testing.assert_allclose(result.values, [0.0, 0.0, 9.0], atol=1e-14)
        self.assert_eigenbasis(m, result, 1e-13)
        self.assertAlmostEqual(abs(result.vectors[:, 2] @ v), 3.0, delta=1e-13)

    def test_repeated_eigenvalue_rotated(self):
        """A rotated matrix with a repeated eigenvalue, whichever branch is taken."""
        m = self.Q @ np.diag([1.0, 4.0, 4.0]) @ self.Q.T
        result = eigen.eigen_3x3(m)
        np.testing.assert_allclose(result.values, [1.0, 4.0, 4.0], atol=1e-6)
        self.assert_eigenbasis(m, result, 1e-6)

    def test_smallest_pair(self):
        """Smallest eigenpair of a rotated matrix."""
        pair = eigen.smallest_eigenpair_3x3(self.m)
        self.assertTrue(pair.valid)
        self.assertAlmostEqual(pair.value, 1.0, delta=1e-12)
        self.assertAlmostEqual(abs(pair.vector @ self.Q[:, 0]), 1.0, delta=1e-12)

    def test_smallest_pair_repeated(self):
        """Any unit vector of the eigenspace is accepted for a repeated minimum."""
        m = np.diag([1.0, 1.0, 2.0])
        pair = eigen.smallest_eigenpair_3x3(m)
        self.assertTrue(pair.valid)
        self.assertAlmostEqual(pair.value, 1.0, delta=1e-6)
        self.assertAlmostEqual(pair.vector[2], 0.0, delta=1e-6)
        self.assertAlmostEqual(np.linalg.norm(pair.vector), 1.0, delta=1e-12)

    def test_smallest_pair_zero_matrix(self):
        """Every vector is an eigenvector of the zero matrix."""
        pair = eigen.smallest_eigenpair_3x3(np.zeros((3, 3)))
        self.assertTrue(pair.valid)
        self.assertEqual(pair.value, 0.0)
        np.testing.assert_array_equal(pair.vector, [1.0, 0.0, 0.0])

    def test_corresponding_eigenvector(self):
        """Eigenvector for a given eigenvalue."""
        pair = eigen.corresponding_eigenvector(self.m, 2.0)
        self.assertTrue(pair.valid)
        np.testing.assert_allclose(self.m @ pair.vector, 2.0 * pair.vector, atol=1e-12)

    def test_float32(self):
        """float32 input stays float32."""
        result = eigen.eigen_3x3(self.m.astype(np.float32))
        self.assertEqual(result.values.dtype, np.float32)
        self.assertEqual(result.vectors.dtype, np.float32)
        np.testing.assert_allclose(result.values, self.values, rtol=1e-4)
        self.assert_eigenbasis(self.m, result, 1e-4)

    def test_wrong_shape(self):
        """A non 3x3 input is rejected."""
        with pytest.raises(ValueError):
            eigen.eigen_3x3(np.eye(4))


class TestHelpers(unittest.TestCase):
    """Test branch classification and orthogonal vectors."""

    def test_classify(self):
        """Each coincidence pattern maps to its branch."""
        eps = np.finfo(np.float64).eps
        self.assertIs(eigen.classify_eigenvalues(np.array([1.0, 1.0, 1.0]), eps), EigenCase.ALL_EQUAL)
        self.assertIs(eigen.classify_eigenvalues(np.array([1.0, 1.0, 2.0]), eps), EigenCase.TWO_ROOTS_EQUAL_LOW)
        self.assertIs(eigen.classify_eigenvalues(np.array([1.0, 2.0, 2.0]), eps), EigenCase.TWO_ROOTS_EQUAL_HIGH)
        self.assertIs(eigen.classify_eigenvalues(np.array([1.0, 2.0, 3.0]), eps), EigenCase.ALL_DISTINCT)

    def test_unit_orthogonal(self):
        """The returned vector is a unit vector orthogonal to the input."""
        for v in ([1.0, 2.0, 3.0], [0.0, 0.0, 5.0], [1e-20, 0.0, 1.0], [-4.0, 0.0, 0.0]):
            u = eigen.unit_orthogonal(np.array(v))
            self.assertAlmostEqual(u @ v, 0.0, delta=1e-12)
            self.assertAlmostEqual(np.linalg.norm(u), 1.0, delta=1e-14)


if __name__ == "__main__":
    unittest.main()
