"""Accuracy metrics for the closed-form kernels.

This module implements the error measures used to check the kernels against
reference solvers: eigen residuals, orthonormality, inverse and rotation
errors, alignment RMSE, together with timing utilities.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)


def eigen_residual(m: np.ndarray, values: np.ndarray, vectors: np.ndarray) -> float:
    """Calculate the largest eigenpair residual relative to the matrix size.

    Args:
        m: Square matrix
        values: Eigenvalues
        vectors: Eigenvectors stored as the columns of a matrix

    Returns:
        max_i ||M v_i - lambda_i v_i|| / max(||M||, 1)
    """
    m = np.asarray(m, dtype=np.float64)
    vectors = np.asarray(vectors, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)

    residuals = m @ vectors - vectors * values
    worst = np.max(np.linalg.norm(residuals, axis=0))
    return float(worst / max(np.linalg.norm(m, 2), 1.0))


def orthonormality_error(vectors: np.ndarray) -> float:
    """Largest deviation of V.T @ V from the identity."""
    vectors = np.asarray(vectors, dtype=np.float64)
    gram = vectors.T @ vectors
    return float(np.max(np.abs(gram - np.eye(gram.shape[0]))))


def inverse_error(m: np.ndarray, inverse: Optional[np.ndarray]) -> float:
    """Largest deviation of M @ inverse from the identity.

    Args:
        m: Square matrix
        inverse: Candidate inverse, or None for a singular matrix

    Returns:
        Maximum absolute error, inf if there is no inverse
    """
    if inverse is None:
        logger.warning("No inverse provided for inverse error calculation")
        return float('inf')

    m = np.asarray(m, dtype=np.float64)
    product = m @ np.asarray(inverse, dtype=np.float64)
    return float(np.max(np.abs(product - np.eye(m.shape[0]))))


def rotation_error_deg(R_est: np.ndarray, R_gt: np.ndarray) -> float:
    """Geodesic angle between two rotation matrices in degrees.

    Computed as atan2(|axis| / 2, (trace - 1) / 2) of the relative rotation,
    so angles down to rounding level are resolved.
    """
    R_rel = np.asarray(R_est, dtype=np.float64) @ np.asarray(R_gt, dtype=np.float64).T
    axis = np.array([
        R_rel[2, 1] - R_rel[1, 2],
        R_rel[0, 2] - R_rel[2, 0],
        R_rel[1, 0] - R_rel[0, 1]
    ])
    sin_angle = 0.5 * np.linalg.norm(axis)
    cos_angle = 0.5 * (np.trace(R_rel) - 1.0)
    return float(np.degrees(np.arctan2(sin_angle, cos_angle)))


def alignment_rmse(transform: np.ndarray, src: np.ndarray, dst: np.ndarray) -> float:
    """Root mean square distance between transformed src points and dst.

    Args:
        transform: (d+1)x(d+1) homogeneous transform
        src: Nxd source points
        dst: Nxd destination points

    Returns:
        RMSE of the residuals
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    if src.shape[0] == 0:
        logger.warning("Empty point set provided for alignment RMSE calculation")
        return float('inf')

    transform = np.asarray(transform, dtype=np.float64)
    d = src.shape[1]
    mapped = src @ transform[:d, :d].T + transform[:d, d]
    return float(np.sqrt(np.mean(np.sum((mapped - dst) ** 2, axis=1))))


def is_rigid(transform: np.ndarray, atol: float = 1e-6) -> bool:
    """Check that a 4x4 transform holds a proper rotation.

    Args:
        transform: 4x4 homogeneous transform
        atol: Absolute tolerance of the checks

    Returns:
        True if the rotation block is orthonormal with determinant +1 and the
        last row is (0, 0, 0, 1)
    """
    t = np.asarray(transform, dtype=np.float64)
    if t.shape != (4, 4):
        return False

    R = t[:3, :3]
    if orthonormality_error(R) > atol:
        return False
    if abs(np.linalg.det(R) - 1.0) > atol:
        return False
    return bool(np.allclose(t[3], [0.0, 0.0, 0.0, 1.0], atol=atol))


class Timer:
    """Wall-clock timer for the stages of a kernel check run.

    Used as a context manager around the whole run; each call to
    :meth:`stage` closes the current stage and records its duration.
    """

    def __init__(self, name: str = "Timer", logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(__name__)
        self.start_time = None
        self.end_time = None
        self.stages: Dict[str, float] = {}
        self._stage_start = None

    def __enter__(self) -> "Timer":
        self.start_time = self._stage_start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end_time = time.perf_counter()
        self.logger.debug(f"{self.name}: {self.total:.4f}s")

    def stage(self, name: str) -> float:
        """Close the running stage under the given name.

        Args:
            name: Stage name, e.g. "inverse"

        Returns:
            Duration of the stage in seconds
        """
        if self._stage_start is None:
            raise RuntimeError(f"{self.name}: stage '{name}' recorded outside the timed block")

        now = time.perf_counter()
        self.stages[name] = now - self._stage_start
        self._stage_start = now

        self.logger.debug(f"{self.name} - {name}: {self.stages[name]:.4f}s")
        return self.stages[name]

    @property
    def total(self) -> float:
        """Seconds spent in the timed block, up to now while it is running."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time


class KernelMetrics:
    """Worst-case errors and timings collected over kernel checks."""

    def __init__(self):
        self.metrics = {
            "dtype": None,
            "n_trials": 0,
            "errors": {},
            "failures": {},
            "runtime_s": 0.0,
            "stage_timings": {},
        }

    def update(self, metric_name: str, value: Union[int, float, str, Dict]) -> None:
        """Update a specific metric.

        Args:
            metric_name: Name of the metric to update
            value: New value for the metric
        """
        self.metrics[metric_name] = value

    def record_error(self, check: str, error: float) -> None:
        """Keep the worst error seen for a check.

        Args:
            check: Name of the check, e.g. "eigen_3x3"
            error: Error of one trial
        """
        errors = self.metrics["errors"]
        errors[check] = max(errors.get(check, 0.0), float(error))

    def record_failure(self, check: str) -> None:
        """Count a trial whose result was flagged invalid."""
        failures = self.metrics["failures"]
        failures[check] = failures.get(check, 0) + 1

    def update_stage_timing(self, stage_name: str, time_s: float) -> None:
        """Update timing for a specific stage.

        Args:
            stage_name: Name of the stage
            time_s: Time in seconds
        """
        self.metrics["stage_timings"][stage_name] = time_s

    def exceeded(self, tolerances: Dict[str, float]) -> Dict[str, float]:
        """Return the checks whose worst error is above its tolerance."""
        return {
            check: error
            for check, error in self.metrics["errors"].items()
            if check in tolerances and error > tolerances[check]
        }

    def to_dict(self) -> Dict:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metrics
        """
        return {
            key: value.copy() if isinstance(value, dict) else value
            for key, value in self.metrics.items()
        }

    def summary(self) -> str:
        """Generate a human-readable summary of metrics.

        Returns:
            Summary string
        """
        lines = [
            "Kernel Metrics:",
            f"  Scalar type: {self.metrics['dtype']}",
            f"  Trials: {self.metrics['n_trials']}",
        ]

        if self.metrics["errors"]:
            lines.append("  Worst errors:")
            for check, error in sorted(self.metrics["errors"].items()):
                lines.append(f"    {check}: {error:.3e}")

        if self.metrics["failures"]:
            lines.append("  Invalid results:")
            for check, count in sorted(self.metrics["failures"].items()):
                lines.append(f"    {check}: {count}")

        lines.append(f"  Total runtime: {self.metrics['runtime_s']:.2f}s")

        if self.metrics["stage_timings"]:
            lines.append("  Stage timings:")
            for stage, time_s in self.metrics["stage_timings"].items():
                lines.append(f"    {stage}: {time_s:.2f}s")

        return "\n".join(lines)
