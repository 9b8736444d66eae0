#!/usr/bin/env python3
"""
Kernel Self-Check

This script runs every closed-form kernel on random inputs, compares the
results with scipy's general-purpose solvers and reports the worst errors
per check. It exits with status 1 when an error exceeds the tolerance from
the configuration.
"""

from __future__ import annotations

import argparse
import datetime
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import yaml
from scipy import linalg
from tqdm import tqdm

# Add parent directory to path
sys.path.append(str(Path(__file__).resolve().parent.parent))

from closedform import align, eigen, evaluate, inverse, transforms


# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    handlers=[
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger("check_kernels")


def load_config(config_path: Optional[str] = None) -> Dict:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"

    with open(config_path, "r") as f:
        config = yaml.safe_load(f)

    return config


def random_rotation(rng: np.random.Generator) -> np.ndarray:
    """Draw a random proper 3x3 rotation from the QR of a Gaussian matrix."""
    q, r = linalg.qr(rng.standard_normal((3, 3)))
    q = q * np.sign(np.diag(r))
    if linalg.det(q) < 0:
        q[:, 0] = -q[:, 0]
    return q


def random_symmetric_psd(rng: np.random.Generator, repeated: bool = False) -> np.ndarray:
    """Draw a random symmetric positive semi-definite 3x3 matrix.

    Args:
        rng: Random generator
        repeated: Make two of the eigenvalues coincide

    Returns:
        3x3 matrix R @ diag(lambda) @ R.T
    """
    values = np.sort(rng.uniform(0.0, 1.0, 3)) * 10.0 ** rng.uniform(-3, 3)
    if repeated:
        if rng.random() < 0.5:
            values[1] = values[0]
        else:
            values[1] = values[2]
    R = random_rotation(rng)
    m = R @ np.diag(values) @ R.T
    return 0.5 * (m + m.T)


def _angle_error(a: float, b: float) -> float:
    return abs((a - b + np.pi) % (2 * np.pi) - np.pi)


def check_eigen(m: np.ndarray, dtype, metrics: evaluate.KernelMetrics) -> None:
    """Run the 3x3 eigen solvers on one matrix."""
    reference = linalg.eigh(m, eigvals_only=True)
    norm = max(np.max(np.abs(reference)), 1.0)

    result = eigen.eigen_3x3(m.astype(dtype))
    if not result.valid:
        metrics.record_failure("eigen_3x3")
    metrics.record_error("eigen_3x3_residual", evaluate.eigen_residual(m, result.values, result.vectors))
    metrics.record_error("eigen_3x3_orthonormality", evaluate.orthonormality_error(result.vectors))
    metrics.record_error("eigen_3x3_handedness", abs(linalg.det(result.vectors.astype(np.float64)) - 1.0))
    metrics.record_error("eigenvalues_3x3", np.max(np.abs(result.values - reference)) / norm)

    pair = eigen.smallest_eigenpair_3x3(m.astype(dtype))
    if not pair.valid:
        metrics.record_failure("smallest_eigenpair_3x3")
    metrics.record_error(
        "smallest_eigenpair_3x3",
        evaluate.eigen_residual(m, [pair.value], pair.vector.reshape(3, 1)),
    )


def check_eigen_2x2(rng: np.random.Generator, dtype, metrics: evaluate.KernelMetrics) -> None:
    """Run the 2x2 eigen solvers on a random symmetric matrix."""
    angle = rng.uniform(-np.pi, np.pi)
    R = np.array([[np.cos(angle), -np.sin(angle)], [np.sin(angle), np.cos(angle)]])
    m = R @ np.diag(np.sort(rng.uniform(0.0, 10.0, 2))) @ R.T
    m = 0.5 * (m + m.T)

    result = eigen.eigen_2x2(m.astype(dtype))
    if not result.valid:
        metrics.record_failure("eigen_2x2")
    metrics.record_error("eigen_2x2_residual", evaluate.eigen_residual(m, result.values, result.vectors))
    metrics.record_error("eigen_2x2_orthonormality", evaluate.orthonormality_error(result.vectors))

    pair = eigen.smallest_eigenpair_2x2(m.astype(dtype))
    if not pair.valid:
        metrics.record_failure("smallest_eigenpair_2x2")


def check_inverse(rng: np.random.Generator, dtype, metrics: evaluate.KernelMetrics) -> None:
    """Invert well-conditioned random matrices and compare with scipy."""
    general = random_rotation(rng) @ np.diag(rng.uniform(1.0, 10.0, 3)) @ random_rotation(rng).T
    symmetric = random_symmetric_psd(rng) + np.eye(3)
    small = rng.uniform(-1.0, 1.0, (2, 2)) + 3.0 * np.eye(2)

    for name, m, invert in (
        ("invert_3x3", general, inverse.invert_3x3),
        ("invert_3x3_symmetric", symmetric, inverse.invert_3x3_symmetric),
        ("invert_2x2", small, inverse.invert_2x2),
    ):
        result = invert(m.astype(dtype))
        if not result.valid:
            metrics.record_failure(name)
            continue
        metrics.record_error(name, evaluate.inverse_error(m, result.inverse))

    det_general = inverse.invert_3x3(general.astype(dtype)).determinant
    metrics.record_error(
        "determinant_3x3",
        abs(det_general - inverse.determinant_3x3(general.astype(dtype))),
    )


def check_transforms(rng: np.random.Generator, dtype, metrics: evaluate.KernelMetrics, margin: float) -> None:
    """Round-trip Euler angles and build frames from random directions."""
    x, y, z = rng.uniform(-10.0, 10.0, 3)
    roll, yaw = rng.uniform(-np.pi, np.pi, 2)
    pitch = rng.uniform(-np.pi / 2 + margin, np.pi / 2 - margin)

    t = transforms.transform_from_euler(x, y, z, roll, pitch, yaw, dtype=dtype)
    if not evaluate.is_rigid(t, atol=100 * np.finfo(dtype).eps):
        metrics.record_failure("transform_from_euler")

    angles = transforms.translation_and_euler_angles(t)
    error = max(
        _angle_error(angles[3], roll),
        _angle_error(angles[4], pitch),
        _angle_error(angles[5], yaw),
    )
    metrics.record_error("euler_round_trip", error)

    z_axis = rng.standard_normal(3).astype(dtype)
    y_direction = rng.standard_normal(3).astype(dtype)
    frame = transforms.transform_from_zy(z_axis, y_direction)
    if not evaluate.is_rigid(frame, atol=100 * np.finfo(dtype).eps):
        metrics.record_failure("transform_from_zy")
    mapped = frame[:3, :3] @ (z_axis / np.linalg.norm(z_axis))
    metrics.record_error("transform_from_zy", np.max(np.abs(mapped - [0.0, 0.0, 1.0])))


def check_alignment(rng: np.random.Generator, dtype, metrics: evaluate.KernelMetrics, n_points: int) -> None:
    """Recover a random similarity transform from exact correspondences."""
    R = random_rotation(rng)
    scale = rng.uniform(0.5, 2.0)
    translation = rng.uniform(-5.0, 5.0, 3)

    src = rng.uniform(-1.0, 1.0, (n_points, 3))
    dst = scale * src @ R.T + translation

    result = align.umeyama(src.astype(dtype), dst.astype(dtype), with_scaling=True)
    if not result.valid:
        metrics.record_failure("umeyama")
        return

    metrics.record_error("umeyama_rotation_deg", evaluate.rotation_error_deg(result.rotation, R))
    metrics.record_error("umeyama_scale", abs(result.scale - scale))
    metrics.record_error("umeyama_rmse", evaluate.alignment_rmse(result.transform, src, dst))


def run_checks(config: Dict) -> evaluate.KernelMetrics:
    """Run all kernel checks.

    Args:
        config: Configuration dictionary with a "check" section

    Returns:
        Collected metrics
    """
    check_config = config["check"]
    n_trials = int(check_config["trials"])
    dtype = np.dtype(check_config["dtype"])
    rng = np.random.default_rng(check_config["seed"])

    metrics = evaluate.KernelMetrics()
    metrics.update("dtype", dtype.name)
    metrics.update("n_trials", n_trials)

    with evaluate.Timer("Kernel checks", logger=logger) as timer:
        for _ in tqdm(range(n_trials), desc="Eigen 3x3"):
            repeated = rng.random() < check_config["repeated_fraction"]
            check_eigen(random_symmetric_psd(rng, repeated), dtype, metrics)
        timer.stage("eigen_3x3")

        for _ in tqdm(range(n_trials), desc="Eigen 2x2"):
            check_eigen_2x2(rng, dtype, metrics)
        timer.stage("eigen_2x2")

        for _ in tqdm(range(n_trials), desc="Inverse"):
            check_inverse(rng, dtype, metrics)
        timer.stage("inverse")

        for _ in tqdm(range(n_trials), desc="Transforms"):
            check_transforms(rng, dtype, metrics, check_config["gimbal_margin"])
        timer.stage("transforms")

        for _ in tqdm(range(n_trials), desc="Alignment"):
            check_alignment(rng, dtype, metrics, check_config["n_points"])
        timer.stage("alignment")

    for stage, time_s in timer.stages.items():
        metrics.update_stage_timing(stage, time_s)
    metrics.update("runtime_s", timer.total)
    return metrics


def save_metrics(output_dir: str, metrics_dict: Dict) -> str:
    """Write metrics as JSON into the output directory.

    Returns:
        Path of the written file
    """
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, "metrics.json")
    with open(path, "w") as f:
        json.dump(metrics_dict, f, indent=2)
    logger.info(f"Saved metrics to {path}")
    return path


def main():
    """Main function to parse arguments and run the checks."""
    parser = argparse.ArgumentParser(description="Closed-form kernel self-check")
    parser.add_argument(
        "--trials", "-n", dest="trials", type=int, default=None,
        help="Number of random trials per check"
    )
    parser.add_argument(
        "--seed", "-s", dest="seed", type=int, default=None,
        help="Random seed"
    )
    parser.add_argument(
        "--dtype", "-t", dest="dtype", default=None,
        choices=["float32", "float64"],
        help="Scalar type of the kernel inputs"
    )
    parser.add_argument(
        "--output", "-o", dest="output_dir", default="results/check",
        help="Path to output directory"
    )
    parser.add_argument(
        "--config", "-c", dest="config_path", default=None,
        help="Path to configuration file"
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config_path)

        # Command-line arguments override the configuration
        for key in ("trials", "seed", "dtype"):
            value = getattr(args, key)
            if value is not None:
                config["check"][key] = value

        os.makedirs(args.output_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(args.output_dir, "log.txt"))
        file_handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"))
        logging.getLogger().addHandler(file_handler)

        metrics = run_checks(config)

        metrics_dict = metrics.to_dict()
        metrics_dict["datetime"] = datetime.datetime.now().isoformat()
        save_metrics(args.output_dir, metrics_dict)

        logger.info("\n" + metrics.summary())

        exceeded = metrics.exceeded(config["tolerances"][config["check"]["dtype"]])
    except Exception as e:
        logger.exception(f"Error running kernel checks: {e}")
        sys.exit(1)

    if exceeded:
        for check, error in exceeded.items():
            logger.error(f"{check}: error {error:.3e} exceeds tolerance")
        sys.exit(1)


if __name__ == "__main__":
    main()
