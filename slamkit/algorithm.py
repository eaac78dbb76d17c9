"""Geometric algorithms shared by the visual odometry components."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from slamkit.lie import SE3

_QUALITY_RATIO = 1e-2


def triangulate(poses: Sequence[SE3], points) -> np.ndarray | None:
    """Linear triangulation of one point seen from several poses.

    ``poses`` are world-to-camera transforms and ``points`` the matching
    observations on the normalised image plane (only x and y are used).
    Returns the world point, or ``None`` when the solution is poorly
    conditioned.
    """
    pts = [np.asarray(p, dtype=float).reshape(-1) for p in points]
    if len(poses) != len(pts):
        raise ValueError("poses and points must have the same length")
    if len(poses) < 2:
        raise ValueError("at least two observations are needed")

    rows = []
    for pose, point in zip(poses, pts):
        m = pose.matrix3x4()
        rows.append(point[0] * m[2] - m[0])
        rows.append(point[1] * m[2] - m[1])
    a = np.vstack(rows)

    _, singular_values, vt = np.linalg.svd(a, full_matrices=False)
    solution = vt[3]
    if singular_values[3] / singular_values[2] >= _QUALITY_RATIO:
        return None
    return solution[:3] / solution[3]


def to_vec2(point) -> np.ndarray:
    """Turn a 2D point (an object with ``x`` and ``y`` or a pair) into an array."""
    if hasattr(point, "x") and hasattr(point, "y"):
        return np.array([float(point.x), float(point.y)])
    arr = np.asarray(point, dtype=float).reshape(-1)
    if arr.shape != (2,):
        raise ValueError(f"expected a 2D point, got shape {np.shape(point)}")
    return arr