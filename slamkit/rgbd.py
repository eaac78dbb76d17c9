"""Point clouds from RGB-D and stereo images, lens undistortion and cloud filters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TextIO

import numpy as np
from scipy.spatial import cKDTree

from slamkit.lie import SE3

_POSE_FIELDS = 7
MAX_DISPARITY = 96.0


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole camera intrinsics."""

    fx: float
    fy: float
    cx: float
    cy: float


def read_poses(stream: TextIO, count: int = 5) -> list[SE3]:
    """Read ``count`` poses stored as ``tx ty tz qx qy qz qw`` from a text stream."""
    if count < 0:
        raise ValueError("count must not be negative")
    tokens = stream.read().split()
    needed = _POSE_FIELDS * count
    if len(tokens) < needed:
        raise ValueError(f"expected {needed} numbers for {count} poses, found {len(tokens)}")
    try:
        records = np.array(tokens[:needed], dtype=float).reshape(count, _POSE_FIELDS)
    except ValueError as exc:
        raise ValueError("pose data holds a value that is not a number") from exc
    return [
        SE3.from_quaternion(qw, qx, qy, qz, (tx, ty, tz))
        for tx, ty, tz, qx, qy, qz, qw in records
    ]


def _pixel_grid(shape) -> tuple[np.ndarray, np.ndarray]:
    rows, cols = shape[:2]
    v, u = np.mgrid[0:rows, 0:cols]
    return v.astype(float), u.astype(float)


def depth_to_points(color, depth, pose: SE3, intrinsics: Intrinsics, depth_scale: float = 1000.0) -> np.ndarray:
    """Back-project a depth image into world points with colour.

    ``color`` is an (H, W, 3) image in RGB channel order (or a grey (H, W)
    image), ``depth`` an (H, W) array of raw depth values where 0 means no
    measurement. ``pose`` maps camera coordinates to the world. Returns an
    (N, 6) array of ``x, y, z, r, g, b`` in row-major pixel order.
    """
    depth = np.asarray(depth)
    color = np.asarray(color)
    if depth.ndim != 2:
        raise ValueError(f"depth must be a 2D array, got shape {depth.shape}")
    if color.shape[:2] != depth.shape:
        raise ValueError("color and depth images must have the same size")
    if depth_scale == 0.0:
        raise ValueError("depth_scale must not be zero")
    if color.ndim == 2:
        color = np.repeat(color[..., None], 3, axis=2)

    v, u = np.nonzero(depth)
    z = depth[v, u].astype(float) / depth_scale
    x = (u - intrinsics.cx) * z / intrinsics.fx
    y = (v - intrinsics.cy) * z / intrinsics.fy
    camera_points = np.column_stack([x, y, z])
    world = pose * camera_points if len(camera_points) else np.zeros((0, 3))
    rgb = color[v, u, :3].astype(float)
    return np.column_stack([world, rgb])


def undistort_image(image, intrinsics: Intrinsics, k1: float, k2: float, p1: float, p2: float) -> np.ndarray:
    """Remove radial-tangential distortion with nearest-neighbour sampling.

    Pixels whose source lies outside the image become 0.
    """
    image = np.asarray(image)
    if image.ndim not in (2, 3):
        raise ValueError(f"image must be 2D or 3D, got shape {image.shape}")
    rows, cols = image.shape[:2]
    v, u = _pixel_grid(image.shape)
    fx, fy, cx, cy = intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy

    x = (u - cx) / fx
    y = (v - cy) / fy
    r2 = x * x + y * y
    radial = 1 + k1 * r2 + k2 * r2 * r2
    x_d = x * radial + 2 * p1 * x * y + p2 * (r2 + 2 * x * x)
    y_d = y * radial + p1 * (r2 + 2 * y * y) + 2 * p2 * x * y
    u_d = fx * x_d + cx
    v_d = fy * y_d + cy

    valid = (u_d >= 0) & (v_d >= 0) & (u_d < cols) & (v_d < rows)
    out = np.zeros_like(image)
    out[valid] = image[v_d[valid].astype(int), u_d[valid].astype(int)]
    return out


def disparity_to_pointcloud(gray, disparity, intrinsics: Intrinsics, baseline: float) -> np.ndarray:
    """Turn a disparity map into points with grey intensity.

    Disparities outside ``(0, 96)`` are skipped. Returns an (N, 4) array of
    ``x, y, z, intensity`` with intensity scaled to [0, 1].
    """
    gray = np.asarray(gray)
    disparity = np.asarray(disparity, dtype=float)
    if gray.shape != disparity.shape or gray.ndim != 2:
        raise ValueError("gray and disparity must be 2D arrays of the same shape")
    valid = (disparity > 0.0) & (disparity < MAX_DISPARITY)
    v, u = np.nonzero(valid)
    d = disparity[v, u]
    depth = intrinsics.fx * baseline / d
    x = (u - intrinsics.cx) / intrinsics.fx * depth
    y = (v - intrinsics.cy) / intrinsics.fy * depth
    return np.column_stack([x, y, depth, gray[v, u].astype(float) / 255.0])


def _as_cloud(points) -> np.ndarray:
    cloud = np.asarray(points, dtype=float)
    if cloud.ndim != 2 or cloud.shape[1] < 3:
        raise ValueError(f"points must have shape (N, >=3), got {cloud.shape}")
    return cloud


def voxel_filter(points, resolution: float) -> np.ndarray:
    """Replace the points in each cubic voxel by their centroid (all columns averaged)."""
    if resolution <= 0.0:
        raise ValueError("resolution must be positive")
    cloud = _as_cloud(points)
    if len(cloud) == 0:
        return cloud.copy()
    keys = np.floor(cloud[:, :3] / resolution).astype(np.int64)
    _, inverse = np.unique(keys, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    groups = int(inverse.max()) + 1
    sums = np.zeros((groups, cloud.shape[1]))
    np.add.at(sums, inverse, cloud)
    counts = np.bincount(inverse, minlength=groups)
    return sums / counts[:, None]


def statistical_outlier_removal(points, mean_k: int = 50, stddev_mul: float = 1.0) -> np.ndarray:
    """Drop points whose mean distance to their ``mean_k`` neighbours is unusually large.

    A point is kept when its mean distance is at most the mean over all points
    plus ``stddev_mul`` sample standard deviations.
    """
    if mean_k < 1:
        raise ValueError("mean_k must be at least 1")
    cloud = _as_cloud(points)
    n = len(cloud)
    if n < 3:
        return cloud.copy()
    k = min(mean_k, n - 1)
    distances, _ = cKDTree(cloud[:, :3]).query(cloud[:, :3], k=k + 1)
    mean_distances = distances[:, 1:].mean(axis=1)
    mean = mean_distances.mean()
    std = mean_distances.std(ddof=1)
    threshold = mean + stddev_mul * std
    return cloud[mean_distances <= threshold]