import io

import numpy as np
import pytest

from slamkit.lie import SE3, SO3, angle_axis_to_matrix
from slamkit.rgbd import (
    Intrinsics,
    depth_to_points,
    disparity_to_pointcloud,
    read_poses,
    statistical_outlier_removal,
    undistort_image,
    voxel_filter,
)

INTR = Intrinsics(fx=518.0, fy=519.0, cx=2.0, cy=1.0)


def test_read_poses_identity_rotation():
    text = "1 2 3 0 0 0 1\n4 5 6 0 0 0 1\n"
    poses = read_poses(io.StringIO(text), 2)
    assert len(poses) == 2
    assert np.allclose(poses[0].translation, [1, 2, 3])
    assert np.allclose(poses[1].translation, [4, 5, 6])
    assert np.allclose(poses[0].rotation.matrix, np.eye(3))


def test_read_poses_quaternion_order():
    # qx qy qz qw with qw last: 0 0 1 0 is a half turn about z
    poses = read_poses(io.StringIO("0 0 0 0 0 1 0"), 1)
    assert np.allclose(poses[0] * np.array([1.0, 0.0, 0.0]), [-1.0, 0.0, 0.0])


def test_read_poses_truncated():
    with pytest.raises(ValueError):
        read_poses(io.StringIO("1 2 3 0 0 0"), 1)


def test_read_poses_not_a_number():
    with pytest.raises(ValueError):
        read_poses(io.StringIO("1 2 x 0 0 0 1"), 1)


def _images():
    depth = np.array([[0, 1000, 2000, 0], [3000, 0, 500, 4000]], dtype=np.uint16)
    color = np.arange(2 * 4 * 3, dtype=np.uint8).reshape(2, 4, 3)
    return color, depth


def test_depth_to_points_skips_zero_depth():
    color, depth = _images()
    cloud = depth_to_points(color, depth, SE3(), INTR, 1000.0)
    assert cloud.shape == (np.count_nonzero(depth), 6)
    assert np.allclose(np.sort(cloud[:, 2]), np.sort(depth[depth > 0] / 1000.0))


def test_depth_to_points_reprojects_to_pixels_and_keeps_color():
    color, depth = _images()
    cloud = depth_to_points(color, depth, SE3(), INTR, 1000.0)
    v, u = np.nonzero(depth)
    x, y, z = cloud[:, 0], cloud[:, 1], cloud[:, 2]
    assert np.allclose(x * INTR.fx / z + INTR.cx, u)
    assert np.allclose(y * INTR.fy / z + INTR.cy, v)
    assert np.array_equal(cloud[:, 3:], color[v, u].astype(float))


def test_depth_to_points_applies_pose():
    color, depth = _images()
    pose = SE3(SO3(angle_axis_to_matrix(0.3, [0, 0, 1])), [1.0, -2.0, 0.5])
    local = depth_to_points(color, depth, SE3(), INTR, 1000.0)
    world = depth_to_points(color, depth, pose, INTR, 1000.0)
    assert np.allclose(world[:, :3], pose * local[:, :3])


def test_depth_to_points_size_mismatch():
    with pytest.raises(ValueError):
        depth_to_points(np.zeros((3, 3, 3)), np.ones((2, 2)), SE3(), INTR, 1000.0)


def test_undistort_without_distortion_is_identity():
    image = np.arange(30, dtype=np.uint8).reshape(5, 6)
    out = undistort_image(image, Intrinsics(1.0, 1.0, 0.0, 0.0), 0.0, 0.0, 0.0, 0.0)
    assert out.dtype == image.dtype
    assert np.array_equal(out, image)


def test_undistort_out_of_range_becomes_zero():
    image = np.full((5, 6), 200, dtype=np.uint8)
    out = undistort_image(image, Intrinsics(1.0, 1.0, 0.0, 0.0), 10.0, 0.0, 0.0, 0.0)
    assert out[0, 0] == 200
    assert out[4, 5] == 0
    assert out.shape == image.shape


def test_disparity_to_pointcloud_filters_range():
    gray = np.array([[0, 255, 51], [102, 204, 10]], dtype=np.uint8)
    disparity = np.array([[0.0, 10.0, 96.0], [20.0, -1.0, 40.0]])
    cloud = disparity_to_pointcloud(gray, disparity, INTR, 0.573)
    assert cloud.shape == (3, 4)
    valid = (disparity > 0) & (disparity < 96)
    v, u = np.nonzero(valid)
    assert np.allclose(cloud[:, 2], INTR.fx * 0.573 / disparity[v, u])
    assert np.allclose(cloud[:, 3], gray[v, u] / 255.0)
    assert np.allclose(cloud[:, 0] * INTR.fx / cloud[:, 2] + INTR.cx, u)


def test_disparity_shape_mismatch():
    with pytest.raises(ValueError):
        disparity_to_pointcloud(np.zeros((2, 2)), np.zeros((2, 3)), INTR, 0.5)


def test_voxel_filter_averages_within_voxel():
    points = np.array(
        [
            [0.01, 0.01, 0.01, 10.0],
            [0.02, 0.02, 0.02, 20.0],
            [1.01, 0.01, 0.01, 30.0],
        ]
    )
    out = voxel_filter(points, 0.03)
    assert out.shape == (2, 4)
    assert any(np.allclose(row, points[:2].mean(axis=0)) for row in out)
    assert any(np.allclose(row, points[2]) for row in out)


def test_voxel_filter_preserves_mean_when_all_in_one_voxel():
    rng = np.random.default_rng(1)
    points = rng.uniform(0.0, 0.5, size=(40, 3))
    out = voxel_filter(points, 1.0)
    assert out.shape == (1, 3)
    assert np.allclose(out[0], points.mean(axis=0))


def test_voxel_filter_rejects_bad_resolution():
    with pytest.raises(ValueError):
        voxel_filter(np.zeros((3, 3)), 0.0)


def test_statistical_outlier_removal_drops_far_point():
    grid = np.stack(np.meshgrid(*[np.arange(3) * 0.1] * 3, indexing="ij"), axis=-1).reshape(-1, 3)
    points = np.vstack([grid, [[100.0, 100.0, 100.0]]])
    out = statistical_outlier_removal(points, 5, 1.0)
    assert len(out) == len(grid)
    assert np.allclose(np.sort(out, axis=0), np.sort(grid, axis=0))


def test_statistical_outlier_removal_keeps_columns():
    grid = np.stack(np.meshgrid(*[np.arange(3) * 0.1] * 3, indexing="ij"), axis=-1).reshape(-1, 3)
    colored = np.column_stack([grid, np.arange(len(grid))])
    out = statistical_outlier_removal(colored, 4, 3.0)
    assert out.shape[1] == 4
    assert set(out[:, 3]).issubset(set(colored[:, 3]))


def test_statistical_outlier_removal_rejects_bad_k():
    with pytest.raises(ValueError):
        statistical_outlier_removal(np.zeros((5, 3)), 0, 1.0)