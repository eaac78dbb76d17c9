import math

import numpy as np
import pytest

from slamkit.lie import (
    SE3,
    SO3,
    angle_axis_to_matrix,
    euler_zyx,
    hat,
    matrix_to_quaternion,
    quaternion_to_matrix,
    vee,
)


def test_hat_vee_round_trip():
    v = np.array([0.3, -1.2, 2.5])
    assert np.allclose(vee(hat(v)), v)
    assert np.allclose(hat(v), -hat(v).T)


def test_hat_matches_cross_product():
    a = np.array([1.0, 2.0, 3.0])
    b = np.array([-0.5, 0.4, 2.0])
    assert np.allclose(hat(a) @ b, np.cross(a, b))


def test_rotation_about_z_by_quarter_turn():
    r = angle_axis_to_matrix(math.pi / 2, [0, 0, 1])
    assert np.allclose(r @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])


def test_so3_from_matrix_equals_from_quaternion():
    r = angle_axis_to_matrix(math.pi / 2, [0, 0, 1])
    q = matrix_to_quaternion(r)
    assert np.allclose(SO3(r).matrix, SO3.from_quaternion(*q).matrix)


def test_so3_log_of_z_rotation():
    r = angle_axis_to_matrix(math.pi / 2, [0, 0, 1])
    assert np.allclose(SO3(r).log(), [0.0, 0.0, math.pi / 2])


@pytest.mark.parametrize("omega", [[0.1, -0.2, 0.3], [1.5, 1.0, -1.2], [0.0, 0.0, 0.0], [0.0, -2.9, 0.5]])
def test_so3_exp_log_round_trip(omega):
    assert np.allclose(SO3.exp(omega).log(), omega, atol=1e-9)


def test_so3_inverse_is_identity():
    r = SO3.exp([0.4, 0.2, -0.7])
    assert np.allclose((r * r.inverse()).matrix, np.eye(3))


def test_so3_rejects_non_rotation():
    with pytest.raises(ValueError):
        SO3(np.diag([1.0, 2.0, 1.0]))
    with pytest.raises(ValueError):
        SO3(np.diag([1.0, 1.0, -1.0]))


def test_quaternion_matrix_round_trip():
    r = SO3.exp([2.5, -0.3, 0.8]).matrix
    assert np.allclose(quaternion_to_matrix(*matrix_to_quaternion(r)), r)


def test_quaternion_rotation_matches_sandwich_product():
    q = matrix_to_quaternion(angle_axis_to_matrix(math.pi / 4, [0, 0, 1]))
    v = np.array([1.0, 0.0, 0.0])

    def qmul(p, r):
        w1, x1, y1, z1 = p
        w2, x2, y2, z2 = r
        return np.array([
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ])

    conj = q * np.array([1, -1, -1, -1])
    rotated = qmul(qmul(q, np.array([0.0, *v])), conj)
    assert np.allclose(SO3.from_quaternion(*q) * v, rotated[1:])


def test_euler_of_yaw_only():
    r = angle_axis_to_matrix(math.pi / 4, [0, 0, 1])
    assert np.allclose(euler_zyx(r), [math.pi / 4, 0.0, 0.0])


def test_euler_round_trip():
    yaw, pitch, roll = 1.1, -0.4, 0.7
    r = (
        angle_axis_to_matrix(yaw, [0, 0, 1])
        @ angle_axis_to_matrix(pitch, [0, 1, 0])
        @ angle_axis_to_matrix(roll, [1, 0, 0])
    )
    assert np.allclose(euler_zyx(r), [yaw, pitch, roll])


@pytest.mark.parametrize("xi", [[0.1, 0.2, 0.3, 0.0, 0.0, 0.0], [1.0, -2.0, 0.5, 0.3, -0.6, 1.1]])
def test_se3_exp_log_round_trip(xi):
    assert np.allclose(SE3.exp(xi).log(), xi, atol=1e-9)


def test_se3_inverse_and_matrix():
    t = SE3.exp([0.5, -0.2, 1.0, 0.3, 0.1, -0.4])
    assert np.allclose((t * t.inverse()).matrix(), np.eye(4))
    assert np.allclose(t.inverse().matrix(), np.linalg.inv(t.matrix()))
    assert np.allclose(t.matrix3x4(), t.matrix()[:3])


def test_se3_adjoint_conjugation():
    t = SE3.exp([0.5, -0.2, 1.0, 0.3, 0.1, -0.4])
    xi = np.array([0.2, 0.1, -0.3, 0.05, -0.1, 0.2])
    lhs = (t * SE3.exp(xi) * t.inverse()).matrix()
    rhs = SE3.exp(t.adjoint() @ xi).matrix()
    assert np.allclose(lhs, rhs)


def test_coordinate_transform_between_frames():
    t1w = SE3.from_quaternion(0.35, 0.2, 0.3, 0.1, [0.3, 0.1, 0.1])
    t2w = SE3.from_quaternion(-0.5, 0.4, -0.1, 0.2, [-0.1, 0.5, 0.3])
    p1 = np.array([0.5, 0.0, 0.2])
    p2 = t2w * t1w.inverse() * p1
    expected = (t2w.matrix() @ np.linalg.inv(t1w.matrix()) @ np.append(p1, 1.0))[:3]
    assert np.allclose(p2, expected)
    assert np.allclose(t1w * (t2w.inverse() * p2), p1)


def test_se3_applies_to_point_rows():
    t = SE3.exp([0.5, -0.2, 1.0, 0.3, 0.1, -0.4])
    pts = np.array([[1.0, 2.0, 3.0], [-1.0, 0.0, 0.5]])
    out = t * pts
    assert np.allclose(out[1], t * pts[1])
    with pytest.raises(ValueError):
        t * np.zeros(4)