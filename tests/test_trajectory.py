import math

import numpy as np
import pytest

from slamkit.lie import SE3, angle_axis_to_matrix
from slamkit.trajectory import main, read_trajectory, trajectory_rmse


def _write(path, rows):
    path.write_text("\n".join(" ".join(str(v) for v in row) for row in rows) + "\n")
    return path


def test_read_translation_and_identity(tmp_path):
    path = _write(tmp_path / "t.txt", [[0.0, 1.0, 2.0, 3.0, 0.0, 0.0, 0.0, 1.0]])
    poses = read_trajectory(path)
    assert len(poses) == 1
    assert np.allclose(poses[0].translation, [1.0, 2.0, 3.0])
    assert np.allclose(poses[0].rotation.matrix, np.eye(3))


def test_read_quaternion_order_is_xyzw(tmp_path):
    s = math.sin(math.pi / 4)
    c = math.cos(math.pi / 4)
    path = _write(tmp_path / "t.txt", [[5.0, 0, 0, 0, 0.0, 0.0, s, c]])
    (pose,) = read_trajectory(path)
    expected = angle_axis_to_matrix(math.pi / 2, [0, 0, 1])
    assert np.allclose(pose.rotation.matrix, expected)


def test_read_several_records_in_order(tmp_path):
    rows = [[i, float(i), 0, 0, 0, 0, 0, 1] for i in range(4)]
    poses = read_trajectory(_write(tmp_path / "t.txt", rows))
    assert [p.translation[0] for p in poses] == [0.0, 1.0, 2.0, 3.0]


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_trajectory(tmp_path / "absent.txt")


def test_truncated_record_raises(tmp_path):
    path = tmp_path / "t.txt"
    path.write_text("0 1 2 3 0 0 0\n")
    with pytest.raises(ValueError):
        read_trajectory(path)


def test_non_numeric_raises(tmp_path):
    path = tmp_path / "t.txt"
    path.write_text("0 1 2 3 0 0 0 x\n")
    with pytest.raises(ValueError):
        read_trajectory(path)


def test_rmse_of_identical_trajectories_is_zero():
    poses = [SE3.exp([0.1 * k, 0.2, -0.3, 0.05, 0.0, 0.1 * k]) for k in range(5)]
    assert trajectory_rmse(poses, poses) == pytest.approx(0.0, abs=1e-12)


def test_rmse_of_constant_translation_offset():
    truth = [SE3() for _ in range(3)]
    shifted = [SE3(None, [0.3, 0.0, 0.0]) for _ in range(3)]
    assert trajectory_rmse(truth, shifted) == pytest.approx(0.3)


def test_rmse_is_symmetric_and_non_negative():
    a = [SE3.exp([0.1, 0.0, 0.2, 0.0, 0.1, 0.0]), SE3.exp([0.0, 0.3, 0.0, 0.2, 0.0, 0.0])]
    b = [SE3(), SE3.exp([0.1, 0.1, 0.1, 0.0, 0.0, 0.1])]
    assert trajectory_rmse(a, b) > 0.0
    assert trajectory_rmse(a, b) == pytest.approx(trajectory_rmse(b, a))


def test_rmse_length_mismatch_raises():
    with pytest.raises(ValueError):
        trajectory_rmse([SE3()], [SE3(), SE3()])


def test_rmse_empty_raises():
    with pytest.raises(ValueError):
        trajectory_rmse([], [])


def test_main_prints_rmse(tmp_path, capsys):
    rows = [[i, float(i), 0, 0, 0, 0, 0, 1] for i in range(3)]
    gt = _write(tmp_path / "gt.txt", rows)
    est = _write(tmp_path / "est.txt", rows)
    assert main([str(gt), str(est)]) == 0
    assert capsys.readouterr().out.strip() == "RMSE = 0"


def test_main_missing_file_returns_error(tmp_path):
    gt = _write(tmp_path / "gt.txt", [[0, 0, 0, 0, 0, 0, 0, 1]])
    assert main([str(gt), str(tmp_path / "absent.txt")]) == 1