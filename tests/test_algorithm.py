from types import SimpleNamespace

import numpy as np
import pytest

from slamkit.algorithm import to_vec2, triangulate
from slamkit.lie import SE3


def test_triangulation_matches_source_case():
    pt_world = np.array([30.0, 20.0, 10.0])
    poses = [
        SE3.from_quaternion(0, 0, 0, 1, (0, 0, 0)),
        SE3.from_quaternion(0, 0, 0, 1, (0, -10, 0)),
        SE3.from_quaternion(0, 0, 0, 1, (0, 10, 0)),
    ]
    points = []
    for pose in poses:
        pc = pose * pt_world
        points.append(pc / pc[2])

    estimated = triangulate(poses, points)
    assert estimated is not None
    assert estimated[0] == pytest.approx(pt_world[0], abs=0.01)
    assert estimated[1] == pytest.approx(pt_world[1], abs=0.01)
    assert estimated[2] == pytest.approx(pt_world[2], abs=0.01)


def test_triangulation_rejects_inconsistent_observations():
    poses = [SE3(), SE3(translation=(1.0, 0.0, 0.0))]
    points = [(0.0, 0.0, 1.0), (0.5, 0.3, 1.0)]
    assert triangulate(poses, points) is None


def test_triangulation_requires_matching_lengths():
    with pytest.raises(ValueError):
        triangulate([SE3(), SE3()], [(0.0, 0.0, 1.0)])


def test_triangulation_requires_two_views():
    with pytest.raises(ValueError):
        triangulate([SE3()], [(0.0, 0.0, 1.0)])


def test_to_vec2_from_object_and_pair():
    assert to_vec2(SimpleNamespace(x=1.5, y=-2.0)).tolist() == [1.5, -2.0]
    assert to_vec2((3, 4)).tolist() == [3.0, 4.0]


def test_to_vec2_rejects_wrong_size():
    with pytest.raises(ValueError):
        to_vec2((1.0, 2.0, 3.0))