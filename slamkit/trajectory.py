"""Reading camera trajectories and measuring how far two of them differ."""

from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path
from typing import Sequence

import numpy as np

from slamkit.lie import SE3

_FIELDS_PER_POSE = 8


def read_trajectory(path) -> list[SE3]:
    """Read poses stored as ``time tx ty tz qx qy qz qw`` records.

    Raises ``FileNotFoundError`` when the file is missing and ``ValueError``
    when the last record is incomplete or a field is not a number.
    """
    tokens = Path(path).read_text().split()
    if len(tokens) % _FIELDS_PER_POSE:
        raise ValueError(
            f"trajectory {path} holds {len(tokens)} numbers, not a multiple of {_FIELDS_PER_POSE}"
        )
    try:
        records = np.array(tokens, dtype=float).reshape(-1, _FIELDS_PER_POSE)
    except ValueError as exc:
        raise ValueError(f"trajectory {path} holds a value that is not a number") from exc
    return [
        SE3.from_quaternion(qw, qx, qy, qz, (tx, ty, tz))
        for _time, tx, ty, tz, qx, qy, qz, qw in records
    ]


def trajectory_rmse(groundtruth: Sequence[SE3], estimated: Sequence[SE3]) -> float:
    """Root mean square of ``|log(gt^-1 * est)|`` over matching poses."""
    if not groundtruth or not estimated:
        raise ValueError("trajectories must not be empty")
    if len(groundtruth) != len(estimated):
        raise ValueError("trajectories must have the same number of poses")
    squared = [
        float(np.linalg.norm((truth.inverse() * guess).log())) ** 2
        for truth, guess in zip(groundtruth, estimated)
    ]
    return math.sqrt(sum(squared) / len(squared))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Compare an estimated trajectory with ground truth.")
    parser.add_argument("groundtruth", nargs="?", default="./example/groundtruth.txt")
    parser.add_argument("estimated", nargs="?", default="./example/estimated.txt")
    args = parser.parse_args(argv)

    try:
        groundtruth = read_trajectory(args.groundtruth)
        estimated = read_trajectory(args.estimated)
    except FileNotFoundError as exc:
        print(f"trajectory {exc.filename} not found.", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    try:
        rmse = trajectory_rmse(groundtruth, estimated)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"RMSE = {rmse:g}")
    return 0