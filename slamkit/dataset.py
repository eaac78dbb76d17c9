"""Reading stereo sequences laid out like the KITTI odometry dataset."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path

import imageio.v3 as iio
import numpy as np

from slamkit.camera import Camera
from slamkit.entities import Frame
from slamkit.lie import SE3, SO3

logger = logging.getLogger(__name__)

_CAMERA_COUNT = 4
_NAME_LENGTH = 3


def _take_chars(tokens: deque, count: int) -> str:
    taken = ""
    while len(taken) < count:
        if not tokens:
            raise ValueError("calibration file is truncated")
        token = tokens.popleft()
        need = count - len(taken)
        taken += token[:need]
        if len(token) > need:
            tokens.appendleft(token[need:])
    return taken


def _take_number(tokens: deque) -> float:
    if not tokens:
        raise ValueError("calibration file is truncated")
    return float(tokens.popleft())


def load_calibration(path) -> list[Camera]:
    """Read four cameras from a ``calib.txt`` file of 3x4 projection matrices."""
    tokens = deque(Path(path).read_text().split())
    cameras = []
    for index in range(_CAMERA_COUNT):
        _take_chars(tokens, _NAME_LENGTH)
        projection = np.array([_take_number(tokens) for _ in range(12)]).reshape(3, 4)
        k = projection[:, :3]
        t = np.linalg.inv(k) @ projection[:, 3]
        k = k * 0.5
        cameras.append(
            Camera(k[0, 0], k[1, 1], k[0, 2], k[1, 2], float(np.linalg.norm(t)), SE3(SO3(), t))
        )
        logger.info("Camera %d extrinsics: %s", index, t)
    return cameras


def _read_gray(path: Path) -> np.ndarray | None:
    try:
        image = iio.imread(path)
    except OSError:
        return None
    if image.ndim == 3:
        rgb = image[..., :3].astype(float)
        gray = rgb @ np.array([0.299, 0.587, 0.114])
        image = np.clip(np.rint(gray), 0, 255).astype(np.uint8)
    return image


def _half_size(image: np.ndarray) -> np.ndarray:
    height = int(np.rint(image.shape[0] * 0.5))
    width = int(np.rint(image.shape[1] * 0.5))
    return image[::2, ::2][:height, :width]


class Dataset:
    """A stereo sequence: calibration plus left and right image folders."""

    def __init__(self, dataset_path):
        self.dataset_path = Path(dataset_path)
        self.current_image_index = 0
        self.cameras: list[Camera] = []

    def init(self) -> None:
        """Load the calibration and rewind to the first image."""
        self.cameras = load_calibration(self.dataset_path / "calib.txt")
        self.current_image_index = 0

    def next_frame(self) -> Frame | None:
        """The next stereo frame at half resolution, or ``None`` at the end."""
        name = f"{self.current_image_index:06d}.png"
        left = _read_gray(self.dataset_path / "image_0" / name)
        right = _read_gray(self.dataset_path / "image_1" / name)
        if left is None or right is None:
            logger.warning("cannot find images at index %d", self.current_image_index)
            return None
        frame = Frame.create()
        frame.left_img = _half_size(left)
        frame.right_img = _half_size(right)
        self.current_image_index += 1
        return frame

    def camera(self, camera_id: int) -> Camera:
        return self.cameras[camera_id]