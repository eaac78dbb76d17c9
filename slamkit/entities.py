"""Features, frames and map points."""

from __future__ import annotations

import itertools
import threading
import weakref

import numpy as np

from slamkit.lie import SE3


def _ref(obj):
    return None if obj is None else weakref.ref(obj)


def _deref(ref):
    return None if ref is None else ref()


class Feature:
    """A 2D feature; after triangulation it is linked to a map point.

    The owning frame and the linked map point are held weakly.
    """

    def __init__(self, frame=None, position=(0.0, 0.0)):
        self._frame = _ref(frame)
        self.position = np.asarray(position, dtype=float).reshape(2)
        self._map_point = None
        self.is_outlier = False
        self.is_on_left_image = True

    @property
    def frame(self):
        return _deref(self._frame)

    @frame.setter
    def frame(self, frame):
        self._frame = _ref(frame)

    @property
    def map_point(self):
        return _deref(self._map_point)

    @map_point.setter
    def map_point(self, map_point):
        self._map_point = _ref(map_point)


class Frame:
    """A stereo frame; every frame gets an id, key frames also a key-frame id."""

    _ids = itertools.count()
    _keyframe_ids = itertools.count()

    def __init__(self, id=0, time_stamp=0.0, pose=None, left=None, right=None):
        self.id = id
        self.keyframe_id = 0
        self.is_keyframe = False
        self.time_stamp = time_stamp
        self._pose = SE3() if pose is None else pose
        self._pose_lock = threading.Lock()
        self.left_img = left
        self.right_img = right
        self.features_left: list[Feature] = []
        self.features_right: list[Feature | None] = []

    @property
    def pose(self) -> SE3:
        """World-to-camera transform."""
        with self._pose_lock:
            return self._pose

    @pose.setter
    def pose(self, pose: SE3) -> None:
        with self._pose_lock:
            self._pose = pose

    @classmethod
    def create(cls) -> "Frame":
        """Make a frame with the next free id."""
        return cls(id=next(cls._ids))

    def set_keyframe(self) -> None:
        """Mark this frame as a key frame and give it the next key-frame id."""
        self.is_keyframe = True
        self.keyframe_id = next(Frame._keyframe_ids)


class MapPoint:
    """A landmark formed by triangulating features."""

    _ids = itertools.count()

    def __init__(self, id=0, position=None):
        self.id = id
        self.is_outlier = False
        self._pos = np.zeros(3) if position is None else np.asarray(position, dtype=float).reshape(3)
        self._lock = threading.Lock()
        self.observed_times = 0
        self._observations: list[weakref.ref] = []

    @property
    def pos(self) -> np.ndarray:
        """Position in the world."""
        with self._lock:
            return self._pos.copy()

    @pos.setter
    def pos(self, position) -> None:
        with self._lock:
            self._pos = np.asarray(position, dtype=float).reshape(3).copy()

    @classmethod
    def create(cls) -> "MapPoint":
        """Make a map point with the next free id."""
        return cls(id=next(cls._ids))

    def add_observation(self, feature: Feature) -> None:
        with self._lock:
            self._observations.append(weakref.ref(feature))
            self.observed_times += 1

    def remove_observation(self, feature: Feature) -> None:
        """Drop the first observation by ``feature`` and unlink it from this point."""
        with self._lock:
            for index, ref in enumerate(self._observations):
                if ref() is feature:
                    del self._observations[index]
                    feature.map_point = None
                    self.observed_times -= 1
                    break

    def observations(self) -> list[Feature]:
        """The observing features that still exist."""
        with self._lock:
            refs = list(self._observations)
        return [feat for feat in (ref() for ref in refs) if feat is not None]