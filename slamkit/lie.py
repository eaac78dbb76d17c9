"""Rotations and rigid-body transforms: SO(3), SE(3) and helpers."""

from __future__ import annotations

import math

import numpy as np

_SMALL_ANGLE = 1e-10
_ORTHOGONALITY_TOLERANCE = 1e-6


def _vec(value, size: int) -> np.ndarray:
    arr = np.asarray(value, dtype=float).reshape(-1)
    if arr.shape != (size,):
        raise ValueError(f"expected a vector of length {size}, got shape {np.shape(value)}")
    return arr


def _apply(rotation: np.ndarray, translation: np.ndarray, points) -> np.ndarray:
    """Apply ``R p + t`` to one point of shape (3,) or to rows of shape (N, 3)."""
    p = np.asarray(points, dtype=float)
    if p.shape == (3,):
        return rotation @ p + translation
    if p.ndim == 2 and p.shape[1] == 3:
        return p @ rotation.T + translation
    raise ValueError(f"points must have shape (3,) or (N, 3), got {p.shape}")


def hat(omega) -> np.ndarray:
    """Return the skew-symmetric matrix of a 3-vector."""
    x, y, z = _vec(omega, 3)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def vee(matrix) -> np.ndarray:
    """Return the 3-vector of a skew-symmetric matrix."""
    m = np.asarray(matrix, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
    return np.array([m[2, 1], m[0, 2], m[1, 0]])


def angle_axis_to_matrix(angle: float, axis) -> np.ndarray:
    """Rotation matrix for a rotation of ``angle`` radians about ``axis``."""
    u = _vec(axis, 3)
    norm = np.linalg.norm(u)
    if norm == 0.0:
        raise ValueError("rotation axis must not be zero")
    u = u / norm
    c, s = math.cos(angle), math.sin(angle)
    return c * np.eye(3) + s * hat(u) + (1.0 - c) * np.outer(u, u)


def quaternion_to_matrix(w: float, x: float, y: float, z: float) -> np.ndarray:
    """Rotation matrix of a quaternion; the quaternion is normalised first."""
    q = np.array([w, x, y, z], dtype=float)
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("quaternion must not be zero")
    w, x, y, z = q / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def matrix_to_quaternion(matrix) -> np.ndarray:
    """Unit quaternion of a rotation matrix, as an array ``(w, x, y, z)``."""
    m = np.asarray(matrix, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = math.sqrt(trace + 1.0)
        w = 0.5 * s
        s = 0.5 / s
        xyz = np.array([(m[2, 1] - m[1, 2]) * s, (m[0, 2] - m[2, 0]) * s, (m[1, 0] - m[0, 1]) * s])
    else:
        i = 0
        if m[1, 1] > m[0, 0]:
            i = 1
        if m[2, 2] > m[i, i]:
            i = 2
        j = (i + 1) % 3
        k = (j + 1) % 3
        s = math.sqrt(m[i, i] - m[j, j] - m[k, k] + 1.0)
        xyz = np.zeros(3)
        xyz[i] = 0.5 * s
        s = 0.5 / s
        w = (m[k, j] - m[j, k]) * s
        xyz[j] = (m[j, i] + m[i, j]) * s
        xyz[k] = (m[k, i] + m[i, k]) * s
    q = np.array([w, *xyz])
    return q / np.linalg.norm(q)


def euler_zyx(matrix) -> np.ndarray:
    """Yaw, pitch and roll (Z-Y-X order) of a rotation matrix; yaw lies in [0, pi]."""
    m = np.asarray(matrix, dtype=float)
    if m.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
    first = math.atan2(m[1, 0], m[0, 0])
    c2 = math.hypot(m[2, 2], m[2, 1])
    if first < 0.0:
        first += math.pi
        second = math.atan2(-m[2, 0], -c2)
    else:
        second = math.atan2(-m[2, 0], c2)
    s1, c1 = math.sin(first), math.cos(first)
    third = math.atan2(s1 * m[0, 2] - c1 * m[1, 2], c1 * m[1, 1] - s1 * m[0, 1])
    return np.array([first, second, third])


class SO3:
    """A rotation in three dimensions."""

    __slots__ = ("_matrix",)

    def __init__(self, matrix=None):
        if matrix is None:
            self._matrix = np.eye(3)
            return
        m = np.asarray(matrix, dtype=float)
        if m.shape != (3, 3):
            raise ValueError(f"expected a 3x3 matrix, got shape {m.shape}")
        if np.linalg.norm(m @ m.T - np.eye(3)) > _ORTHOGONALITY_TOLERANCE or np.linalg.det(m) <= 0.0:
            raise ValueError("matrix is not a rotation matrix")
        u, _, vt = np.linalg.svd(m)
        self._matrix = u @ vt

    @classmethod
    def _trusted(cls, matrix: np.ndarray) -> "SO3":
        obj = cls.__new__(cls)
        obj._matrix = matrix
        return obj

    @property
    def matrix(self) -> np.ndarray:
        """The 3x3 rotation matrix."""
        return self._matrix.copy()

    @classmethod
    def from_quaternion(cls, w, x, y, z) -> "SO3":
        """Build a rotation from a quaternion, normalising it."""
        return cls._trusted(quaternion_to_matrix(w, x, y, z))

    @classmethod
    def exp(cls, omega) -> "SO3":
        """Exponential map from a rotation vector."""
        w = _vec(omega, 3)
        theta = float(np.linalg.norm(w))
        k = hat(w)
        if theta < _SMALL_ANGLE:
            return cls._trusted(np.eye(3) + k + 0.5 * k @ k)
        return cls._trusted(
            np.eye(3) + math.sin(theta) / theta * k + (1.0 - math.cos(theta)) / theta**2 * k @ k
        )

    def log(self) -> np.ndarray:
        """Logarithmic map to a rotation vector."""
        q = matrix_to_quaternion(self._matrix)
        w, v = q[0], q[1:]
        n = float(np.linalg.norm(v))
        if n < _SMALL_ANGLE:
            factor = 2.0 / w - 2.0 / 3.0 * n * n / w**3
        elif abs(w) < _SMALL_ANGLE:
            factor = (math.pi if w > 0 else -math.pi) / n
        else:
            factor = 2.0 * math.atan(n / w) / n
        return factor * v

    def inverse(self) -> "SO3":
        return SO3._trusted(self._matrix.T.copy())

    def unit_quaternion(self) -> np.ndarray:
        """Unit quaternion ``(w, x, y, z)`` of this rotation."""
        return matrix_to_quaternion(self._matrix)

    def __mul__(self, other):
        if isinstance(other, SO3):
            return SO3._trusted(self._matrix @ other._matrix)
        return _apply(self._matrix, np.zeros(3), other)

    def __repr__(self) -> str:
        return f"SO3({self._matrix.tolist()!r})"


class SE3:
    """A rigid-body transform: a rotation followed by a translation.

    Tangent vectors are ordered translation first, rotation second.
    """

    __slots__ = ("_rotation", "_translation")

    def __init__(self, rotation=None, translation=None):
        if rotation is None:
            rotation = SO3()
        elif not isinstance(rotation, SO3):
            rotation = SO3(rotation)
        self._rotation = rotation
        self._translation = np.zeros(3) if translation is None else _vec(translation, 3).copy()

    @property
    def rotation(self) -> SO3:
        return self._rotation

    @property
    def translation(self) -> np.ndarray:
        return self._translation.copy()

    @classmethod
    def from_quaternion(cls, w, x, y, z, translation) -> "SE3":
        """Build a transform from a quaternion and a translation."""
        return cls(SO3.from_quaternion(w, x, y, z), translation)

    @classmethod
    def exp(cls, xi) -> "SE3":
        """Exponential map from a 6-vector ``(rho, phi)``."""
        v = _vec(xi, 6)
        rho, phi = v[:3], v[3:]
        theta = float(np.linalg.norm(phi))
        k = hat(phi)
        if theta < _SMALL_ANGLE:
            jac = np.eye(3) + 0.5 * k + k @ k / 6.0
        else:
            jac = (
                np.eye(3)
                + (1.0 - math.cos(theta)) / theta**2 * k
                + (theta - math.sin(theta)) / theta**3 * k @ k
            )
        return cls(SO3.exp(phi), jac @ rho)

    def log(self) -> np.ndarray:
        """Logarithmic map to a 6-vector ``(rho, phi)``."""
        phi = self._rotation.log()
        theta = float(np.linalg.norm(phi))
        k = hat(phi)
        if theta < _SMALL_ANGLE:
            jac_inv = np.eye(3) - 0.5 * k + k @ k / 12.0
        else:
            coeff = (1.0 - theta * math.sin(theta) / (2.0 * (1.0 - math.cos(theta)))) / theta**2
            jac_inv = np.eye(3) - 0.5 * k + coeff * k @ k
        return np.concatenate([jac_inv @ self._translation, phi])

    def inverse(self) -> "SE3":
        r_inv = self._rotation.inverse()
        return SE3(r_inv, -(r_inv * self._translation))

    def matrix(self) -> np.ndarray:
        """The 4x4 homogeneous matrix."""
        m = np.eye(4)
        m[:3, :3] = self._rotation.matrix
        m[:3, 3] = self._translation
        return m

    def matrix3x4(self) -> np.ndarray:
        """The top three rows of the homogeneous matrix."""
        return self.matrix()[:3, :]

    def adjoint(self) -> np.ndarray:
        """The 6x6 adjoint matrix."""
        r = self._rotation.matrix
        adj = np.zeros((6, 6))
        adj[:3, :3] = r
        adj[3:, 3:] = r
        adj[:3, 3:] = hat(self._translation) @ r
        return adj

    def unit_quaternion(self) -> np.ndarray:
        return self._rotation.unit_quaternion()

    def __mul__(self, other):
        if isinstance(other, SE3):
            return SE3(self._rotation * other._rotation, self._rotation * other._translation + self._translation)
        return _apply(self._rotation.matrix, self._translation, other)

    def __repr__(self) -> str:
        return f"SE3(rotation={self._rotation.matrix.tolist()!r}, translation={self._translation.tolist()!r})"