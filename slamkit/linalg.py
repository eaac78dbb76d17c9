"""Small linear-system solvers."""

from __future__ import annotations

import numpy as np


class SingularMatrixError(ValueError):
    """Raised when a system cannot be solved because of a zero pivot or eigenvalue."""


def _check_system(a, b) -> tuple[np.ndarray, np.ndarray]:
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float).reshape(-1)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"matrix must be square, got shape {a.shape}")
    if b.shape[0] != a.shape[0]:
        raise ValueError("right-hand side length does not match the matrix")
    return a, b


def gaussian_elimination(a, b) -> np.ndarray:
    """Solve ``a x = b`` by Gaussian elimination without pivoting."""
    a, b = _check_system(a, b)
    n = a.shape[0]
    augmented = np.column_stack([a, b])
    for k in range(n):
        pivot = augmented[k, k]
        if pivot == 0.0:
            raise SingularMatrixError("zero pivot encountered; matrix is singular")
        factors = augmented[k + 1 :, k] / pivot
        augmented[k + 1 :, k:] -= np.outer(factors, augmented[k, k:])

    x = np.zeros(n)
    for i in reversed(range(n)):
        x[i] = (augmented[i, n] - augmented[i, i + 1 : n] @ x[i + 1 :]) / augmented[i, i]
    return x


def solve_by_eigendecomposition(a, b) -> np.ndarray:
    """Solve ``a x = b`` through the real part of the eigendecomposition of ``a``."""
    a, b = _check_system(a, b)
    eigenvalues, eigenvectors = np.linalg.eig(a)
    vectors = eigenvectors.real
    values = eigenvalues.real
    if np.any(values == 0.0):
        raise SingularMatrixError("zero eigenvalue encountered")
    y = np.linalg.inv(vectors) @ b
    return vectors @ (y / values)