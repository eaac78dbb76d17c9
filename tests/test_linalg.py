import numpy as np
import pytest

from slamkit.linalg import SingularMatrixError, gaussian_elimination, solve_by_eigendecomposition


@pytest.fixture
def spd_system():
    rng = np.random.default_rng(7)
    b1 = rng.uniform(-1.0, 1.0, size=(3, 3))
    a = b1.T @ b1 + 0.1 * np.eye(3)
    b = rng.uniform(-1.0, 1.0, size=3)
    return a, b


def test_gaussian_elimination_solves_system(spd_system):
    a, b = spd_system
    x = gaussian_elimination(a, b)
    assert np.allclose(a @ x, b)
    assert np.allclose(x, np.linalg.solve(a, b))


def test_eigendecomposition_solves_system(spd_system):
    a, b = spd_system
    x = solve_by_eigendecomposition(a, b)
    assert np.allclose(a @ x, b)


def test_solvers_agree(spd_system):
    a, b = spd_system
    assert np.allclose(gaussian_elimination(a, b), solve_by_eigendecomposition(a, b))


def test_gaussian_elimination_does_not_modify_input(spd_system):
    a, b = spd_system
    a_copy, b_copy = a.copy(), b.copy()
    gaussian_elimination(a, b)
    assert np.array_equal(a, a_copy)
    assert np.array_equal(b, b_copy)


def test_zero_pivot_raises():
    with pytest.raises(SingularMatrixError):
        gaussian_elimination([[0.0, 1.0], [1.0, 0.0]], [1.0, 2.0])


def test_zero_eigenvalue_raises():
    with pytest.raises(SingularMatrixError):
        solve_by_eigendecomposition(np.diag([1.0, 0.0, 2.0]), [1.0, 1.0, 1.0])


def test_shape_mismatch_raises():
    with pytest.raises(ValueError):
        gaussian_elimination(np.eye(3), [1.0, 2.0])
    with pytest.raises(ValueError):
        solve_by_eigendecomposition(np.ones((2, 3)), [1.0, 2.0])