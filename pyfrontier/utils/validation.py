"""Validation helpers for moments and portfolio weights."""

from __future__ import annotations

import numpy as np
import numpy.typing as npt
from scipy import linalg as sla

from ..exceptions import InvalidDataError


def ensure_finite(arr: npt.ArrayLike, name: str) -> np.ndarray:
    """Return ``arr`` as a float array, raising if any entry is NaN or infinite."""
    out = np.asarray(arr, dtype=float)
    if not np.all(np.isfinite(out)):
        raise InvalidDataError(f"`{name}` contains non-finite values.")
    return out


def is_symmetric(mat: np.ndarray, atol: float = 1e-12) -> bool:
    return mat.ndim == 2 and mat.shape[0] == mat.shape[1] and np.allclose(mat, mat.T, atol=atol)


def smallest_eigenvalue_ratio(mat: np.ndarray) -> float:
    """
    Ratio of the smallest to the largest eigenvalue of a symmetric matrix.

    A ratio at or below a small tolerance means the matrix is numerically
    singular, which is the case for duplicated or collinear assets even when
    floating-point noise leaves the smallest eigenvalue slightly positive.
    """
    eigenvalues = sla.eigvalsh(mat, check_finite=False)
    largest = float(np.max(np.abs(eigenvalues)))
    if largest == 0.0:
        return 0.0
    return float(eigenvalues[0]) / largest


def is_positive_definite(mat: np.ndarray, tol: float = 1e-10) -> bool:
    """True when ``mat`` is symmetric and its eigenvalue ratio exceeds ``tol``."""
    mat = np.asarray(mat, dtype=float)
    if not is_symmetric(mat, atol=1e-10 * max(1.0, float(np.max(np.abs(mat))))):
        return False
    return smallest_eigenvalue_ratio(mat) > tol


def check_weights_sum_to_one(weights: np.ndarray, atol: float = 1e-6) -> bool:
    return bool(np.isclose(np.sum(weights), 1.0, atol=atol))


def check_non_negativity(weights: np.ndarray) -> bool:
    return bool(np.all(np.asarray(weights) >= 0.0))
