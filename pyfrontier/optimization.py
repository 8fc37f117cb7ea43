"""
This module formulates and solves the Markowitz target-return problem.

The problem is written in the ``solve.QP`` convention, where constraints are
the columns of :math:`A` and the first ``meq`` of them are equalities:

.. math::

    \\min_{w} \\quad & \\tfrac{1}{2} w^T D w - d^T w \\\\
    \\text{subject to} \\quad & A_{:, :meq}^T w = b_{:meq} \\\\
                           & A_{:, meq:}^T w \\ge b_{meq:}

and it is handed to `cvxopt.solvers.qp`, which expects

.. math::

    \\min_{w} \\quad \\tfrac{1}{2} w^T P w + q^T w
    \\quad \\text{s.t.} \\quad G w \\le h, \\; A w = b.

Classes:

* `QPProblem`: The matrices of one quadratic program.
* `MeanVariance`: Minimum-variance portfolios for a given target return.

Functions:

* `build_target_return_qp`: Encodes budget, target-return and non-negativity
  constraints.
* `solve_qp`: Solves a `QPProblem` with cvxopt and maps failures to
  :mod:`pyfrontier.exceptions`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt
from cvxopt import matrix, solvers

from .exceptions import InfeasibleConstraintsError, InvalidDataError, SingularCovarianceError
from .utils.validation import ensure_finite, is_positive_definite

solvers.options.update({"show_progress": False})

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class QPProblem:
    """
    A quadratic program in the ``solve.QP`` convention.

    :ivar D: Quadratic term (:math:`N \\times N`), equal to :math:`2\\Sigma`.
    :ivar d: Linear term (:math:`N`).
    :ivar A: Constraint matrix (:math:`N \\times M`), one constraint per column.
    :ivar b: Constraint bounds (:math:`M`).
    :ivar meq: Number of leading columns of ``A`` that are equalities.
    """
    D: npt.NDArray[np.floating]
    d: npt.NDArray[np.floating]
    A: npt.NDArray[np.floating]
    b: npt.NDArray[np.floating]
    meq: int

    @property
    def n_assets(self) -> int:
        return self.D.shape[0]


def build_target_return_qp(
    mean: npt.ArrayLike,
    covariance_matrix: npt.ArrayLike,
    target_return: Optional[float] = None,
    long_only: bool = True,
) -> QPProblem:
    """
    Encodes the minimum-variance problem for ``target_return``.

    Minimizing :math:`\\tfrac{1}{2} w^T (2\\Sigma) w` is minimizing the portfolio
    variance :math:`w^T \\Sigma w`. The columns of :math:`A` are

    1. all ones with bound 1 (budget, equality),
    2. :math:`\\mu` with bound ``target_return`` (target return, equality),
    3. the identity with bounds 0 (non-negativity, inequality), only when
       ``long_only``.

    With ``target_return=None`` the return column is omitted and the problem
    is the global minimum variance portfolio.

    :param mean: Expected return vector (:math:`N`).
    :param covariance_matrix: Covariance matrix (:math:`N \\times N`).
    :param target_return: Required portfolio return, or None.
    :param long_only: Add the non-negativity constraints. Defaults to True.
    :return: The encoded `QPProblem`.
    :raises InvalidDataError: If shapes are inconsistent or inputs are non-finite.
    """
    mu = ensure_finite(mean, "mean").ravel()
    cov = ensure_finite(covariance_matrix, "covariance_matrix")
    n = mu.shape[0]
    if cov.shape != (n, n):
        raise InvalidDataError(
            f"Covariance shape {cov.shape} does not match {n} expected returns."
        )

    columns = [np.ones(n)]
    bounds = [1.0]
    if target_return is not None:
        if not np.isfinite(target_return):
            raise InvalidDataError("`target_return` must be finite.")
        columns.append(mu)
        bounds.append(float(target_return))
    meq = len(columns)

    A = np.column_stack(columns)
    b = np.array(bounds)
    if long_only:
        A = np.hstack([A, np.eye(n)])
        b = np.concatenate([b, np.zeros(n)])

    return QPProblem(D=2.0 * cov, d=np.zeros(n), A=A, b=b, meq=meq)


def _independent_equalities(
    A_eq: np.ndarray, b_eq: np.ndarray, atol: float = 1e-10
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Drops equality rows that are linear combinations of earlier ones.

    cvxopt requires the equality matrix to have full row rank. Equal expected
    returns make the return row a multiple of the budget row, which is only
    consistent when the bounds match the same combination.
    """
    keep = []
    for i in range(A_eq.shape[0]):
        if np.linalg.matrix_rank(A_eq[keep + [i]]) > len(keep):
            keep.append(i)
            continue
        if keep:
            coeffs = np.linalg.lstsq(A_eq[keep].T, A_eq[i], rcond=None)[0]
            implied = float(coeffs @ b_eq[keep])
        else:
            implied = 0.0
        if not np.isclose(implied, b_eq[i], rtol=0.0, atol=atol):
            raise InfeasibleConstraintsError(
                "Equality constraints are inconsistent: "
                f"row {i} requires {b_eq[i]:.6g} but earlier rows imply {implied:.6g}."
            )
    return A_eq[keep], b_eq[keep]


def solve_qp(problem: QPProblem, singular_tol: float = 1e-10) -> np.ndarray:
    """
    Solves ``problem`` with `cvxopt.solvers.qp`.

    Fresh cvxopt matrices are built on every call, so concurrent calls never
    share solver state.

    :param problem: The quadratic program.
    :param singular_tol: Minimum ratio of the smallest to the largest eigenvalue
        of ``D`` for it to count as positive definite.
    :return: A 1D array of raw solver weights.
    :raises SingularCovarianceError: If ``D`` is not positive definite.
    :raises InfeasibleConstraintsError: If the constraints are inconsistent or
        the solver does not reach an optimal solution.
    """
    D = np.array(problem.D, dtype=float)
    if not is_positive_definite(D, tol=singular_tol):
        raise SingularCovarianceError(
            "Covariance matrix is not positive definite; assets may be duplicated "
            "or collinear, or there are fewer periods than assets."
        )

    meq = problem.meq
    A_eq, b_eq = _independent_equalities(
        np.ascontiguousarray(problem.A[:, :meq].T), np.array(problem.b[:meq], dtype=float)
    )
    G = np.ascontiguousarray(-problem.A[:, meq:].T)
    h = np.array(-problem.b[meq:], dtype=float)

    try:
        sol = solvers.qp(
            matrix(D),
            matrix(-np.array(problem.d, dtype=float)),
            matrix(G) if G.shape[0] else None,
            matrix(h) if h.shape[0] else None,
            matrix(A_eq) if A_eq.shape[0] else None,
            matrix(b_eq) if b_eq.shape[0] else None,
        )
    except ValueError as exc:
        raise InfeasibleConstraintsError(f"QP solver rejected the problem: {exc}") from exc
    except ArithmeticError as exc:
        raise SingularCovarianceError(f"QP solver hit a singular system: {exc}") from exc

    if sol["status"] != "optimal":
        raise InfeasibleConstraintsError(
            f"QP solver failed to find an optimal solution. Status: {sol['status']}"
        )
    return np.array(sol["x"]).flatten()


class MeanVariance:
    """
    Minimum-variance portfolios for a target return, as in Markowitz (1952).

    For long-only portfolios the achievable returns are exactly
    :math:`[\\min_i \\mu_i, \\max_i \\mu_i]`. Targets outside this range are
    rejected before the solver is called. A target at either end can only be
    met by assets whose expected return equals it, so those targets are solved
    on that subset of assets; interior-point solvers do not converge reliably
    when the feasible set has no interior.
    """
    def __init__(
        self,
        mean: npt.ArrayLike,
        covariance_matrix: npt.ArrayLike,
        long_only: bool = True,
        singular_tol: float = 1e-10,
        feasibility_tol: float = 1e-10,
    ):
        """
        Initializes the MeanVariance optimizer.

        :param mean: Expected return vector of assets (:math:`N`).
        :param covariance_matrix: Covariance matrix of asset returns (:math:`N \\times N`).
        :param long_only: Forbid short positions. Defaults to True.
        :param singular_tol: Eigenvalue ratio below which the covariance is singular.
        :param feasibility_tol: Absolute tolerance on the achievable return range.
        :raises InvalidDataError: If the shapes of mean and covariance do not match.
        """
        self._mean = ensure_finite(mean, "mean").ravel()
        self._cov = ensure_finite(covariance_matrix, "covariance_matrix")
        self._I = self._mean.shape[0]
        if self._cov.shape != (self._I, self._I):
            raise InvalidDataError(
                f"Covariance shape {self._cov.shape} does not match {self._I} expected returns."
            )
        self.long_only = long_only
        self.singular_tol = singular_tol
        self.feasibility_tol = feasibility_tol

    def check_covariance(self) -> None:
        """Raises `SingularCovarianceError` unless the covariance is positive definite."""
        if not is_positive_definite(self._cov, tol=self.singular_tol):
            raise SingularCovarianceError(
                "Covariance matrix is not positive definite; assets may be duplicated "
                "or collinear, or there are fewer periods than assets."
            )

    def return_bounds(self) -> Tuple[float, float]:
        """Range of achievable target returns; unbounded when shorting is allowed."""
        if self.long_only:
            return float(self._mean.min()), float(self._mean.max())
        return -np.inf, np.inf

    def efficient_portfolio(self, return_target: Optional[float] = None) -> np.ndarray:
        """
        Solves for the minimum-variance weights.

        :param return_target: The target expected return for the portfolio.
            If None, the global minimum variance portfolio is returned.
        :return: A 1D array of raw (uncleaned) weights.
        :raises InfeasibleConstraintsError: If the target is not achievable.
        :raises SingularCovarianceError: If the covariance is not positive definite.
        """
        if return_target is not None and self.long_only:
            lo, hi = self.return_bounds()
            tol = self.feasibility_tol
            if return_target > hi + tol or return_target < lo - tol:
                raise InfeasibleConstraintsError(
                    f"Target return {return_target:.6g} lies outside the achievable range "
                    f"[{lo:.6g}, {hi:.6g}] of a long-only, fully invested portfolio.",
                    target_return=return_target,
                )
            if return_target >= hi - tol:
                return self._solve_on_subset(self._mean >= hi - tol)
            if return_target <= lo + tol:
                return self._solve_on_subset(self._mean <= lo + tol)

        problem = build_target_return_qp(self._mean, self._cov, return_target, self.long_only)
        logger.debug(f"Solving QP for target return {return_target}.")
        return solve_qp(problem, singular_tol=self.singular_tol)

    def _solve_on_subset(self, mask: np.ndarray) -> np.ndarray:
        """Minimum-variance portfolio restricted to the assets selected by ``mask``."""
        self.check_covariance()
        idx = np.flatnonzero(mask)
        w = np.zeros(self._I)
        if idx.size == 1:
            w[idx[0]] = 1.0
            return w
        problem = build_target_return_qp(
            self._mean[idx], self._cov[np.ix_(idx, idx)], None, long_only=True
        )
        w[idx] = solve_qp(problem, singular_tol=self.singular_tol)
        return w
