# functions.py
"""Portfolio metric helpers and cleanup of solver weights."""

from __future__ import annotations

import numpy as np

from ..exceptions import InvalidDataError

WEIGHT_TOLERANCE = 1e-5


def clean_weights(
    weights: np.ndarray,
    tol: float = WEIGHT_TOLERANCE,
    renormalize: bool = True,
    non_negative: bool = False,
) -> np.ndarray:
    """
    Zero-clamp solver noise and optionally rescale the weights to sum to one.

    Interior-point solvers return values such as ``-3e-9`` or ``7e-7`` for
    assets that should be excluded. Every entry with ``|w_i| < tol`` is set to
    zero. With ``renormalize`` the clamped mass is redistributed
    proportionally over the remaining entries by dividing by the new sum.

    :param weights: Raw weight vector returned by the solver.
    :param tol: Clamping threshold. Defaults to ``1e-5``.
    :param renormalize: Rescale so the weights sum to exactly one.
    :param non_negative: Also set every remaining negative entry to zero, for
        long-only portfolios where any negative weight is solver noise.
    :return: A new cleaned weight vector; the input is not modified.
    :raises InvalidDataError: If ``tol`` is negative or, when renormalizing,
        the clamped weights do not have a positive sum.
    """
    if tol < 0:
        raise InvalidDataError("`tol` must be non-negative.")
    w = np.array(weights, dtype=float).ravel()
    w[np.abs(w) < tol] = 0.0
    if non_negative:
        w[w < 0.0] = 0.0
    if not renormalize:
        return w
    total = w.sum()
    if not np.isfinite(total) or total <= 0.0:
        raise InvalidDataError(
            f"Cannot renormalize weights with non-positive sum {total:.3g} after cleanup."
        )
    return w / total


def portfolio_return(weights: np.ndarray, mu: np.ndarray) -> float:
    return float(np.dot(weights, mu))


def portfolio_volatility(weights: np.ndarray, cov: np.ndarray) -> float:
    """Standard deviation ``sqrt(w' cov w)``, clipped at zero against rounding."""
    variance = float(weights @ cov @ weights)
    return float(np.sqrt(max(variance, 0.0)))


def sharpe_ratio(expected_return: float, risk_free_rate: float, volatility: float) -> float:
    """``(expected_return - risk_free_rate) / volatility``, or NaN for a riskless portfolio."""
    if volatility == 0.0:
        return float("nan")
    return (expected_return - risk_free_rate) / volatility
