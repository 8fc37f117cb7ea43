"""
Exception hierarchy for :mod:`pyfrontier`.

Every error raised by the library derives from :class:`FrontierError`. Data
validation errors also derive from :class:`ValueError` and solver failures from
:class:`RuntimeError`, so callers written against the builtin types keep
working.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "FrontierError",
    "InsufficientDataError",
    "InvalidDataError",
    "SolverError",
    "SingularCovarianceError",
    "InfeasibleConstraintsError",
    "AssetFetchError",
]


class FrontierError(Exception):
    """Base class for all errors raised by :mod:`pyfrontier`."""


class InsufficientDataError(FrontierError, ValueError):
    """Fewer than two return periods were supplied."""


class InvalidDataError(FrontierError, ValueError):
    """Inputs are malformed: non-finite values, bad shapes or bad parameters."""


class SolverError(FrontierError, RuntimeError):
    """
    The quadratic program could not be solved.

    :ivar target_return: The target return being solved when the failure
        occurred, or ``None`` when the failure is not tied to a target.
    """

    def __init__(self, message: str, target_return: Optional[float] = None):
        super().__init__(message)
        self.target_return = target_return

    def __str__(self) -> str:
        message = super().__str__()
        if self.target_return is None:
            return message
        return f"{message} (target return {self.target_return:.6g})"


class SingularCovarianceError(SolverError):
    """The covariance matrix is not positive definite."""


class InfeasibleConstraintsError(SolverError):
    """No portfolio satisfies all constraints for the requested target return."""


class AssetFetchError(FrontierError):
    """A market-data provider failed to deliver prices for ``ticker``."""

    def __init__(self, message: str, ticker: Optional[str] = None):
        super().__init__(message)
        self.ticker = ticker
