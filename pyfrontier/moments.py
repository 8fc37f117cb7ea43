"""
Sample moment estimation for periodic asset returns.

The mean vector and covariance matrix estimated here are the only statistical
inputs of the mean-variance problem. pandas inputs keep their asset labels,
numpy inputs return numpy arrays.
"""

from __future__ import annotations

import logging
from typing import Tuple, Union, overload

import numpy as np
import numpy.typing as npt
import pandas as pd

from .exceptions import InsufficientDataError, InvalidDataError

logger = logging.getLogger(__name__)

ReturnMatrix = Union[npt.NDArray[np.floating], pd.DataFrame]


@overload
def estimate_sample_moments(R: pd.DataFrame) -> Tuple[pd.Series, pd.DataFrame]: ...


@overload
def estimate_sample_moments(
    R: npt.NDArray[np.floating],
) -> Tuple[npt.NDArray[np.floating], npt.NDArray[np.floating]]: ...


def estimate_sample_moments(R):
    """
    Estimates the arithmetic mean and the sample covariance of a return matrix.

    :param R: Returns with one row per period and one column per asset
        (:math:`T \\times N`).
    :type R: np.ndarray or pd.DataFrame
    :return: ``(mu, cov)`` where ``cov`` uses the unbiased divisor :math:`T - 1`.
        A DataFrame input yields a ``pd.Series`` and a ``pd.DataFrame`` labelled
        by its columns.
    :raises InvalidDataError: If ``R`` is not two-dimensional or contains
        NaN or infinite entries.
    :raises InsufficientDataError: If fewer than two periods are supplied.
    """
    asset_names = None
    if isinstance(R, pd.DataFrame):
        asset_names = R.columns.tolist()
        values = R.to_numpy(dtype=float)
    else:
        values = np.asarray(R, dtype=float)

    if values.ndim != 2:
        raise InvalidDataError("`R` must be a 2D array (T, N).")
    T, N = values.shape
    if T < 2:
        raise InsufficientDataError(
            f"At least 2 return periods are required to estimate a covariance, got {T}."
        )
    if N == 0:
        raise InvalidDataError("`R` must contain at least one asset column.")
    if not np.all(np.isfinite(values)):
        bad = np.argwhere(~np.isfinite(values))[0]
        raise InvalidDataError(
            f"`R` contains non-finite values (first at period {bad[0]}, asset {bad[1]})."
        )

    mu = values.mean(axis=0)
    cov = np.atleast_2d(np.cov(values, rowvar=False, ddof=1))
    logger.debug(f"Estimated moments from {T} periods for {N} assets.")

    if asset_names is not None:
        return (
            pd.Series(mu, index=asset_names),
            pd.DataFrame(cov, index=asset_names, columns=asset_names),
        )
    return mu, cov
