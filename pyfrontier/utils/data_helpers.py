from __future__ import annotations

import enum
import logging
from typing import Hashable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..exceptions import InvalidDataError

logger = logging.getLogger(__name__)


class Period(str, enum.Enum):
    """Resampling period for price series."""
    MONTHS = "months"
    WEEKS = "weeks"
    QUARTERS = "quarters"
    YEARS = "years"

    @property
    def rule(self) -> str:
        return _RESAMPLE_RULES[self]

    @classmethod
    def coerce(cls, value: Union["Period", str]) -> "Period":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            allowed = ", ".join(p.value for p in cls)
            raise InvalidDataError(f"Unknown period '{value}'. Expected one of: {allowed}.") from exc


_RESAMPLE_RULES = {
    Period.MONTHS: "ME",
    Period.WEEKS: "W",
    Period.QUARTERS: "QE",
    Period.YEARS: "YE",
}


def lookback_start(as_of: pd.Timestamp, lookback_years: int) -> pd.Timestamp:
    """First day of the calendar year ``lookback_years`` before ``as_of``."""
    return pd.Timestamp(year=as_of.year - lookback_years, month=1, day=1)


def prices_to_returns(
    prices: Union[pd.Series, pd.DataFrame],
    period: Union[Period, str] = Period.MONTHS,
    lookback_years: Optional[int] = 5,
    as_of: Optional[pd.Timestamp] = None,
) -> Union[pd.Series, pd.DataFrame]:
    """
    Convert a date-indexed price series into simple periodic returns.

    Prices are resampled to the last observation of each period and trimmed to
    start on January 1st of the year ``lookback_years`` before ``as_of``
    (today by default). The first period has no predecessor and is dropped.
    ``lookback_years=None`` keeps the full history.
    """
    if not isinstance(prices, (pd.Series, pd.DataFrame)):
        raise InvalidDataError("`prices` must be a pandas Series or DataFrame.")
    if not isinstance(prices.index, pd.DatetimeIndex):
        try:
            prices = prices.copy()
            prices.index = pd.to_datetime(prices.index)
        except (TypeError, ValueError) as exc:
            raise InvalidDataError(f"Failed to interpret price index as dates: {exc}") from exc
    if prices.index.tz is not None:
        prices = prices.tz_localize(None)

    period = Period.coerce(period)
    resampled = prices.sort_index().resample(period.rule).last()

    if lookback_years is not None:
        as_of = pd.Timestamp.today().normalize() if as_of is None else pd.Timestamp(as_of)
        resampled = resampled.loc[lookback_start(as_of, lookback_years):as_of]

    returns = resampled.pct_change(fill_method=None).iloc[1:]
    return returns.replace([np.inf, -np.inf], np.nan)


def align_returns(columns: dict) -> pd.DataFrame:
    """
    Merge per-asset return series into a time-aligned return matrix.

    Only periods where every asset has a return are kept.
    """
    frame = pd.concat(columns, axis=1, join="inner")
    aligned = frame.dropna()
    dropped = len(frame) - len(aligned)
    if dropped:
        logger.warning(f"Dropped {dropped} periods with missing returns while aligning assets.")
    return aligned


def weights_to_series(
    weights: np.ndarray, asset_names: Sequence[str], name: Optional[Hashable] = None
) -> pd.Series:
    """Label a weight vector with its asset names; one entry per asset."""
    w = np.asarray(weights, dtype=float)
    if w.ndim != 1 or w.shape[0] != len(asset_names):
        raise InvalidDataError(
            f"Expected {len(asset_names)} weights as a 1D array, got shape {w.shape}."
        )
    return pd.Series(w, index=list(asset_names), name=name)
