"""
Market-data providers that feed return matrices into the frontier core.

A provider only needs to deliver a date-indexed price series per ticker; the
base class handles resampling, look-back trimming and alignment. Network access
is confined to `YahooProvider`, so the optimization core stays testable with
in-memory prices.
"""

from __future__ import annotations

import abc
import logging
from typing import Optional, Sequence, Union

import pandas as pd

from .exceptions import AssetFetchError, InvalidDataError
from .utils.data_helpers import Period, align_returns, prices_to_returns

logger = logging.getLogger(__name__)

__all__ = ["ReturnsProvider", "PriceFrameProvider", "YahooProvider"]


class ReturnsProvider(abc.ABC):
    """Base class for sources of historical prices."""

    @abc.abstractmethod
    def fetch_prices(self, ticker: str) -> pd.Series:
        """Return a date-indexed series of (adjusted) prices for ``ticker``."""

    def fetch_returns(
        self,
        ticker: str,
        period: Union[Period, str] = Period.MONTHS,
        lookback_years: Optional[int] = 5,
        as_of: Optional[pd.Timestamp] = None,
    ) -> pd.Series:
        """Periodic simple returns of ``ticker``; one column of the return matrix."""
        try:
            prices = self.fetch_prices(ticker)
        except AssetFetchError:
            raise
        except Exception as e:
            logger.error(f"Failed to fetch prices for {ticker}: {e}", exc_info=True)
            raise AssetFetchError(f"Price fetch failed for '{ticker}': {e}", ticker=ticker) from e

        if prices is None or len(prices) == 0:
            raise AssetFetchError(f"No prices available for '{ticker}'.", ticker=ticker)
        returns = prices_to_returns(prices, period, lookback_years, as_of)
        return returns.rename(ticker)

    def fetch_return_matrix(
        self,
        tickers: Sequence[str],
        period: Union[Period, str] = Period.MONTHS,
        lookback_years: Optional[int] = 5,
        as_of: Optional[pd.Timestamp] = None,
    ) -> pd.DataFrame:
        """Time-aligned return matrix with one column per ticker, in ticker order."""
        tickers = list(tickers)
        if len(set(tickers)) != len(tickers):
            raise InvalidDataError("Tickers must be distinct.")
        columns = {t: self.fetch_returns(t, period, lookback_years, as_of) for t in tickers}
        matrix = align_returns(columns)
        logger.info(
            f"Built return matrix with {matrix.shape[0]} {Period.coerce(period).value} "
            f"for {len(tickers)} assets."
        )
        return matrix[tickers]


class PriceFrameProvider(ReturnsProvider):
    """Serves prices from a DataFrame with one column per ticker."""

    def __init__(self, prices: pd.DataFrame):
        if not isinstance(prices, pd.DataFrame):
            raise InvalidDataError("`prices` must be a pandas DataFrame.")
        self.prices = prices

    def fetch_prices(self, ticker: str) -> pd.Series:
        if ticker not in self.prices.columns:
            raise AssetFetchError(f"Ticker '{ticker}' not found in price frame.", ticker=ticker)
        return self.prices[ticker].dropna()


def _require_yfinance():
    try:
        import yfinance as yf
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ImportError(
            "`YahooProvider` requires `yfinance`. Install it via `pip install pyfrontier[yahoo]`."
        ) from exc
    return yf


class YahooProvider(ReturnsProvider):
    """Downloads adjusted close prices from Yahoo Finance with `yfinance`."""

    def __init__(self, history: str = "max"):
        self.history = history

    def fetch_prices(self, ticker: str) -> pd.Series:
        yf = _require_yfinance()
        data = yf.Ticker(ticker).history(period=self.history, auto_adjust=True)
        if data is None or data.empty or "Close" not in data.columns:
            raise AssetFetchError(f"Yahoo Finance returned no prices for '{ticker}'.", ticker=ticker)
        close = data["Close"].dropna()
        if close.index.tz is not None:
            close = close.tz_localize(None)
        return close
