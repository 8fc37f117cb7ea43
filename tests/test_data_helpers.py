import types

import numpy as np
import pandas as pd
import pytest

from pyfrontier import providers
from pyfrontier.exceptions import AssetFetchError, InvalidDataError, SolverError
from pyfrontier.portfolioapi import optimize_target_return
from pyfrontier.providers import PriceFrameProvider, ReturnsProvider, YahooProvider
from pyfrontier.utils.data_helpers import Period, lookback_start, prices_to_returns, weights_to_series


def _daily_prices(start="2015-01-01", end="2024-06-30", seed=0, names=("AAA", "BBB", "CCC")):
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(start, end)
    steps = rng.normal(0.0003, 0.01, size=(len(dates), len(names)))
    return pd.DataFrame(100 * np.exp(np.cumsum(steps, axis=0)), index=dates, columns=list(names))


def test_prices_to_returns_monthly_simple_returns():
    idx = pd.to_datetime(["2024-01-31", "2024-02-29", "2024-03-31"])
    prices = pd.Series([100.0, 110.0, 121.0], index=idx)
    returns = prices_to_returns(prices, "months", lookback_years=None)
    np.testing.assert_allclose(returns.to_numpy(), [0.1, 0.1])
    assert returns.index[0] == pd.Timestamp("2024-02-29")


def test_prices_to_returns_takes_last_price_of_each_period():
    idx = pd.to_datetime(["2024-01-02", "2024-01-31", "2024-02-15", "2024-02-28"])
    prices = pd.Series([50.0, 100.0, 300.0, 150.0], index=idx)
    returns = prices_to_returns(prices, Period.MONTHS, lookback_years=None)
    np.testing.assert_allclose(returns.to_numpy(), [0.5])


def test_prices_to_returns_trims_to_lookback_window():
    prices = _daily_prices()["AAA"]
    returns = prices_to_returns(prices, "months", lookback_years=5, as_of=pd.Timestamp("2024-06-30"))
    assert lookback_start(pd.Timestamp("2024-06-30"), 5) == pd.Timestamp("2019-01-01")
    assert returns.index[0] == pd.Timestamp("2019-02-28")
    assert returns.index[-1] == pd.Timestamp("2024-06-30")
    assert returns.notna().all()


@pytest.mark.parametrize("period, expected", [("quarters", 4), ("years", 1)])
def test_prices_to_returns_other_periods(period, expected):
    prices = _daily_prices(start="2022-01-01", end="2023-12-31")["BBB"]
    returns = prices_to_returns(prices, period, lookback_years=None)
    assert len(returns) == 2 * expected - 1


def test_period_coercion():
    assert Period.coerce("Weeks") is Period.WEEKS
    assert Period.QUARTERS.rule == "QE"
    with pytest.raises(InvalidDataError):
        Period.coerce("days")


def test_price_frame_provider_builds_aligned_matrix():
    prices = _daily_prices()
    prices.loc[:"2019-12-31", "CCC"] = np.nan
    provider = PriceFrameProvider(prices)
    matrix = provider.fetch_return_matrix(["CCC", "AAA"], "months", as_of=pd.Timestamp("2024-06-30"))
    assert matrix.columns.tolist() == ["CCC", "AAA"]
    assert matrix.index[0] > pd.Timestamp("2019-12-31")
    assert matrix.notna().all().all()


def test_price_frame_provider_errors():
    provider = PriceFrameProvider(_daily_prices())
    with pytest.raises(AssetFetchError) as excinfo:
        provider.fetch_returns("ZZZ")
    assert excinfo.value.ticker == "ZZZ"
    with pytest.raises(InvalidDataError):
        provider.fetch_return_matrix(["AAA", "AAA"])


def test_provider_failures_are_not_solver_errors():
    class BrokenProvider(ReturnsProvider):
        def fetch_prices(self, ticker):
            raise ConnectionError("network unreachable")

    with pytest.raises(AssetFetchError) as excinfo:
        BrokenProvider().fetch_returns("AAA")
    assert not isinstance(excinfo.value, SolverError)
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_yahoo_provider_uses_adjusted_close(monkeypatch):
    idx = pd.date_range("2024-01-01", periods=3, freq="D", tz="America/New_York")
    history = pd.DataFrame({"Close": [1.0, 2.0, 3.0], "Volume": [10, 10, 10]}, index=idx)
    calls = {}

    class FakeTicker:
        def __init__(self, ticker):
            calls["ticker"] = ticker

        def history(self, period, auto_adjust):
            calls["period"], calls["auto_adjust"] = period, auto_adjust
            return history

    fake_yf = types.SimpleNamespace(Ticker=FakeTicker)
    monkeypatch.setattr(providers, "_require_yfinance", lambda: fake_yf)

    close = YahooProvider().fetch_prices("SPY")
    assert calls == {"ticker": "SPY", "period": "max", "auto_adjust": True}
    assert close.index.tz is None
    np.testing.assert_allclose(close.to_numpy(), [1.0, 2.0, 3.0])


def test_yahoo_provider_empty_download(monkeypatch):
    fake_yf = types.SimpleNamespace(
        Ticker=lambda ticker: types.SimpleNamespace(history=lambda **kwargs: pd.DataFrame())
    )
    monkeypatch.setattr(providers, "_require_yfinance", lambda: fake_yf)
    with pytest.raises(AssetFetchError):
        YahooProvider().fetch_returns("NOPE")


def test_optimize_target_return_end_to_end():
    provider = PriceFrameProvider(_daily_prices())
    frontier = optimize_target_return(
        ["AAA", "BBB", "CCC"],
        increment=5,
        rf=0.001,
        period="months",
        provider=provider,
        as_of=pd.Timestamp("2024-06-30"),
    )
    assert len(frontier) == 5
    assert frontier.asset_names == ("AAA", "BBB", "CCC")
    assert frontier.risk_free_rate == 0.001
    for point in frontier:
        assert np.isclose(point.weights.sum(), 1.0, atol=1e-6)
        assert np.all(point.weights >= 0)


def test_optimize_target_return_single_target_and_validation():
    provider = PriceFrameProvider(_daily_prices())
    returns = provider.fetch_return_matrix(["AAA", "BBB"], "quarters", as_of=pd.Timestamp("2024-06-30"))
    target = float(returns.mean().mean())
    frontier = optimize_target_return(
        ["AAA", "BBB"], tgt_ret=target, period="quarters", provider=provider,
        as_of=pd.Timestamp("2024-06-30"),
    )
    assert len(frontier) == 1
    assert frontier.to_frame().shape == (1, 5)

    with pytest.raises(InvalidDataError):
        optimize_target_return(["AAA"], provider=provider)


def test_weights_to_series_labels_weights():
    series = weights_to_series(np.array([0.25, 0.75]), ("AAA", "BBB"), name="gmv")
    assert list(series.index) == ["AAA", "BBB"]
    assert series.name == "gmv"
    with pytest.raises(InvalidDataError):
        weights_to_series(np.array([1.0]), ("AAA", "BBB"))
    with pytest.raises(InvalidDataError):
        weights_to_series(np.eye(2), ("AAA", "BBB"))
