"""Minimal example: build a long-only efficient frontier and report key portfolios."""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from pyfrontier import PriceFrameProvider, optimize_target_return


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(name)s - %(levelname)s] %(message)s")

    rng = np.random.default_rng(7)
    dates = pd.bdate_range("2020-01-01", "2024-12-31")
    drifts = {"Equity_US": 0.0005, "Equity_EU": 0.0003, "Credit_US": 0.0002, "Govt_Bonds": 0.0001}
    vols = {"Equity_US": 0.012, "Equity_EU": 0.011, "Credit_US": 0.004, "Govt_Bonds": 0.002}
    prices = pd.DataFrame(
        {
            name: 100 * np.exp(np.cumsum(rng.normal(drifts[name], vols[name], len(dates))))
            for name in drifts
        },
        index=dates,
    )

    frontier = optimize_target_return(
        list(prices.columns),
        increment=10,
        period="months",
        provider=PriceFrameProvider(prices),
        as_of=pd.Timestamp("2024-12-31"),
    )
    print(frontier.to_frame().round(4).to_string())

    min_risk_w, min_risk_return, min_risk_vol = frontier.get_min_risk_portfolio()
    tangency_w, tangency_return, tangency_vol = frontier.get_tangency_portfolio()

    print("\nMinimum-risk portfolio:")
    print(min_risk_w.round(4))
    print(f"Expected return: {min_risk_return:.4%} | Volatility: {min_risk_vol:.4%}\n")

    print("Maximum-Sharpe portfolio:")
    print(tangency_w.round(4))
    print(f"Expected return: {tangency_return:.4%} | Volatility: {tangency_vol:.4%}")


if __name__ == "__main__":
    main()
