from __future__ import annotations

import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt
import pandas as pd

from .exceptions import FrontierError, InvalidDataError, SolverError
from .moments import ReturnMatrix, estimate_sample_moments
from .optimization import MeanVariance
from .providers import ReturnsProvider, YahooProvider
from .utils.data_helpers import Period, weights_to_series
from .utils.functions import (
    WEIGHT_TOLERANCE,
    clean_weights,
    portfolio_return,
    portfolio_volatility,
    sharpe_ratio,
)
from .utils.validation import ensure_finite, is_symmetric

logger = logging.getLogger(__name__)

FAIL_FAST = "fail_fast"
SKIP = "skip"
FAILURE_POLICIES = (FAIL_FAST, SKIP)


@dataclass(slots=True, frozen=True)
class FrontierConfig:
    """
    Settings for a frontier computation.

    Attributes:
        increment (int): Number of grid points when no explicit targets are given.
        risk_free_rate (float): Rate subtracted from the target return in the Sharpe ratio.
        long_only (bool): Forbid short positions.
        failure_policy (str): ``"fail_fast"`` raises on the first failed target,
            ``"skip"`` records it and continues.
        weight_tol (float): Weights with smaller magnitude are set to zero.
        renormalize (bool): Rescale cleaned weights to sum to exactly one.
        singular_tol (float): Eigenvalue ratio below which the covariance is singular.
        feasibility_tol (float): Absolute slack on the achievable return range.
        min_return (Optional[float]): Lower end of the grid; defaults to the
            return of the global minimum variance portfolio.
        max_return (Optional[float]): Upper end of the grid; defaults to the
            largest expected return.
        max_workers (Optional[int]): Solve targets on a thread pool of this size.
        period (Period): Resampling period used when fetching returns.
        lookback_years (Optional[int]): History kept when fetching returns.
    """
    increment: int = 100
    risk_free_rate: float = 0.0
    long_only: bool = True
    failure_policy: str = FAIL_FAST
    weight_tol: float = WEIGHT_TOLERANCE
    renormalize: bool = True
    singular_tol: float = 1e-10
    feasibility_tol: float = 1e-10
    min_return: Optional[float] = None
    max_return: Optional[float] = None
    max_workers: Optional[int] = None
    period: Period = Period.MONTHS
    lookback_years: Optional[int] = 5

    def __post_init__(self):
        if isinstance(self.increment, bool) or not isinstance(self.increment, (int, np.integer)):
            raise InvalidDataError("`increment` must be a positive integer.")
        if self.increment < 1:
            raise InvalidDataError("`increment` must be a positive integer.")
        if not np.isfinite(self.risk_free_rate):
            raise InvalidDataError("`risk_free_rate` must be finite.")
        if self.failure_policy not in FAILURE_POLICIES:
            raise InvalidDataError(
                f"`failure_policy` must be one of {FAILURE_POLICIES}, got '{self.failure_policy}'."
            )
        if self.weight_tol < 0 or self.singular_tol < 0 or self.feasibility_tol < 0:
            raise InvalidDataError("Tolerances must be non-negative.")
        if (
            self.min_return is not None
            and self.max_return is not None
            and self.min_return > self.max_return
        ):
            raise InvalidDataError("`min_return` must not exceed `max_return`.")
        if self.max_workers is not None and self.max_workers < 1:
            raise InvalidDataError("`max_workers` must be at least 1.")
        if self.lookback_years is not None and self.lookback_years < 1:
            raise InvalidDataError("`lookback_years` must be at least 1.")
        object.__setattr__(self, "period", Period.coerce(self.period))

    @classmethod
    def from_dict(cls, params: Mapping[str, Any]) -> "FrontierConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise InvalidDataError(f"Unknown configuration keys: {sorted(unknown)}.")
        return cls(**params)


@dataclass(frozen=True, eq=False)
class PortfolioPoint:
    """
    One efficient portfolio on the frontier.

    ``sharpe_ratio`` is measured against the target return and is NaN when the
    portfolio has zero volatility.
    """
    weights: npt.NDArray[np.floating]
    target_return: float
    achieved_return: float
    std: float
    sharpe_ratio: float
    asset_names: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        w = np.array(self.weights, dtype=float)
        w.setflags(write=False)
        object.__setattr__(self, "weights", w)

    @property
    def variance(self) -> float:
        return self.std ** 2

    def weights_series(self) -> pd.Series:
        names = self.asset_names
        if names is None:
            names = [f"Asset_{i + 1}" for i in range(self.weights.shape[0])]
        return weights_to_series(self.weights, names, name=self.target_return)


@dataclass(frozen=True)
class FrontierFailure:
    """Marker for a target return that could not be solved."""
    target_return: float
    error_type: str
    message: str


@dataclass(frozen=True, eq=False)
class Frontier:
    """
    An ordered, immutable sequence of efficient portfolios.

    Points appear in the order of the requested target returns. Under the
    ``"skip"`` failure policy, targets that could not be solved are listed in
    ``failures`` instead.
    """
    points: Tuple[PortfolioPoint, ...]
    asset_names: Tuple[str, ...]
    risk_free_rate: float = 0.0
    failures: Tuple[FrontierFailure, ...] = ()

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PortfolioPoint]:
        return iter(self.points)

    def __getitem__(self, idx: int) -> PortfolioPoint:
        return self.points[idx]

    @property
    def is_complete(self) -> bool:
        return not self.failures

    @property
    def weights(self) -> npt.NDArray[np.floating]:
        """Weights as an (N, K) array, one column per portfolio."""
        if not self.points:
            return np.empty((len(self.asset_names), 0))
        return np.column_stack([p.weights for p in self.points])

    @property
    def returns(self) -> npt.NDArray[np.floating]:
        return np.array([p.target_return for p in self.points])

    @property
    def achieved_returns(self) -> npt.NDArray[np.floating]:
        return np.array([p.achieved_return for p in self.points])

    @property
    def risks(self) -> npt.NDArray[np.floating]:
        return np.array([p.std for p in self.points])

    @property
    def sharpe_ratios(self) -> npt.NDArray[np.floating]:
        return np.array([p.sharpe_ratio for p in self.points])

    def to_frame(self) -> pd.DataFrame:
        """
        Tabulates the frontier with one row per portfolio.

        Columns are ``target_return``, ``target_std``, one weight column per
        asset and ``sharpe_ratio``.
        """
        columns = ["target_return", "target_std", *self.asset_names, "sharpe_ratio"]
        if not self.points:
            return pd.DataFrame(columns=columns, dtype=float)
        data = np.column_stack([self.returns, self.risks, self.weights.T, self.sharpe_ratios])
        return pd.DataFrame(data, columns=columns)

    def _require_points(self) -> None:
        if not self.points:
            raise InvalidDataError("Frontier contains no portfolios.")

    def _to_pandas(self, w: np.ndarray, name: str) -> pd.Series:
        return weights_to_series(w, self.asset_names, name=name)

    def get_min_risk_portfolio(self) -> Tuple[pd.Series, float, float]:
        """Finds the portfolio with the minimum risk on this frontier."""
        self._require_points()
        idx = int(np.argmin(self.risks))
        p = self.points[idx]
        return self._to_pandas(p.weights, "Min Risk Portfolio"), p.target_return, p.std

    def get_max_return_portfolio(self) -> Tuple[pd.Series, float, float]:
        """Finds the portfolio with the maximum return on this frontier."""
        self._require_points()
        idx = int(np.argmax(self.returns))
        p = self.points[idx]
        return self._to_pandas(p.weights, "Max Return Portfolio"), p.target_return, p.std

    def get_tangency_portfolio(
        self, risk_free_rate: Optional[float] = None
    ) -> Tuple[pd.Series, float, float]:
        """Portfolio with the highest Sharpe ratio; uses the frontier's rate by default."""
        self._require_points()
        rf = self.risk_free_rate if risk_free_rate is None else risk_free_rate
        risks = self.risks
        if np.all(np.isclose(risks, 0)):
            logger.warning("All portfolios on the frontier have zero risk. Sharpe ratio is undefined.")
            nan_weights = np.full(len(self.asset_names), np.nan)
            return self._to_pandas(nan_weights, "Undefined"), np.nan, np.nan

        with np.errstate(divide="ignore", invalid="ignore"):
            ratios = (self.returns - rf) / risks
        ratios[~np.isfinite(ratios)] = -np.inf
        idx = int(np.argmax(ratios))
        p = self.points[idx]
        return self._to_pandas(p.weights, f"Tangency Portfolio (rf={rf:.2%})"), p.target_return, p.std

    def portfolio_at_risk_target(self, max_risk: float) -> Tuple[pd.Series, float, float]:
        """Finds the portfolio that maximizes return for a risk level at or below `max_risk`."""
        feasible = np.where(self.risks <= max_risk)[0]
        if feasible.size == 0:
            nan_weights = np.full(len(self.asset_names), np.nan)
            return self._to_pandas(nan_weights, "Infeasible"), np.nan, np.nan
        p = self.points[int(feasible[np.argmax(self.returns[feasible])])]
        return self._to_pandas(p.weights, f"Portfolio (Risk <= {max_risk:.4f})"), p.target_return, p.std

    def portfolio_at_return_target(self, min_return: float) -> Tuple[pd.Series, float, float]:
        """Finds the portfolio that minimizes risk for a return level at or above `min_return`."""
        feasible = np.where(self.returns >= min_return)[0]
        if feasible.size == 0:
            nan_weights = np.full(len(self.asset_names), np.nan)
            return self._to_pandas(nan_weights, "Infeasible"), np.nan, np.nan
        p = self.points[int(feasible[np.argmin(self.risks[feasible])])]
        return self._to_pandas(p.weights, f"Portfolio (Return >= {min_return:.4f})"), p.target_return, p.std

    def efficient_points(self) -> Tuple[PortfolioPoint, ...]:
        """Points on the upper branch, at or above the minimum-risk return, by return."""
        if not self.points:
            return ()
        floor = self.points[int(np.argmin(self.risks))].target_return
        upper = [p for p in self.points if p.target_return >= floor]
        return tuple(sorted(upper, key=lambda p: p.target_return))


class FrontierBuilder:
    """
    Traces the efficient frontier one target return at a time.

    Workflow:
    1.  **Configure**: `FrontierBuilder(FrontierConfig(...))`
    2.  **Build**: `builder.build(mu, cov)` or `builder.build(mu, cov, target_returns=[...])`
    3.  **Analyze**: Use the returned `Frontier`.
    """
    def __init__(self, config: Optional[FrontierConfig] = None):
        self.config = config if config is not None else FrontierConfig()

    def _prepare_moments(
        self,
        mean: Union[npt.ArrayLike, pd.Series],
        covariance_matrix: Union[npt.ArrayLike, pd.DataFrame],
        asset_names: Optional[Sequence[str]],
    ) -> Tuple[np.ndarray, np.ndarray, Tuple[str, ...]]:
        labels = None
        if isinstance(mean, pd.Series):
            labels = [str(n) for n in mean.index]
            mean = mean.to_numpy(dtype=float)
        if isinstance(covariance_matrix, pd.DataFrame):
            cov_labels = [str(n) for n in covariance_matrix.index]
            if labels is not None and cov_labels != labels:
                raise InvalidDataError("Inconsistent asset names between mean and covariance.")
            if cov_labels != [str(n) for n in covariance_matrix.columns]:
                raise InvalidDataError("Covariance index and columns must list the same assets.")
            labels = cov_labels
            covariance_matrix = covariance_matrix.to_numpy(dtype=float)
        # explicit names relabel pandas input
        names = list(asset_names) if asset_names is not None else labels

        mu = ensure_finite(mean, "mean")
        cov = ensure_finite(covariance_matrix, "covariance_matrix")
        if mu.ndim != 1:
            raise InvalidDataError("`mean` must be a 1D array.")
        if cov.shape != (mu.shape[0], mu.shape[0]):
            raise InvalidDataError("Inconsistent shapes for mean and covariance.")
        if mu.shape[0] < 2:
            raise InvalidDataError("At least two assets are required.")
        if not is_symmetric(cov, atol=1e-10 * max(1.0, float(np.max(np.abs(cov))))):
            raise InvalidDataError("Covariance matrix must be symmetric.")

        if names is None:
            names = [f"Asset_{i + 1}" for i in range(mu.shape[0])]
        if len(names) != mu.shape[0]:
            raise InvalidDataError("`asset_names` must have the same length as the number of assets (N).")
        if len(set(names)) != len(names):
            raise InvalidDataError("Asset names must be distinct.")
        return mu, cov, tuple(names)

    def target_grid(self, optimizer: MeanVariance, mu: np.ndarray) -> np.ndarray:
        """
        Linearly spaced target returns between the configured bounds.

        The lower bound defaults to the return of the global minimum variance
        portfolio and the upper bound to the largest expected return.
        """
        cfg = self.config
        if cfg.min_return is not None:
            lo = float(cfg.min_return)
        else:
            gmv = clean_weights(
                optimizer.efficient_portfolio(), cfg.weight_tol, cfg.renormalize, cfg.long_only
            )
            lo = portfolio_return(gmv, mu)
        hi = float(mu.max()) if cfg.max_return is None else float(cfg.max_return)
        if hi < lo:
            raise InvalidDataError(
                f"Upper return bound {hi:.6g} lies below lower bound {lo:.6g}."
            )
        if cfg.increment > 1 and np.isclose(lo, hi):
            logger.warning("Min and max returns are too close; frontier is a single point.")
            return np.array([lo])
        return np.linspace(lo, hi, cfg.increment)

    def _solve_point(
        self,
        optimizer: MeanVariance,
        mu: np.ndarray,
        cov: np.ndarray,
        names: Tuple[str, ...],
        target: float,
    ) -> PortfolioPoint:
        cfg = self.config
        raw = optimizer.efficient_portfolio(return_target=target)
        w = clean_weights(raw, cfg.weight_tol, cfg.renormalize, non_negative=cfg.long_only)
        std = portfolio_volatility(w, cov)
        return PortfolioPoint(
            weights=w,
            target_return=target,
            achieved_return=portfolio_return(w, mu),
            std=std,
            sharpe_ratio=sharpe_ratio(target, cfg.risk_free_rate, std),
            asset_names=names,
        )

    def _collect(
        self, solve: Callable[[float], PortfolioPoint], targets: Sequence[float]
    ) -> Tuple[List[PortfolioPoint], List[FrontierFailure]]:
        points: List[PortfolioPoint] = []
        failures: List[FrontierFailure] = []
        fail_fast = self.config.failure_policy == FAIL_FAST

        def handle(target: float, get: Callable[[], PortfolioPoint]) -> None:
            try:
                points.append(get())
            except FrontierError as e:
                if isinstance(e, SolverError) and e.target_return is None:
                    e.target_return = target
                if fail_fast:
                    logger.error(f"Frontier aborted: {e}")
                    raise
                logger.warning(f"Skipping target return {target:.6g}: {e}")
                failures.append(FrontierFailure(target, type(e).__name__, str(e)))

        workers = self.config.max_workers
        if workers is not None and workers > 1 and len(targets) > 1:
            executor = ThreadPoolExecutor(max_workers=workers)
            try:
                futures = [executor.submit(solve, t) for t in targets]
                for target, future in zip(targets, futures):
                    handle(target, future.result)
            finally:
                executor.shutdown(wait=True, cancel_futures=True)
        else:
            for target in targets:
                handle(target, functools.partial(solve, target))
        return points, failures

    def build(
        self,
        mean: Union[npt.ArrayLike, pd.Series],
        covariance_matrix: Union[npt.ArrayLike, pd.DataFrame],
        asset_names: Optional[Sequence[str]] = None,
        target_returns: Optional[Union[float, Sequence[float]]] = None,
    ) -> Frontier:
        """
        Computes one minimum-variance portfolio per target return.

        :param mean: Expected returns (:math:`N`); a Series supplies asset names.
        :param covariance_matrix: Covariance matrix (:math:`N \\times N`).
        :param asset_names: Optional names. They take precedence over pandas labels;
            default ``Asset_1 ... Asset_N``.
        :param target_returns: Explicit target returns. If None, ``config.increment``
            targets are spaced linearly between the configured bounds.
        :return: The `Frontier`, ordered like the targets.
        :raises InvalidDataError: On malformed inputs.
        :raises SingularCovarianceError: If the covariance is not positive definite.
        :raises InfeasibleConstraintsError: Under ``fail_fast``, for the first
            target that cannot be met.
        """
        cfg = self.config
        mu, cov, names = self._prepare_moments(mean, covariance_matrix, asset_names)
        optimizer = MeanVariance(
            mu, cov,
            long_only=cfg.long_only,
            singular_tol=cfg.singular_tol,
            feasibility_tol=cfg.feasibility_tol,
        )
        optimizer.check_covariance()

        if target_returns is None:
            targets = self.target_grid(optimizer, mu)
        else:
            targets = ensure_finite(np.atleast_1d(target_returns), "target_returns").ravel()
            if targets.size == 0:
                raise InvalidDataError("`target_returns` must not be empty.")

        solve = functools.partial(self._solve_point, optimizer, mu, cov, names)
        points, failures = self._collect(solve, [float(t) for t in targets])

        logger.info(
            f"Successfully computed Mean-Variance frontier with {len(points)} portfolios"
            + (f" ({len(failures)} targets skipped)." if failures else ".")
        )
        return Frontier(
            points=tuple(points),
            asset_names=names,
            risk_free_rate=cfg.risk_free_rate,
            failures=tuple(failures),
        )


def efficient_frontier(
    returns: ReturnMatrix,
    config: Optional[FrontierConfig] = None,
    asset_names: Optional[Sequence[str]] = None,
    target_returns: Optional[Union[float, Sequence[float]]] = None,
) -> Frontier:
    """
    Estimates sample moments from ``returns`` and builds the frontier.

    ``asset_names`` relabels the assets; otherwise DataFrame columns are used.
    """
    mu, cov = estimate_sample_moments(returns)
    return FrontierBuilder(config).build(mu, cov, asset_names=asset_names, target_returns=target_returns)


def optimize_target_return(
    asset_names: Sequence[str],
    increment: int = 100,
    rf: float = 0.0,
    tgt_ret: Optional[Union[float, Sequence[float]]] = None,
    period: Union[Period, str] = Period.MONTHS,
    provider: Optional[ReturnsProvider] = None,
    as_of: Optional[pd.Timestamp] = None,
    **config_overrides: Any,
) -> Frontier:
    """
    Fetches prices, builds periodic returns and computes the efficient frontier.

    :param asset_names: Tickers of the securities, at least two and distinct.
    :param increment: Number of portfolios when ``tgt_ret`` is None. Defaults to 100.
    :param rf: Risk-free rate of return per period. Defaults to 0.
    :param tgt_ret: Target return(s). A scalar yields a single portfolio.
    :param period: ``"months"``, ``"weeks"``, ``"quarters"`` or ``"years"``.
    :param provider: Source of prices. Defaults to `YahooProvider`.
    :param as_of: End of the look-back window. Defaults to today.
    :param config_overrides: Further `FrontierConfig` fields.
    :return: The `Frontier`.
    :raises AssetFetchError: If prices cannot be fetched for a ticker.
    """
    tickers = list(asset_names)
    if len(tickers) < 2:
        raise InvalidDataError("At least two tickers are required.")
    params: Dict[str, Any] = {"increment": increment, "risk_free_rate": rf, "period": period}
    params.update(config_overrides)
    config = FrontierConfig.from_dict(params)

    provider = provider if provider is not None else YahooProvider()
    returns = provider.fetch_return_matrix(tickers, config.period, config.lookback_years, as_of)
    return efficient_frontier(returns, config=config, target_returns=tgt_ret)
