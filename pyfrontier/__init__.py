__all__ = [
    "estimate_sample_moments",
    "QPProblem",
    "MeanVariance",
    "build_target_return_qp",
    "solve_qp",
    "clean_weights",
    "FrontierConfig",
    "PortfolioPoint",
    "FrontierFailure",
    "Frontier",
    "FrontierBuilder",
    "efficient_frontier",
    "optimize_target_return",
    "Period",
    "ReturnsProvider",
    "PriceFrameProvider",
    "YahooProvider",
    "FrontierError",
    "InsufficientDataError",
    "InvalidDataError",
    "SolverError",
    "SingularCovarianceError",
    "InfeasibleConstraintsError",
    "AssetFetchError",
]

from .exceptions import (
    AssetFetchError,
    FrontierError,
    InfeasibleConstraintsError,
    InsufficientDataError,
    InvalidDataError,
    SingularCovarianceError,
    SolverError,
)
from .moments import estimate_sample_moments
from .optimization import MeanVariance, QPProblem, build_target_return_qp, solve_qp
from .portfolioapi import (
    Frontier,
    FrontierBuilder,
    FrontierConfig,
    FrontierFailure,
    PortfolioPoint,
    efficient_frontier,
    optimize_target_return,
)
from .providers import PriceFrameProvider, ReturnsProvider, YahooProvider
from .utils.data_helpers import Period
from .utils.functions import clean_weights
