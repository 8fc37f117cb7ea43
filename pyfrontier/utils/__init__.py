from .data_helpers import Period, prices_to_returns, align_returns, weights_to_series
from .functions import clean_weights, portfolio_return, portfolio_volatility, sharpe_ratio
from .validation import ensure_finite, is_positive_definite, check_weights_sum_to_one, check_non_negativity
