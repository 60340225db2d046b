"""Model fitting and backtesting."""

from .backtest import BacktestResult, backtest
from .fitting import FitResult, fit_win_probability_model, save_coefficients

__all__ = ["BacktestResult", "FitResult", "backtest", "fit_win_probability_model", "save_coefficients"]
