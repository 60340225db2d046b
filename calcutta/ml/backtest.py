"""
Backtest of bracket-aware EV against realised tournament payouts.

For every year in a results table the bracket is rebuilt from the listed
ratings, EVs are computed, and each team's realised payout (from its number
of wins) is compared with both the model EV and the naive seed-average EV.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd

from ..data.loader import DataLoader, DataRequirementError
from ..engine.aggregator import compute_bracket_ev
from ..engine.payouts import STANDARD_PAYOUTS, PayoutTable
from ..engine.propagator import PropagationConfig
from ..engine.win_probability import THEORETICAL_COEFFICIENTS, ModelCoefficients

logger = logging.getLogger(__name__)


@dataclass
class BacktestResult:
    """Team-level comparison plus per-year and overall error metrics."""

    teams: pd.DataFrame
    by_year: pd.DataFrame
    overall: Dict[str, Dict[str, Optional[float]]]

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "by_year": self.by_year.to_dict(orient="records"),
        }


def _error_metrics(predicted: np.ndarray, actual: np.ndarray) -> Dict[str, Optional[float]]:
    err = predicted - actual
    mse = float(np.mean(err ** 2))
    correlation = None
    if np.std(predicted) > 0 and np.std(actual) > 0:
        correlation = float(np.corrcoef(predicted, actual)[0, 1])
    return {
        "mse": mse,
        "rmse": float(np.sqrt(mse)),
        "mae": float(np.mean(np.abs(err))),
        "correlation": correlation,
    }


def _compare(df: pd.DataFrame) -> Dict[str, Dict[str, Optional[float]]]:
    actual = df["actual_ev"].to_numpy()
    model = _error_metrics(df["model_ev"].to_numpy(), actual)
    naive = _error_metrics(df["naive_ev"].to_numpy(), actual)
    reduction = None
    if naive["mse"] > 0:
        reduction = (naive["mse"] - model["mse"]) / naive["mse"] * 100
    return {"model": model, "naive": naive, "improvement": {"mse_reduction_pct": reduction}}


def backtest(
    results: pd.DataFrame,
    coefficients: ModelCoefficients = THEORETICAL_COEFFICIENTS,
    config: PropagationConfig = None,
    payouts: PayoutTable = STANDARD_PAYOUTS,
) -> BacktestResult:
    """
    Compare model and naive EV with realised payouts, year by year.

    Args:
        results: Table with year, region, seed, team, rating, wins
        coefficients: Win-probability model coefficients
        config: Propagation configuration
        payouts: Payout table

    Returns:
        BacktestResult
    """
    config = config or PropagationConfig()
    frames = []
    for year in sorted(int(y) for y in results["year"].dropna().unique()):
        year_rows = results[results["year"] == year]
        bracket_ev = compute_bracket_ev(
            DataLoader.build_bracket(year_rows, year=year), coefficients, config, payouts
        )
        predicted = bracket_ev.to_frame()[["year", "region", "seed", "team", "ev", "naive_ev"]]
        predicted = predicted.rename(columns={"ev": "model_ev"})

        outcomes = year_rows.dropna(subset=["wins"])[["region", "seed", "wins"]].copy()
        outcomes["seed"] = outcomes["seed"].astype(int)
        merged = predicted.merge(outcomes, on=["region", "seed"], how="inner")
        merged["actual_ev"] = merged["wins"].astype(int).map(payouts.payout_for_wins)
        frames.append(merged)
        logger.info("Backtested %d: %d teams with results", year, len(merged))

    if not frames:
        raise DataRequirementError("Results table has no years to backtest")
    teams = pd.concat(frames, ignore_index=True)
    if len(teams) < 2:
        raise DataRequirementError("Need at least 2 teams with results to backtest")

    rows = []
    for year, group in teams.groupby("year"):
        metrics = _compare(group)
        rows.append({
            "year": int(year),
            "n_teams": len(group),
            "mse_model": metrics["model"]["mse"],
            "mse_naive": metrics["naive"]["mse"],
            "mse_reduction_pct": metrics["improvement"]["mse_reduction_pct"],
        })

    return BacktestResult(teams=teams, by_year=pd.DataFrame(rows), overall=_compare(teams))
