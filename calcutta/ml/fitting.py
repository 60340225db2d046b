"""
Offline fit of the win-probability model.

Fits P(team A wins) = logistic(intercept * sign(d) + coefficient * d) on
historical tournament games, where d = logit(rating_a) - logit(rating_b).
This is the form the engine evaluates: the intercept favours the
higher-rated team, whichever seed it is. The fit is compared with
the theoretical model (intercept 0, coefficient 1) on Brier score, log loss
and accuracy, and its calibration is checked by probability decile.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score, brier_score_loss, log_loss

from ..data.loader import GAMES_COLUMNS, DataRequirementError
from ..engine.win_probability import (
    ModelCoefficients,
    odds_ratio_win_probability,
    to_log_odds,
    win_probability,
)

logger = logging.getLogger(__name__)

MIN_GAMES = 10
PREDICTION_COLUMNS = ["barthag_a", "barthag_b", "winner_is_a", "pred_prob", "theoretical_prob"]


@dataclass
class FitResult:
    """Fitted coefficients with their evaluation."""

    coefficients: ModelCoefficients
    n_games: int
    years: List[int]
    metrics: Dict[str, Dict[str, float]]
    calibration: pd.DataFrame
    predictions: pd.DataFrame
    by_round: Optional[pd.DataFrame] = None
    fitted_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        """Coefficient file contents, as read by load_model_coefficients."""
        return {
            "intercept": self.coefficients.intercept,
            "coefficient": self.coefficients.slope,
            "n_games": self.n_games,
            "years": self.years,
            "metrics": self.metrics,
            "fitted_at": self.fitted_at,
        }


def _prepare(games: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in GAMES_COLUMNS if c not in games.columns]
    if missing:
        raise DataRequirementError(f"Games are missing required columns: {missing}")

    df = games.dropna(subset=list(GAMES_COLUMNS)).copy()
    df["log_odds_diff"] = to_log_odds(df["barthag_a"].to_numpy(dtype=float)) - to_log_odds(
        df["barthag_b"].to_numpy(dtype=float)
    )
    df["winner_is_a"] = (df["winner"] == df["team_a"]).astype(int)
    df["theoretical_prob"] = odds_ratio_win_probability(
        df["barthag_a"].to_numpy(dtype=float), df["barthag_b"].to_numpy(dtype=float)
    )
    return df


def _score(y_true: np.ndarray, y_prob: np.ndarray) -> Dict[str, float]:
    return {
        "brier_score": float(brier_score_loss(y_true, y_prob)),
        "log_loss": float(log_loss(y_true, y_prob, labels=[0, 1])),
        "accuracy": float(accuracy_score(y_true, (y_prob > 0.5).astype(int))),
    }


def calibration_table(df: pd.DataFrame, n_bins: int = 10) -> pd.DataFrame:
    """
    Calibration of fitted and theoretical probabilities by predicted-probability bin.

    Args:
        df: Prepared games with pred_prob, theoretical_prob and winner_is_a
        n_bins: Number of equal-width probability bins

    Returns:
        One row per non-empty bin
    """
    bins = pd.cut(df["pred_prob"], bins=np.linspace(0.0, 1.0, n_bins + 1), include_lowest=True)
    table = (
        df.groupby(bins, observed=True)
        .agg(
            n_games=("winner_is_a", "size"),
            mean_pred_prob=("pred_prob", "mean"),
            actual_win_rate=("winner_is_a", "mean"),
            mean_theoretical=("theoretical_prob", "mean"),
        )
        .reset_index()
        .rename(columns={"pred_prob": "prob_bin"})
    )
    table["prob_bin"] = table["prob_bin"].astype(str)
    table["calibration_error"] = table["actual_win_rate"] - table["mean_pred_prob"]
    table["theoretical_error"] = table["actual_win_rate"] - table["mean_theoretical"]
    return table


def compare_by_round(df: pd.DataFrame) -> Optional[pd.DataFrame]:
    """Brier score of fitted vs theoretical probabilities per tournament round."""
    if "round" not in df.columns or df["round"].isna().all():
        logger.info("No round information available")
        return None

    rows = []
    for round_num, group in df.dropna(subset=["round"]).groupby("round"):
        y = group["winner_is_a"].to_numpy()
        rows.append({
            "round": round_num,
            "n_games": len(group),
            "brier_fitted": float(np.mean((group["pred_prob"] - y) ** 2)),
            "brier_theoretical": float(np.mean((group["theoretical_prob"] - y) ** 2)),
        })
    return pd.DataFrame(rows)


def fit_win_probability_model(games: pd.DataFrame) -> FitResult:
    """
    Fit the logistic win-probability model on historical games.

    Args:
        games: Games with team_a, barthag_a, barthag_b, winner
            (optional year and round columns)

    Returns:
        FitResult with coefficients, metrics and calibration tables
    """
    df = _prepare(games)
    if len(df) < MIN_GAMES:
        raise DataRequirementError(f"Need at least {MIN_GAMES} games to fit, got {len(df)}")
    if df["winner_is_a"].nunique() < 2:
        raise DataRequirementError("Games must include wins for both the better and worse seed")

    diff = df["log_odds_diff"].to_numpy()
    X = np.column_stack([np.sign(diff), diff])
    y = df["winner_is_a"].to_numpy()

    # Unpenalised; the intercept column is sign(diff), not a constant
    model = LogisticRegression(C=np.inf, fit_intercept=False)
    model.fit(X, y)
    coefficients = ModelCoefficients(
        intercept=float(model.coef_[0][0]),
        slope=float(model.coef_[0][1]),
        source="fitted",
    )
    logger.info(
        "Fitted intercept=%.4f coefficient=%.4f on %d games",
        coefficients.intercept, coefficients.slope, len(df),
    )

    df["pred_prob"] = win_probability(
        df["barthag_a"].to_numpy(dtype=float), df["barthag_b"].to_numpy(dtype=float), coefficients
    )
    metrics = {
        "fitted": _score(y, df["pred_prob"].to_numpy()),
        "theoretical": _score(y, df["theoretical_prob"].to_numpy()),
    }
    if metrics["fitted"]["brier_score"] > metrics["theoretical"]["brier_score"]:
        logger.warning("Fitted model has a worse Brier score than the theoretical model")

    years = sorted(int(yr) for yr in df["year"].dropna().unique()) if "year" in df.columns else []
    return FitResult(
        coefficients=coefficients,
        n_games=len(df),
        years=years,
        metrics=metrics,
        calibration=calibration_table(df),
        predictions=df[PREDICTION_COLUMNS].reset_index(drop=True),
        by_round=compare_by_round(df),
    )


def save_coefficients(result: FitResult, file_path: Union[str, Path]) -> None:
    """
    Save fitted coefficients and metrics to JSON.

    Args:
        result: Fit result
        file_path: Output file path
    """
    with open(file_path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    logger.info("Saved coefficients to %s", file_path)
