"""
Win-probability model over Barthag-style ratings.

P(A beats B) is a two-parameter logistic function of the log-odds
difference between the two ratings:

    eta = intercept * sign(diff) + slope * diff,   diff = logit(a) - logit(b)
    P   = 1 / (1 + exp(-eta))

The intercept is applied in the higher-rated team's direction, and the
fitter learns it in this same form. That keeps P(a, b) + P(b, a) == 1 for every
coefficient pair and gives exactly 0.5 for equal ratings. With
intercept=0 and slope=1 the model is the "theoretical" odds-ratio form
implied by the rating definition.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from scipy.special import expit, logit

logger = logging.getLogger(__name__)

RATING_FLOOR = 0.0001
RATING_CEILING = 0.9999


@dataclass(frozen=True)
class ModelCoefficients:
    """Fitted logistic coefficients. ``source`` records where they came from."""

    intercept: float = 0.0
    slope: float = 1.0
    source: str = "fitted"

    @property
    def is_fallback(self) -> bool:
        return self.source == "theoretical"

    def to_dict(self) -> dict:
        return {"intercept": self.intercept, "slope": self.slope, "source": self.source}


THEORETICAL_COEFFICIENTS = ModelCoefficients(intercept=0.0, slope=1.0, source="theoretical")


def to_log_odds(rating):
    """
    Convert a (0, 1) rating to log-odds.

    Ratings are clamped to [0.0001, 0.9999] first so the result is always
    finite. Accepts scalars or numpy arrays.
    """
    clamped = np.clip(rating, RATING_FLOOR, RATING_CEILING)
    result = logit(clamped)
    if np.ndim(result) == 0:
        return float(result)
    return result


def win_probability(
    rating_a,
    rating_b,
    coefficients: ModelCoefficients = THEORETICAL_COEFFICIENTS,
):
    """
    Probability that team A beats team B.

    Args:
        rating_a: Team A's rating (scalar or array)
        rating_b: Team B's rating (scalar or array)
        coefficients: Model coefficients

    Returns:
        Probability in (0, 1), same shape as the inputs
    """
    diff = np.subtract(to_log_odds(rating_a), to_log_odds(rating_b))
    eta = coefficients.intercept * np.sign(diff) + coefficients.slope * diff
    result = expit(eta)
    if np.ndim(result) == 0:
        return float(result)
    return result


def odds_ratio_win_probability(rating_a, rating_b):
    """Closed-form odds-ratio (log5) probability: a(1-b) / (a(1-b) + b(1-a))."""
    a = np.clip(rating_a, RATING_FLOOR, RATING_CEILING)
    b = np.clip(rating_b, RATING_FLOOR, RATING_CEILING)
    num = a * (1 - b)
    result = num / (num + b * (1 - a))
    if np.ndim(result) == 0:
        return float(result)
    return result


def load_model_coefficients(path: Optional[Union[str, Path]]) -> ModelCoefficients:
    """
    Load fitted coefficients from the JSON written by the model fitter.

    Falls back to the theoretical coefficients (intercept=0, slope=1) when
    the file is missing or unusable; the returned ``source`` is then
    ``"theoretical"`` so the fallback shows up in downstream metadata.

    Args:
        path: Path to coefficients JSON (``intercept`` and ``coefficient``
              keys; ``slope`` is accepted as an alias)

    Returns:
        ModelCoefficients
    """
    if path is None:
        logger.warning("No model file given, using theoretical coefficients (intercept=0, slope=1)")
        return THEORETICAL_COEFFICIENTS

    model_path = Path(path)
    if not model_path.exists():
        logger.warning(
            "Model file %s not found, using theoretical coefficients (intercept=0, slope=1)",
            model_path,
        )
        return THEORETICAL_COEFFICIENTS

    try:
        with open(model_path, "r") as f:
            data = json.load(f)
        intercept = float(data["intercept"])
        slope = float(data["coefficient"] if "coefficient" in data else data["slope"])
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.warning("Could not read model file %s (%s), using theoretical coefficients", model_path, exc)
        return THEORETICAL_COEFFICIENTS

    if not (np.isfinite(intercept) and np.isfinite(slope)):
        logger.warning("Model file %s has non-finite coefficients, using theoretical coefficients", model_path)
        return THEORETICAL_COEFFICIENTS

    logger.info("Loaded model coefficients from %s: intercept=%.4f slope=%.4f", model_path, intercept, slope)
    return ModelCoefficients(intercept=intercept, slope=slope, source="fitted")
