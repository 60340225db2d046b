"""Bracket-aware expected-value engine exports."""

from .aggregator import (
    BracketEV,
    EVValidation,
    RegionEV,
    TeamEV,
    calibrate_decay_base,
    compute_bracket_ev,
    compute_region_ev,
    matchup_bucket_evs,
    normalize_evs,
)
from .payouts import STANDARD_PAYOUTS, PayoutTable, compute_ev, naive_seed_ev
from .propagator import PropagationConfig, RoundProbabilities, compute_round_probabilities
from .topology import (
    DEFAULT_RATINGS_BY_SEED,
    STANDARD_TOPOLOGY,
    BracketTopology,
    TopologyError,
    first_round_opponent,
    fourth_round_opponents,
    second_round_opponents,
    third_round_opponents,
)
from .win_probability import (
    THEORETICAL_COEFFICIENTS,
    ModelCoefficients,
    load_model_coefficients,
    to_log_odds,
    win_probability,
)

__all__ = [
    "BracketEV",
    "BracketTopology",
    "DEFAULT_RATINGS_BY_SEED",
    "EVValidation",
    "ModelCoefficients",
    "PayoutTable",
    "PropagationConfig",
    "RegionEV",
    "RoundProbabilities",
    "STANDARD_PAYOUTS",
    "STANDARD_TOPOLOGY",
    "THEORETICAL_COEFFICIENTS",
    "TeamEV",
    "TopologyError",
    "calibrate_decay_base",
    "compute_bracket_ev",
    "compute_ev",
    "compute_region_ev",
    "compute_round_probabilities",
    "first_round_opponent",
    "fourth_round_opponents",
    "load_model_coefficients",
    "matchup_bucket_evs",
    "naive_seed_ev",
    "normalize_evs",
    "second_round_opponents",
    "third_round_opponents",
    "to_log_odds",
    "win_probability",
]
