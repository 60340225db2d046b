"""
Bracket-aware round-reach propagation for a single team.

For a team in a 16-team region, computes the probability of winning each
of the six tournament rounds by combining its head-to-head win probability
against every possible opponent with the probability that opponent is the
one it actually meets:

- R64: fixed opponent.
- R32: the winner of the adjacent first-round game (exactly one of the pair
  advances, so P(y advances) = 1 - P(x advances)).
- S16: the four seeds of the adjacent quarter, each weighted by its own
  exact R32 probability, normalised to sum to 1.
- E8:  the eight seeds of the other half, weighted by a seed-decay
  heuristic ``decay_base ** (seed - 1)``. Exact enumeration is not attempted;
  the decay base is a tunable approximation.
- F4 / CHAMP: one representative elite opponent rating for both games.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

import numpy as np

from .topology import ROUND_NAMES, SEEDS, STANDARD_TOPOLOGY, BracketTopology
from .win_probability import THEORETICAL_COEFFICIENTS, ModelCoefficients, win_probability

logger = logging.getLogger(__name__)


@dataclass
class PropagationConfig:
    """Configuration for EV propagation and aggregation."""

    # Seed-decay weight base for regional-final opponents. Bases around 0.85
    # overshoot the pool on the seed-default bracket.
    decay_base: float = 0.70
    # Representative opponent for the national semifinal and final
    elite_opponent_rating: float = 0.94
    # Allowed |total - budget| before the pool check is flagged
    ev_tolerance: float = 0.03
    normalize: bool = False
    parallel_workers: int = 1

    def __post_init__(self):
        if not 0.0 < self.decay_base <= 1.0:
            raise ValueError(f"decay_base must be in (0, 1], got {self.decay_base}")
        if not 0.0 < self.elite_opponent_rating < 1.0:
            raise ValueError(
                f"elite_opponent_rating must be in (0, 1), got {self.elite_opponent_rating}"
            )
        if self.ev_tolerance < 0:
            raise ValueError(f"ev_tolerance must be non-negative, got {self.ev_tolerance}")
        if self.parallel_workers < 1:
            raise ValueError(f"parallel_workers must be >= 1, got {self.parallel_workers}")

    def to_dict(self) -> dict:
        return {
            "decay_base": self.decay_base,
            "elite_opponent_rating": self.elite_opponent_rating,
            "ev_tolerance": self.ev_tolerance,
            "normalize": self.normalize,
            "parallel_workers": self.parallel_workers,
        }


@dataclass(frozen=True)
class RoundProbabilities:
    """P(win round) for R64, R32, S16, E8, F4 and CHAMP."""

    values: Tuple[float, ...] = field(default_factory=lambda: (0.0,) * len(ROUND_NAMES))

    def __post_init__(self):
        if len(self.values) != len(ROUND_NAMES):
            raise ValueError(f"Expected {len(ROUND_NAMES)} round probabilities, got {len(self.values)}")

    def __getitem__(self, key):
        if isinstance(key, str):
            return self.values[ROUND_NAMES.index(key)]
        return self.values[key]

    def __iter__(self):
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    @property
    def champion(self) -> float:
        return self.values[-1]

    def is_non_increasing(self) -> bool:
        return all(a >= b for a, b in zip(self.values, self.values[1:]))

    def to_dict(self) -> Dict[str, float]:
        return dict(zip(ROUND_NAMES, self.values))


def _check_region(region_ratings: Mapping[int, float]) -> None:
    missing = [s for s in SEEDS if s not in region_ratings]
    if missing:
        raise ValueError(f"Region ratings missing seeds {missing}")


def _round_of_32_probability(
    seed: int,
    rating: float,
    region_ratings: Mapping[int, float],
    coefficients: ModelCoefficients,
    topology: BracketTopology,
) -> Tuple[float, float]:
    """Return (P(win R64), P(win R32)) for a team, computed exactly."""
    r64_opp = topology.opponents(seed, 1)[0]
    p_r64 = win_probability(rating, region_ratings[r64_opp], coefficients)

    opp_x, opp_y = topology.opponents(seed, 2)
    x_opp = topology.opponents(opp_x, 1)[0]
    p_x_advances = win_probability(region_ratings[opp_x], region_ratings[x_opp], coefficients)
    p_y_advances = 1.0 - p_x_advances

    p_beat_x = win_probability(rating, region_ratings[opp_x], coefficients)
    p_beat_y = win_probability(rating, region_ratings[opp_y], coefficients)

    return p_r64, p_r64 * (p_x_advances * p_beat_x + p_y_advances * p_beat_y)


def _weighted_win_probability(
    rating: float,
    opponents: Tuple[int, ...],
    weights: np.ndarray,
    region_ratings: Mapping[int, float],
    coefficients: ModelCoefficients,
) -> float:
    total = weights.sum()
    if total <= 0:
        # Only reachable through underflow on extreme ratings
        logger.debug("Opponent weights sum to zero for %s, using uniform weights", opponents)
        weights = np.ones(len(opponents))
        total = float(len(opponents))
    opp_ratings = np.array([region_ratings[o] for o in opponents], dtype=float)
    p_beat = win_probability(rating, opp_ratings, coefficients)
    return float(np.dot(weights / total, p_beat))


def compute_round_probabilities(
    team_seed: int,
    team_rating: float,
    region_ratings: Mapping[int, float],
    coefficients: ModelCoefficients = THEORETICAL_COEFFICIENTS,
    config: PropagationConfig = None,
    topology: BracketTopology = STANDARD_TOPOLOGY,
) -> RoundProbabilities:
    """
    Compute a team's probability of winning each tournament round.

    Args:
        team_seed: The team's seed (1-16)
        team_rating: The team's rating
        region_ratings: Rating of every seed 1-16 in the team's region
        coefficients: Win-probability model coefficients
        config: Propagation configuration (decay base, elite opponent)
        topology: Bracket topology tables

    Returns:
        RoundProbabilities for R64 through CHAMP

    Raises:
        TopologyError: If the topology returns a malformed opponent set
        ValueError: If region_ratings does not cover seeds 1-16
    """
    config = config or PropagationConfig()
    _check_region(region_ratings)

    # R64 and R32: exact
    p_r64, p_r32 = _round_of_32_probability(
        team_seed, team_rating, region_ratings, coefficients, topology
    )

    # S16: each candidate weighted by its own R32 probability
    s16_opps = topology.opponents(team_seed, 3)
    s16_weights = np.array([
        _round_of_32_probability(opp, region_ratings[opp], region_ratings, coefficients, topology)[1]
        for opp in s16_opps
    ])
    p_s16 = p_r32 * _weighted_win_probability(
        team_rating, s16_opps, s16_weights, region_ratings, coefficients
    )

    # E8: seed-decay approximation
    e8_opps = topology.opponents(team_seed, 4)
    e8_weights = np.power(config.decay_base, np.array(e8_opps, dtype=float) - 1.0)
    p_e8 = p_s16 * _weighted_win_probability(
        team_rating, e8_opps, e8_weights, region_ratings, coefficients
    )

    # F4 and CHAMP: representative elite opponent from the other regions
    p_elite = win_probability(team_rating, config.elite_opponent_rating, coefficients)
    p_f4 = p_e8 * p_elite
    p_champ = p_f4 * p_elite

    return RoundProbabilities((p_r64, p_r32, p_s16, p_e8, p_f4, p_champ))
