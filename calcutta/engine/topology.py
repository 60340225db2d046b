"""
Bracket topology for a standard 16-team NCAA region.

Encodes which seeds a team can meet in each of the four regional rounds.
The tables describe tournament structure, so they are fixed constants and
never derived from ratings. Rounds 5 and 6 (national semifinal and final)
are played against other regions and are not part of the regional topology.

This module also owns the canonical per-seed constant tables (default
ratings and historical seed progression) so callers never keep their own
copies.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Tuple

SEEDS: Tuple[int, ...] = tuple(range(1, 17))

ROUND_NAMES: Tuple[str, ...] = ("R64", "R32", "S16", "E8", "F4", "CHAMP")

# Number of possible opponents per regional round (1-indexed round number)
BRANCHING_FACTOR: Dict[int, int] = {1: 1, 2: 2, 3: 4, 4: 8}

# Auction lots: the two seeds that meet in the first round, in bracket order
MATCHUP_BUCKETS: Tuple[Tuple[int, int], ...] = (
    (1, 16), (8, 9), (5, 12), (4, 13),
    (6, 11), (3, 14), (7, 10), (2, 15),
)


class TopologyError(ValueError):
    """Raised when a bracket topology lookup is structurally invalid."""


def _pairs_to_map(groups) -> Dict[int, FrozenSet[int]]:
    """Expand (members, opponents) groups into a per-seed lookup."""
    table: Dict[int, FrozenSet[int]] = {}
    for members, opponents in groups:
        for seed in members:
            table[seed] = frozenset(opponents)
    return table


FIRST_ROUND: Dict[int, int] = {}
for _high, _low in MATCHUP_BUCKETS:
    FIRST_ROUND[_high] = _low
    FIRST_ROUND[_low] = _high

SECOND_ROUND: Dict[int, FrozenSet[int]] = _pairs_to_map([
    ((1, 16), (8, 9)),
    ((8, 9), (1, 16)),
    ((4, 13), (5, 12)),
    ((5, 12), (4, 13)),
    ((3, 14), (6, 11)),
    ((6, 11), (3, 14)),
    ((2, 15), (7, 10)),
    ((7, 10), (2, 15)),
])

THIRD_ROUND: Dict[int, FrozenSet[int]] = _pairs_to_map([
    ((1, 8, 9, 16), (4, 5, 12, 13)),
    ((4, 5, 12, 13), (1, 8, 9, 16)),
    ((2, 7, 10, 15), (3, 6, 11, 14)),
    ((3, 6, 11, 14), (2, 7, 10, 15)),
])

FOURTH_ROUND: Dict[int, FrozenSet[int]] = _pairs_to_map([
    ((1, 4, 5, 8, 9, 12, 13, 16), (2, 3, 6, 7, 10, 11, 14, 15)),
    ((2, 3, 6, 7, 10, 11, 14, 15), (1, 4, 5, 8, 9, 12, 13, 16)),
])

# Typical rating by seed, used whenever a region is missing a team's rating
DEFAULT_RATINGS_BY_SEED: Dict[int, float] = {
    1: 0.96, 2: 0.93, 3: 0.91, 4: 0.88,
    5: 0.86, 6: 0.83, 7: 0.80, 8: 0.78,
    9: 0.76, 10: 0.74, 11: 0.72, 12: 0.70,
    13: 0.68, 14: 0.65, 15: 0.62, 16: 0.55,
}

# Historical P(win round) by seed (1985-2024, approximate), columns R64..CHAMP.
# Normalised below so each round has exactly the right number of survivors.
_RAW_SEED_PROGRESSION: Dict[int, Tuple[float, ...]] = {
    1: (0.993, 0.853, 0.600, 0.420, 0.200, 0.105),
    2: (0.940, 0.720, 0.480, 0.300, 0.140, 0.055),
    3: (0.850, 0.580, 0.350, 0.180, 0.070, 0.025),
    4: (0.790, 0.500, 0.280, 0.130, 0.050, 0.020),
    5: (0.650, 0.380, 0.190, 0.080, 0.025, 0.010),
    6: (0.620, 0.350, 0.160, 0.060, 0.020, 0.008),
    7: (0.600, 0.320, 0.140, 0.055, 0.018, 0.007),
    8: (0.500, 0.240, 0.100, 0.035, 0.012, 0.004),
    9: (0.500, 0.220, 0.090, 0.030, 0.010, 0.003),
    10: (0.400, 0.180, 0.070, 0.025, 0.008, 0.002),
    11: (0.380, 0.170, 0.065, 0.022, 0.007, 0.002),
    12: (0.350, 0.140, 0.050, 0.015, 0.005, 0.001),
    13: (0.210, 0.060, 0.015, 0.004, 0.001, 0.000),
    14: (0.150, 0.035, 0.008, 0.002, 0.000, 0.000),
    15: (0.070, 0.015, 0.003, 0.001, 0.000, 0.000),
    16: (0.010, 0.002, 0.000, 0.000, 0.000, 0.000),
}

# Expected survivors of each round per seed line (4 teams share a seed)
_SEED_LINE_TARGETS: Tuple[float, ...] = (8.0, 4.0, 2.0, 1.0, 0.5, 0.25)


def _normalise_progression(raw: Mapping[int, Tuple[float, ...]]) -> Dict[int, Tuple[float, ...]]:
    columns = list(zip(*(raw[s] for s in SEEDS)))
    scales = [
        target / sum(column) if sum(column) > 0 else 0.0
        for column, target in zip(columns, _SEED_LINE_TARGETS)
    ]
    return {
        seed: tuple(p * scale for p, scale in zip(raw[seed], scales))
        for seed in SEEDS
    }


HISTORICAL_SEED_PROGRESSION: Dict[int, Tuple[float, ...]] = _normalise_progression(
    _RAW_SEED_PROGRESSION
)


@dataclass(frozen=True)
class BracketTopology:
    """Opponent tables for the four regional rounds of one region."""

    first_round: Mapping[int, int] = field(default_factory=lambda: dict(FIRST_ROUND))
    second_round: Mapping[int, FrozenSet[int]] = field(default_factory=lambda: dict(SECOND_ROUND))
    third_round: Mapping[int, FrozenSet[int]] = field(default_factory=lambda: dict(THIRD_ROUND))
    fourth_round: Mapping[int, FrozenSet[int]] = field(default_factory=lambda: dict(FOURTH_ROUND))

    def opponents(self, seed: int, round_num: int) -> Tuple[int, ...]:
        """
        Possible opponents of ``seed`` in a regional round, sorted by seed.

        Args:
            seed: Team seed (1-16)
            round_num: Regional round (1-4)

        Returns:
            Tuple of opponent seeds, exactly ``BRANCHING_FACTOR[round_num]`` long

        Raises:
            TopologyError: If the lookup is missing or has the wrong size
        """
        if round_num not in BRANCHING_FACTOR:
            raise TopologyError(f"Round {round_num} is not a regional round")

        if round_num == 1:
            table = {s: (o,) for s, o in self.first_round.items()}
        else:
            table = (self.second_round, self.third_round, self.fourth_round)[round_num - 2]

        if seed not in table:
            raise TopologyError(f"No round-{round_num} opponents defined for seed {seed}")

        found = tuple(sorted(table[seed]))
        expected = BRANCHING_FACTOR[round_num]
        if len(found) != expected:
            raise TopologyError(
                f"Seed {seed} has {len(found)} round-{round_num} opponents, expected {expected}"
            )
        if seed in found:
            raise TopologyError(f"Seed {seed} is listed as its own round-{round_num} opponent")
        return found

    def validate(self) -> None:
        """Check every seed and round: mutual pairings, opponents outside the own sub-bracket."""
        for seed in SEEDS:
            sub_bracket = {seed}
            for round_num in BRANCHING_FACTOR:
                opponents = self.opponents(seed, round_num)
                for opp in opponents:
                    if seed not in self.opponents(opp, round_num):
                        raise TopologyError(
                            f"Round-{round_num} pairing {seed}->{opp} is not mutual"
                        )
                overlap = sub_bracket.intersection(opponents)
                if overlap:
                    raise TopologyError(
                        f"Seed {seed} meets {sorted(overlap)} again in round {round_num}"
                    )
                sub_bracket.update(opponents)


STANDARD_TOPOLOGY = BracketTopology()


def first_round_opponent(seed: int) -> int:
    return STANDARD_TOPOLOGY.opponents(seed, 1)[0]


def second_round_opponents(seed: int) -> Tuple[int, int]:
    return STANDARD_TOPOLOGY.opponents(seed, 2)


def third_round_opponents(seed: int) -> Tuple[int, ...]:
    return STANDARD_TOPOLOGY.opponents(seed, 3)


def fourth_round_opponents(seed: int) -> Tuple[int, ...]:
    return STANDARD_TOPOLOGY.opponents(seed, 4)


def matchup_bucket(seed: int) -> Tuple[int, int]:
    """Auction lot a seed belongs to, as (better seed, worse seed)."""
    opp = first_round_opponent(seed)
    return (min(seed, opp), max(seed, opp))
