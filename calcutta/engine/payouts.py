"""
Calcutta payout schedule and EV conversion.

Payouts are incremental fractions of the pool earned for each round a team
wins. Winning the first-round game pays nothing; reaching the Sweet 16 pays
1.5%, the Elite 8 another 1.5%, the Final Four 5%, the title game 12% and
the championship 20% (cumulative 1.5 / 3 / 8 / 20 / 40 %).

    16*1.5% + 8*1.5% + 4*5% + 2*12% + 1*20% = 100%
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from .topology import HISTORICAL_SEED_PROGRESSION, ROUND_NAMES

# Teams that win each round across the whole 64-team bracket
ROUND_WINNERS: Tuple[int, ...] = (32, 16, 8, 4, 2, 1)


@dataclass(frozen=True)
class PayoutTable:
    """Incremental payout fraction for winning each round (R64..CHAMP)."""

    r64: float = 0.0
    r32: float = 0.015
    s16: float = 0.015
    e8: float = 0.05
    f4: float = 0.12
    champ: float = 0.20

    def __post_init__(self):
        for name, value in zip(ROUND_NAMES, self.incremental):
            if value < 0:
                raise ValueError(f"Payout for {name} must be non-negative, got {value}")

    @property
    def incremental(self) -> Tuple[float, ...]:
        return (self.r64, self.r32, self.s16, self.e8, self.f4, self.champ)

    @property
    def cumulative(self) -> Tuple[float, ...]:
        running = 0.0
        out = []
        for value in self.incremental:
            running += value
            out.append(running)
        return tuple(out)

    def pool_budget(self) -> float:
        """Total fraction of the pool paid out across the whole bracket."""
        return sum(n * p for n, p in zip(ROUND_WINNERS, self.incremental))

    def payout_for_wins(self, wins: int) -> float:
        """Cumulative payout earned by a team that won ``wins`` games (0-6)."""
        if not 0 <= wins <= len(ROUND_NAMES):
            raise ValueError(f"wins must be between 0 and {len(ROUND_NAMES)}, got {wins}")
        return sum(self.incremental[:wins])

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "PayoutTable":
        """Build from ``{"R32": 0.015, ...}``; missing rounds pay nothing."""
        unknown = set(data) - set(ROUND_NAMES)
        if unknown:
            raise ValueError(f"Unknown payout rounds: {sorted(unknown)}")
        return cls(*(float(data.get(name, 0.0)) for name in ROUND_NAMES))

    def to_dict(self) -> Dict[str, float]:
        return dict(zip(ROUND_NAMES, self.incremental))


STANDARD_PAYOUTS = PayoutTable()


def compute_ev(round_probabilities: Iterable[float], payouts: PayoutTable = STANDARD_PAYOUTS) -> float:
    """
    Expected payout (fraction of pool) from P(win round) for each round.

    Args:
        round_probabilities: Six probabilities, R64 through CHAMP
        payouts: Payout table

    Returns:
        EV as a fraction of the total pool
    """
    probs = tuple(round_probabilities)
    if len(probs) != len(ROUND_NAMES):
        raise ValueError(f"Expected {len(ROUND_NAMES)} round probabilities, got {len(probs)}")
    return sum(p * pay for p, pay in zip(probs, payouts.incremental))


def naive_seed_ev(seed: int, payouts: PayoutTable = STANDARD_PAYOUTS) -> float:
    """EV of a seed from historical seed averages alone, ignoring ratings."""
    return compute_ev(HISTORICAL_SEED_PROGRESSION[seed], payouts)
