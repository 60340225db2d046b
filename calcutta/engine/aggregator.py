"""
Region and bracket EV aggregation.

Runs the round-reach propagator for every seed of a region against one
shared rating map, converts the probabilities to EV, and checks that the
pool is conserved: one region should carry a quarter of the payout budget
and the full bracket all of it. The seed-decay and elite-opponent
approximations introduce some drift, so a deviation is reported, never
raised.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional

import pandas as pd
from scipy.optimize import minimize_scalar

from ..models.bracket import NUM_REGIONS, Bracket, Region
from .payouts import STANDARD_PAYOUTS, PayoutTable, compute_ev, naive_seed_ev
from .propagator import PropagationConfig, RoundProbabilities, compute_round_probabilities
from .topology import MATCHUP_BUCKETS, SEEDS, STANDARD_TOPOLOGY, BracketTopology, matchup_bucket
from .win_probability import ModelCoefficients

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeamEV:
    """EV result for one team slot."""

    region: str
    seed: int
    name: str
    rating: float
    rating_source: str
    probabilities: RoundProbabilities
    ev: float
    naive_ev: float

    @property
    def ev_pct(self) -> float:
        return self.ev * 100

    @property
    def ev_vs_naive(self) -> float:
        return self.ev - self.naive_ev

    def to_dict(self) -> dict:
        row = {
            "region": self.region,
            "seed": self.seed,
            "bucket": "/".join(str(s) for s in matchup_bucket(self.seed)),
            "team": self.name,
            "rating": self.rating,
            "rating_source": self.rating_source,
        }
        for name, p in self.probabilities.to_dict().items():
            row[f"p_{name.lower()}"] = p
        row.update({
            "ev": self.ev,
            "ev_pct": self.ev_pct,
            "naive_ev": self.naive_ev,
            "ev_vs_naive": self.ev_vs_naive,
        })
        return row


@dataclass(frozen=True)
class EVValidation:
    """Pool-conservation check on a sum of EVs."""

    total: float
    expected: float
    tolerance: float

    @property
    def deviation(self) -> float:
        return self.total - self.expected

    @property
    def within_tolerance(self) -> bool:
        return abs(self.deviation) <= self.tolerance

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "expected": self.expected,
            "deviation": self.deviation,
            "tolerance": self.tolerance,
            "within_tolerance": self.within_tolerance,
        }


@dataclass(frozen=True)
class RegionEV:
    """EV results for the 16 seeds of one region."""

    name: str
    teams: List[TeamEV]
    validation: EVValidation

    @property
    def total(self) -> float:
        return sum(t.ev for t in self.teams)

    @property
    def projected_pool_total(self) -> float:
        """Pool share implied if all four regions looked like this one."""
        return self.total * NUM_REGIONS

    def team(self, seed: int) -> TeamEV:
        for t in self.teams:
            if t.seed == seed:
                return t
        raise KeyError(seed)


@dataclass(frozen=True)
class BracketEV:
    """EV results for the whole bracket plus run metadata."""

    regions: List[RegionEV]
    validation: EVValidation
    year: Optional[int] = None
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def teams(self) -> List[TeamEV]:
        return [t for region in self.regions for t in region.teams]

    @property
    def total(self) -> float:
        return sum(t.ev for t in self.teams)

    def region(self, name: str) -> RegionEV:
        for region in self.regions:
            if region.name == name:
                return region
        raise KeyError(name)

    def to_frame(self) -> pd.DataFrame:
        """One row per team slot, sorted by EV."""
        df = pd.DataFrame([t.to_dict() for t in self.teams])
        df.insert(0, "year", self.year)
        return df.sort_values("ev", ascending=False).reset_index(drop=True)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "metadata": self.metadata,
            "validation": self.validation.to_dict(),
            "regions": [
                {
                    "name": region.name,
                    "total": region.total,
                    "validation": region.validation.to_dict(),
                    "teams": [t.to_dict() for t in region.teams],
                }
                for region in self.regions
            ],
        }


def validate_total(total: float, expected: float, tolerance: float, label: str) -> EVValidation:
    """Compare an EV total with its expected share and warn when it drifts."""
    validation = EVValidation(total=total, expected=expected, tolerance=tolerance)
    if not validation.within_tolerance:
        logger.warning(
            "%s EV total %.2f%% deviates from expected %.2f%% by %+.2f points (tolerance %.2f)",
            label, total * 100, expected * 100, validation.deviation * 100, tolerance * 100,
        )
    else:
        logger.debug("%s EV total %.2f%% (expected %.2f%%)", label, total * 100, expected * 100)
    return validation


def compute_region_ev(
    region_ratings: Mapping[int, float],
    coefficients: ModelCoefficients,
    config: PropagationConfig = None,
    payouts: PayoutTable = STANDARD_PAYOUTS,
    topology: BracketTopology = STANDARD_TOPOLOGY,
    region_name: str = "Region",
    team_names: Optional[Mapping[int, str]] = None,
    rating_sources: Optional[Mapping[int, str]] = None,
) -> RegionEV:
    """
    Compute round probabilities and EV for all 16 seeds of a region.

    Args:
        region_ratings: Rating of every seed 1-16
        coefficients: Win-probability model coefficients
        config: Propagation configuration
        payouts: Payout table
        topology: Bracket topology tables
        region_name: Label used in results and log messages
        team_names: Optional seed -> team name map
        rating_sources: Optional seed -> "observed"/"default" map

    Returns:
        RegionEV with one TeamEV per seed (seed order) and the pool check
    """
    config = config or PropagationConfig()
    team_names = team_names or {}
    rating_sources = rating_sources or {}

    missing = [s for s in SEEDS if s not in region_ratings]
    if missing:
        raise ValueError(f"Region {region_name} ratings missing seeds {missing}")

    teams = []
    for seed in SEEDS:
        rating = region_ratings[seed]
        probs = compute_round_probabilities(
            seed, rating, region_ratings, coefficients, config, topology
        )
        teams.append(TeamEV(
            region=region_name,
            seed=seed,
            name=team_names.get(seed, f"{region_name} {seed}"),
            rating=rating,
            rating_source=rating_sources.get(seed, "observed"),
            probabilities=probs,
            ev=compute_ev(probs, payouts),
            naive_ev=naive_seed_ev(seed, payouts),
        ))

    total = sum(t.ev for t in teams)
    validation = validate_total(
        total, payouts.pool_budget() / NUM_REGIONS, config.ev_tolerance / NUM_REGIONS,
        f"Region {region_name}",
    )
    return RegionEV(name=region_name, teams=teams, validation=validation)


def _score_region(
    region: Region,
    coefficients: ModelCoefficients,
    config: PropagationConfig,
    payouts: PayoutTable,
    topology: BracketTopology,
) -> RegionEV:
    return compute_region_ev(
        region.ratings(),
        coefficients,
        config,
        payouts,
        topology,
        region_name=region.name,
        team_names={slot.seed: slot.name for slot in region},
        rating_sources={slot.seed: slot.rating_source for slot in region},
    )


def compute_bracket_ev(
    bracket: Bracket,
    coefficients: ModelCoefficients,
    config: PropagationConfig = None,
    payouts: PayoutTable = STANDARD_PAYOUTS,
    topology: BracketTopology = STANDARD_TOPOLOGY,
) -> BracketEV:
    """
    Compute EV for all 64 teams and check the bracket total against the pool.

    Regions are independent, so with ``config.parallel_workers > 1`` they
    are scored in a process pool; results keep the bracket's region order.

    Args:
        bracket: The 64-team bracket
        coefficients: Win-probability model coefficients
        config: Propagation configuration
        payouts: Payout table
        topology: Bracket topology tables

    Returns:
        BracketEV (normalised when ``config.normalize`` is set)
    """
    config = config or PropagationConfig()
    regions = list(bracket)

    budget = payouts.pool_budget()
    if abs(budget - 1.0) > 1e-9:
        logger.warning("Payout table distributes %.2f%% of the pool, not 100%%", budget * 100)

    if config.parallel_workers > 1:
        try:
            with ProcessPoolExecutor(max_workers=min(config.parallel_workers, len(regions))) as executor:
                futures = [
                    executor.submit(_score_region, region, coefficients, config, payouts, topology)
                    for region in regions
                ]
                region_results = [future.result() for future in futures]
        except (RuntimeError, OSError) as exc:
            # Fallback to sequential if multiprocessing fails
            logger.warning("Parallel scoring failed (%s), scoring regions sequentially", exc)
            region_results = [
                _score_region(region, coefficients, config, payouts, topology) for region in regions
            ]
    else:
        region_results = [
            _score_region(region, coefficients, config, payouts, topology) for region in regions
        ]

    total = sum(r.total for r in region_results)
    validation = validate_total(total, budget, config.ev_tolerance, "Bracket")

    result = BracketEV(
        regions=region_results,
        validation=validation,
        year=bracket.year,
        metadata={
            "coefficients": coefficients.to_dict(),
            "coefficients_fallback": coefficients.is_fallback,
            "config": config.to_dict(),
            "payouts": payouts.to_dict(),
            "payout_budget": budget,
            "default_ratings_used": bracket.default_rating_count(),
            "normalized": False,
        },
    )

    if config.normalize:
        result = normalize_evs(result, payouts)
    return result


def normalize_evs(bracket_ev: BracketEV, payouts: PayoutTable = STANDARD_PAYOUTS) -> BracketEV:
    """
    Rescale every team's EV so the bracket total equals the payout budget.

    Round probabilities are left untouched; the raw validation is kept so
    the pre-normalisation drift stays visible.
    """
    total = bracket_ev.total
    if total <= 0:
        raise ValueError("Cannot normalise a bracket with zero total EV")

    scale = payouts.pool_budget() / total
    regions = [
        replace(region, teams=[replace(t, ev=t.ev * scale) for t in region.teams])
        for region in bracket_ev.regions
    ]
    metadata = dict(bracket_ev.metadata)
    metadata["normalized"] = True
    metadata["normalization_scale"] = scale
    return replace(bracket_ev, regions=regions, metadata=metadata)


def matchup_bucket_evs(bracket_ev: BracketEV) -> pd.DataFrame:
    """
    EV of each auction lot: the two seeds that meet in the first round.

    Returns:
        DataFrame with region, bucket ("1/16"), team names, model EV and
        naive seed-average EV, ordered by region then bracket position
    """
    rows = []
    for region in bracket_ev.regions:
        for high, low in MATCHUP_BUCKETS:
            a, b = region.team(high), region.team(low)
            rows.append({
                "region": region.name,
                "bucket": f"{high}/{low}",
                "teams": f"{a.name} / {b.name}",
                "ev": a.ev + b.ev,
                "ev_pct": (a.ev + b.ev) * 100,
                "naive_ev": a.naive_ev + b.naive_ev,
            })
    df = pd.DataFrame(rows)
    df["ev_vs_naive"] = df["ev"] - df["naive_ev"]
    return df


def calibrate_decay_base(
    bracket: Bracket,
    coefficients: ModelCoefficients,
    config: PropagationConfig = None,
    payouts: PayoutTable = STANDARD_PAYOUTS,
    bounds=(0.3, 1.0),
) -> float:
    """
    Find the seed-decay base that best conserves the pool for a bracket.

    Minimises |bracket total - payout budget| over ``decay_base`` within
    ``bounds`` using a bounded scalar search.

    Returns:
        The calibrated decay base
    """
    config = config or PropagationConfig()
    budget = payouts.pool_budget()
    regions = list(bracket)

    def deviation(base: float) -> float:
        trial = replace(config, decay_base=float(base), normalize=False)
        total = 0.0
        for region in regions:
            ratings = region.ratings()
            for seed in SEEDS:
                probs = compute_round_probabilities(seed, ratings[seed], ratings, coefficients, trial)
                total += compute_ev(probs, payouts)
        return abs(total - budget)

    result = minimize_scalar(deviation, bounds=bounds, method="bounded", options={"xatol": 1e-4})
    base = float(result.x)
    logger.info(
        "Calibrated decay base %.4f (pool deviation %.3f points)", base, deviation(base) * 100
    )
    return base
