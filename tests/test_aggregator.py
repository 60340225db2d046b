"""Tests for region and bracket EV aggregation."""

import logging

import pytest

from calcutta.engine.aggregator import (
    calibrate_decay_base,
    compute_bracket_ev,
    compute_region_ev,
    matchup_bucket_evs,
    normalize_evs,
)
from calcutta.engine.payouts import PayoutTable
from calcutta.engine.propagator import PropagationConfig
from calcutta.engine.topology import DEFAULT_RATINGS_BY_SEED, SEEDS
from calcutta.engine.win_probability import THEORETICAL_COEFFICIENTS, ModelCoefficients
from calcutta.models.bracket import Bracket, Region
from calcutta.models.team import TeamSlot

FITTED = ModelCoefficients(intercept=0.32, slope=0.8)
REGIONS = ("East", "West", "South", "Midwest")


@pytest.fixture
def default_bracket():
    regions = []
    for name in REGIONS:
        slots = [TeamSlot(f"{name} {s}", s, name, DEFAULT_RATINGS_BY_SEED[s]) for s in SEEDS]
        regions.append(Region(name, slots))
    return Bracket(regions, year=2025)


def test_region_ev_rows_and_validation():
    result = compute_region_ev(DEFAULT_RATINGS_BY_SEED, THEORETICAL_COEFFICIENTS, region_name="East")

    assert [t.seed for t in result.teams] == list(SEEDS)
    assert result.validation.expected == pytest.approx(0.25)
    assert result.projected_pool_total == pytest.approx(4 * result.total)
    assert result.team(1).ev > result.team(16).ev
    assert result.team(16).name == "East 16"


def test_region_ev_requires_complete_ratings():
    ratings = dict(DEFAULT_RATINGS_BY_SEED)
    del ratings[3]
    with pytest.raises(ValueError):
        compute_region_ev(ratings, THEORETICAL_COEFFICIENTS)


def test_pool_conservation_theoretical(default_bracket):
    result = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS)

    assert len(result.teams) == 64
    assert result.validation.expected == pytest.approx(1.0)
    assert abs(result.total - 1.0) <= 0.03
    assert result.validation.within_tolerance
    assert result.total == pytest.approx(1.0112, abs=0.002)


def test_pool_total_with_fitted_coefficients(default_bracket):
    result = compute_bracket_ev(default_bracket, FITTED)
    assert 0.95 < result.total < 1.10
    assert all(t.probabilities.is_non_increasing() for t in result.teams)


def test_drift_outside_tolerance_is_reported_not_raised(default_bracket, caplog):
    config = PropagationConfig(decay_base=0.85)
    with caplog.at_level(logging.WARNING):
        result = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS, config)

    assert not result.validation.within_tolerance
    assert result.validation.deviation > 0.03
    assert "deviates" in caplog.text


def test_metadata_records_model_and_defaults(default_bracket):
    result = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS)

    assert result.metadata["coefficients_fallback"] is True
    assert result.metadata["coefficients"]["source"] == "theoretical"
    assert result.metadata["default_ratings_used"] == 0
    assert result.metadata["payout_budget"] == pytest.approx(1.0)
    assert result.metadata["normalized"] is False

    fitted = compute_bracket_ev(default_bracket, FITTED)
    assert fitted.metadata["coefficients_fallback"] is False


def test_normalization_hits_pool_exactly(default_bracket):
    config = PropagationConfig(normalize=True)
    result = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS, config)

    assert result.total == pytest.approx(1.0)
    assert result.metadata["normalized"] is True
    assert result.metadata["normalization_scale"] < 1.0
    # The raw pre-normalisation total is kept on the validation
    assert result.validation.total == pytest.approx(1.0112, abs=0.002)


def test_normalize_keeps_ordering(default_bracket):
    raw = compute_bracket_ev(default_bracket, FITTED)
    scaled = normalize_evs(raw)

    raw_order = [(t.region, t.seed) for t in sorted(raw.teams, key=lambda t: t.ev)]
    scaled_order = [(t.region, t.seed) for t in sorted(scaled.teams, key=lambda t: t.ev)]
    assert raw_order == scaled_order
    assert scaled.teams[0].probabilities == raw.teams[0].probabilities


def test_uneven_payout_table_is_flagged(default_bracket, caplog):
    payouts = PayoutTable(champ=0.30)
    with caplog.at_level(logging.WARNING):
        result = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS, payouts=payouts)

    assert result.metadata["payout_budget"] == pytest.approx(1.1)
    assert "not 100%" in caplog.text


def test_parallel_scoring_matches_sequential(default_bracket):
    sequential = compute_bracket_ev(default_bracket, FITTED)
    parallel = compute_bracket_ev(default_bracket, FITTED, PropagationConfig(parallel_workers=2))

    assert [r.name for r in parallel.regions] == list(REGIONS)
    assert [t.ev for t in parallel.teams] == pytest.approx([t.ev for t in sequential.teams])


def test_to_frame_sorted_by_ev(default_bracket):
    df = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS).to_frame()

    assert len(df) == 64
    assert df.columns[0] == "year"
    assert df["ev"].is_monotonic_decreasing
    assert set(df.loc[:3, "seed"]) == {1}
    assert {"p_r64", "p_champ", "naive_ev", "ev_vs_naive"} <= set(df.columns)


def test_to_dict_structure(default_bracket):
    data = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS).to_dict()

    assert data["year"] == 2025
    assert len(data["regions"]) == 4
    assert len(data["regions"][0]["teams"]) == 16
    assert "within_tolerance" in data["validation"]


def test_matchup_buckets(default_bracket):
    result = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS)
    buckets = matchup_bucket_evs(result)

    assert len(buckets) == 32
    assert buckets["ev"].sum() == pytest.approx(result.total)
    assert buckets["naive_ev"].sum() == pytest.approx(1.0)
    east = buckets[buckets["region"] == "East"]
    assert list(east["bucket"])[:2] == ["1/16", "8/9"]


def test_calibrated_decay_base_reduces_drift(default_bracket):
    config = PropagationConfig(decay_base=0.85)
    base = calibrate_decay_base(default_bracket, THEORETICAL_COEFFICIENTS, config)

    assert 0.3 <= base <= 1.0
    before = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS, config)
    after = compute_bracket_ev(
        default_bracket, THEORETICAL_COEFFICIENTS, PropagationConfig(decay_base=base)
    )
    assert abs(after.validation.deviation) < abs(before.validation.deviation)
    assert abs(after.validation.deviation) < 0.01


def test_team_rows_carry_auction_bucket(default_bracket):
    df = compute_bracket_ev(default_bracket, THEORETICAL_COEFFICIENTS).to_frame()
    rows = df.set_index(["region", "seed"])

    assert rows.loc[("East", 16), "bucket"] == "1/16"
    assert rows.loc[("West", 9), "bucket"] == "8/9"
    assert rows.loc[("South", 5), "bucket"] == "5/12"
    assert df["bucket"].nunique() == 8
