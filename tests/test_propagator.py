"""Tests for round-reach propagation."""

import pytest

from calcutta.engine.payouts import compute_ev, naive_seed_ev
from calcutta.engine.propagator import (
    PropagationConfig,
    RoundProbabilities,
    compute_round_probabilities,
)
from calcutta.engine.topology import (
    DEFAULT_RATINGS_BY_SEED,
    SECOND_ROUND,
    SEEDS,
    BracketTopology,
    TopologyError,
)
from calcutta.engine.win_probability import THEORETICAL_COEFFICIENTS, ModelCoefficients

FITTED = ModelCoefficients(intercept=0.32, slope=0.8)


@pytest.fixture
def default_region():
    return dict(DEFAULT_RATINGS_BY_SEED)


def _all_probabilities(region, coefficients, config=None):
    return {
        seed: compute_round_probabilities(seed, region[seed], region, coefficients, config)
        for seed in SEEDS
    }


@pytest.mark.parametrize("coefficients", [THEORETICAL_COEFFICIENTS, FITTED])
def test_round_probabilities_are_non_increasing(default_region, coefficients):
    for seed, probs in _all_probabilities(default_region, coefficients).items():
        assert probs.is_non_increasing(), seed
        assert all(0.0 <= p <= 1.0 for p in probs)


def test_better_seeds_reach_further(default_region):
    probs = _all_probabilities(default_region, THEORETICAL_COEFFICIENTS)
    assert max(SEEDS, key=lambda s: probs[s].champion) == 1
    assert probs[1].champion > probs[2].champion > probs[8].champion > probs[16].champion


@pytest.mark.parametrize("coefficients", [THEORETICAL_COEFFICIENTS, FITTED])
def test_exact_rounds_conserve_survivors(default_region, coefficients):
    probs = _all_probabilities(default_region, coefficients)
    assert sum(p["R64"] for p in probs.values()) == pytest.approx(8.0)
    assert sum(p["R32"] for p in probs.values()) == pytest.approx(4.0)
    assert sum(p["S16"] for p in probs.values()) == pytest.approx(2.0)


def test_known_matchup(default_region):
    default_region[1] = 0.98
    probs = compute_round_probabilities(1, 0.98, default_region, FITTED)

    assert probs["R64"] > 0.95
    assert probs["R64"] == pytest.approx(0.9635, abs=1e-3)
    assert compute_ev(probs) > naive_seed_ev(1)


@pytest.mark.parametrize("coefficients", [THEORETICAL_COEFFICIENTS, FITTED])
def test_equal_ratings(coefficients):
    region = {seed: 0.8 for seed in SEEDS}
    probs = _all_probabilities(region, coefficients)

    for seed in SEEDS:
        p = probs[seed]
        assert p["R64"] == pytest.approx(0.5)
        assert p["R32"] == pytest.approx(0.25)
        assert p["S16"] == pytest.approx(0.125)
        assert p["E8"] == pytest.approx(0.0625)
        assert p.values == pytest.approx(probs[1].values)


def test_idempotent(default_region):
    first = compute_round_probabilities(5, default_region[5], default_region, FITTED)
    second = compute_round_probabilities(5, default_region[5], default_region, FITTED)
    assert first == second


def test_decay_base_only_moves_later_rounds(default_region):
    low = compute_round_probabilities(
        1, default_region[1], default_region, config=PropagationConfig(decay_base=0.5)
    )
    high = compute_round_probabilities(
        1, default_region[1], default_region, config=PropagationConfig(decay_base=0.95)
    )
    assert low.values[:3] == pytest.approx(high.values[:3])
    assert low["E8"] != pytest.approx(high["E8"])


def test_elite_opponent_rating_scales_final_rounds(default_region):
    config = PropagationConfig(elite_opponent_rating=0.96)
    probs = compute_round_probabilities(1, 0.96, default_region, config=config)
    assert probs["F4"] == pytest.approx(probs["E8"] * 0.5)
    assert probs["CHAMP"] == pytest.approx(probs["E8"] * 0.25)


def test_malformed_topology_raises(default_region):
    second = dict(SECOND_ROUND)
    second[16] = frozenset({8, 9, 4})
    topology = BracketTopology(second_round=second)

    with pytest.raises(TopologyError):
        compute_round_probabilities(16, default_region[16], default_region, topology=topology)


def test_missing_region_seed_raises(default_region):
    del default_region[7]
    with pytest.raises(ValueError):
        compute_round_probabilities(1, default_region[1], default_region)


def test_out_of_range_ratings_are_clamped(default_region):
    default_region[1] = 1.0
    probs = compute_round_probabilities(1, 1.0, default_region)
    assert probs.is_non_increasing()
    assert probs["R64"] < 1.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"decay_base": 0.0},
        {"decay_base": 1.2},
        {"elite_opponent_rating": 1.0},
        {"ev_tolerance": -0.01},
        {"parallel_workers": 0},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        PropagationConfig(**kwargs)


def test_round_probabilities_access():
    probs = RoundProbabilities((0.9, 0.7, 0.5, 0.3, 0.2, 0.1))
    assert probs["R64"] == probs[0] == 0.9
    assert probs["CHAMP"] == probs.champion == 0.1
    assert len(probs) == 6
    assert list(probs.to_dict()) == ["R64", "R32", "S16", "E8", "F4", "CHAMP"]

    with pytest.raises(ValueError):
        RoundProbabilities((0.5, 0.25))
