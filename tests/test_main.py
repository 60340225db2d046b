"""End-to-end tests for the command line interface."""

import json

import numpy as np
import pandas as pd
from scipy.special import expit, logit

from calcutta.main import main


def _write_games(path, n=400):
    rng = np.random.default_rng(3)
    a = rng.uniform(0.7, 0.98, n)
    b = rng.uniform(0.5, 0.95, n)
    a_wins = rng.uniform(size=n) < expit(logit(a) - logit(b))
    pd.DataFrame({
        "year": 2024,
        "team_a": [f"A{i}" for i in range(n)],
        "team_b": [f"B{i}" for i in range(n)],
        "barthag_a": a,
        "barthag_b": b,
        "winner": np.where(a_wins, [f"A{i}" for i in range(n)], [f"B{i}" for i in range(n)]),
    }).to_csv(path, index=False)


def test_sample_then_ev(tmp_path, capsys):
    ratings = tmp_path / "ratings.csv"
    output = tmp_path / "ev.json"
    table = tmp_path / "ev.csv"

    assert main(["sample", "--output", str(ratings)]) == 0
    assert main(["ev", "--input", str(ratings), "--output", str(output), "--csv", str(table)]) == 0

    report = json.loads(output.read_text())
    assert report["year"] == 2025
    assert len(report["regions"]) == 4
    assert len(report["matchup_buckets"]) == 32
    assert report["metadata"]["coefficients"]["source"] == "theoretical"
    assert len(pd.read_csv(table)) == 64
    assert "Total EV" in capsys.readouterr().out


def test_ev_normalized_with_calibration(tmp_path):
    ratings = tmp_path / "ratings.csv"
    output = tmp_path / "ev.json"
    main(["sample", "--output", str(ratings)])

    code = main([
        "ev", "--input", str(ratings), "--output", str(output),
        "--normalize", "--calibrate-decay",
    ])

    assert code == 0
    report = json.loads(output.read_text())
    assert report["metadata"]["normalized"] is True
    total = sum(t["ev"] for region in report["regions"] for t in region["teams"])
    assert abs(total - 1.0) < 1e-9


def test_fit_then_ev_with_model(tmp_path):
    games = tmp_path / "games.csv"
    coeffs = tmp_path / "coeffs.json"
    calibration = tmp_path / "calibration.csv"
    ratings = tmp_path / "ratings.csv"
    output = tmp_path / "ev.json"
    _write_games(games)
    main(["sample", "--output", str(ratings)])

    assert main([
        "fit", "--games", str(games), "--output", str(coeffs),
        "--calibration-output", str(calibration),
    ]) == 0
    assert calibration.exists()
    assert main(["ev", "--input", str(ratings), "--model", str(coeffs), "--output", str(output)]) == 0

    report = json.loads(output.read_text())
    assert report["metadata"]["coefficients"]["source"] == "fitted"
    assert report["metadata"]["coefficients_fallback"] is False


def test_backtest_command(tmp_path, capsys):
    ratings = tmp_path / "ratings.csv"
    results = tmp_path / "results.csv"
    report_path = tmp_path / "backtest.json"
    main(["sample", "--output", str(ratings)])
    table = pd.read_csv(ratings)
    table["wins"] = (table["seed"] <= 8).astype(int)
    table.to_csv(results, index=False)

    assert main(["backtest", "--results", str(results), "--output", str(report_path)]) == 0
    assert "MSE" in capsys.readouterr().out
    assert json.loads(report_path.read_text())["by_year"][0]["n_teams"] == 64


def test_missing_input_returns_error(tmp_path, capsys):
    code = main(["ev", "--input", str(tmp_path / "missing.csv")])

    assert code == 1
    assert "Error" in capsys.readouterr().out


def test_bad_table_returns_error(tmp_path):
    ratings = tmp_path / "ratings.csv"
    pd.DataFrame([{"region": "East", "seed": 1, "rating": 0.9}]).to_csv(ratings, index=False)

    assert main(["ev", "--input", str(ratings), "--output", str(tmp_path / "ev.json")]) == 1


def test_no_command_prints_help():
    assert main([]) == 1
