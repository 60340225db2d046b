"""Main CLI interface for the Calcutta EV engine."""

import argparse
import logging
import sys
from dataclasses import replace

from .data.loader import DataLoader
from .engine.aggregator import calibrate_decay_base, compute_bracket_ev, matchup_bucket_evs
from .engine.propagator import PropagationConfig
from .engine.win_probability import load_model_coefficients
from .ml.backtest import backtest
from .ml.fitting import fit_win_probability_model, save_coefficients


def create_sample(args):
    """Create sample ratings file."""
    print(f"Creating sample ratings at {args.output}...")
    DataLoader.create_sample_data(args.output, year=args.year)
    print("✓ Sample data created!")
    print("\nYou can now compute EVs with:")
    print(f"  python -m calcutta.main ev --input {args.output} --output ev.json")
    return 0


def run_ev(args):
    """Compute bracket-aware EV for every team."""
    print(f"Loading ratings from {args.input}...")
    bracket = DataLoader.load_bracket(args.input, year=args.year)
    defaults = bracket.default_rating_count()
    print(f"Loaded {len(bracket.teams)} teams ({defaults} with default ratings)")

    coefficients = load_model_coefficients(args.model)
    config = PropagationConfig(
        decay_base=args.decay_base,
        elite_opponent_rating=args.elite_rating,
        normalize=args.normalize,
        parallel_workers=args.workers,
    )

    if args.calibrate_decay:
        base = calibrate_decay_base(bracket, coefficients, config)
        print(f"Calibrated decay base: {base:.4f}")
        config = replace(config, decay_base=base)

    result = compute_bracket_ev(bracket, coefficients, config)

    print(f"\n{'='*60}")
    title = f"CALCUTTA EV - {bracket.year}" if bracket.year else "CALCUTTA EV"
    print(f"{title} ({coefficients.source.upper()} MODEL)")
    print(f"{'='*60}\n")

    df = result.to_frame()
    print(f"{'Team':<24}{'Region':<10}{'Seed':>5}{'Rating':>8}{'EV %':>8}{'vs naive':>10}")
    for _, row in df.head(args.top).iterrows():
        print(
            f"{row['team']:<24}{row['region']:<10}{row['seed']:>5}{row['rating']:>8.3f}"
            f"{row['ev_pct']:>8.2f}{row['ev_vs_naive'] * 100:>+10.2f}"
        )

    check = result.validation
    status = "OK" if check.within_tolerance else "OUTSIDE TOLERANCE"
    print(f"\nTotal EV: {check.total:.2%} (expected {check.expected:.2%}, {status})")
    if result.metadata.get("normalized"):
        print(f"EVs normalised by x{result.metadata['normalization_scale']:.4f}")

    buckets = matchup_bucket_evs(result)
    if args.output:
        payload = result.to_dict()
        payload["matchup_buckets"] = buckets.to_dict(orient="records")
        DataLoader.save_json(payload, args.output)
        print(f"\nSaved EVs to {args.output}")
    if args.csv:
        df.to_csv(args.csv, index=False)
        print(f"Saved EV table to {args.csv}")
    print("✓ Done!")
    return 0


def run_fit(args):
    """Fit win-probability coefficients on historical games."""
    print(f"Loading games from {args.games}...")
    games = DataLoader.load_games(args.games)
    result = fit_win_probability_model(games)

    coeffs = result.coefficients
    print(f"Fitted on {result.n_games} games: intercept={coeffs.intercept:.4f}, coefficient={coeffs.slope:.4f}")
    print(f"\n{'Metric':<14}{'Fitted':>10}{'Theoretical':>13}")
    for metric in ("brier_score", "log_loss", "accuracy"):
        print(
            f"{metric:<14}{result.metrics['fitted'][metric]:>10.4f}"
            f"{result.metrics['theoretical'][metric]:>13.4f}"
        )

    save_coefficients(result, args.output)
    print(f"\nSaved coefficients to {args.output}")
    if args.calibration_output:
        result.calibration.to_csv(args.calibration_output, index=False)
        print(f"Saved calibration table to {args.calibration_output}")
    print("✓ Done!")
    return 0


def run_backtest(args):
    """Backtest model EV against realised payouts."""
    print(f"Loading results from {args.results}...")
    results = DataLoader.load_results(args.results)
    coefficients = load_model_coefficients(args.model)
    config = PropagationConfig(decay_base=args.decay_base)
    report = backtest(results, coefficients, config)

    print(f"\n{'Year':<6}{'Teams':>6}{'MSE model':>12}{'MSE naive':>12}")
    for _, row in report.by_year.iterrows():
        print(f"{int(row['year']):<6}{int(row['n_teams']):>6}{row['mse_model']:>12.6f}{row['mse_naive']:>12.6f}")

    reduction = report.overall["improvement"]["mse_reduction_pct"]
    print(f"\nOverall MSE: model {report.overall['model']['mse']:.6f}, naive {report.overall['naive']['mse']:.6f}")
    if reduction is not None:
        print(f"MSE reduction vs naive: {reduction:.1f}%")

    if args.output:
        DataLoader.save_json(report.to_dict(), args.output)
        print(f"Saved backtest report to {args.output}")
    return 0


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="NCAA Calcutta EV - Bracket-aware expected value for auction slots"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Sample command
    sample_parser = subparsers.add_parser("sample", help="Create a sample 64-team ratings file")
    sample_parser.add_argument(
        "--output", "-o",
        default="sample_ratings.csv",
        help="Output file for sample data, .csv or .json (default: sample_ratings.csv)"
    )
    sample_parser.add_argument("--year", type=int, default=2025, help="Year column value (default: 2025)")

    # EV command
    ev_parser = subparsers.add_parser("ev", help="Compute EV for every team in the bracket")
    ev_parser.add_argument("--input", "-i", required=True, help="Ratings CSV/JSON (year, region, seed, team, rating)")
    ev_parser.add_argument("--year", type=int, default=None, help="Year to select from a multi-year table")
    ev_parser.add_argument("--model", "-m", default=None, help="Fitted coefficients JSON (default: theoretical)")
    ev_parser.add_argument("--decay-base", type=float, default=0.70, help="Seed decay for Elite 8 weights (default: 0.70)")
    ev_parser.add_argument("--elite-rating", type=float, default=0.94, help="Rating of assumed F4/final opponents (default: 0.94)")
    ev_parser.add_argument("--normalize", action="store_true", help="Rescale EVs so the total is exactly the pool")
    ev_parser.add_argument("--calibrate-decay", action="store_true", help="Fit the decay base to conserve the pool")
    ev_parser.add_argument("--workers", type=int, default=1, help="Processes used to score regions (default: 1)")
    ev_parser.add_argument("--top", type=int, default=16, help="Rows to print (default: 16)")
    ev_parser.add_argument("--output", "-o", default="ev.json", help="Output JSON (default: ev.json)")
    ev_parser.add_argument("--csv", default=None, help="Optional CSV of per-team EVs")

    # Fit command
    fit_parser = subparsers.add_parser("fit", help="Fit win-probability coefficients from historical games")
    fit_parser.add_argument("--games", required=True, help="Games CSV/JSON (team_a, barthag_a, barthag_b, winner)")
    fit_parser.add_argument("--output", "-o", default="fitted_model_coefficients.json", help="Output coefficients JSON")
    fit_parser.add_argument("--calibration-output", default=None, help="Optional calibration table CSV")

    # Backtest command
    backtest_parser = subparsers.add_parser("backtest", help="Compare model and naive EV with realised payouts")
    backtest_parser.add_argument("--results", required=True, help="Results CSV/JSON (year, region, seed, team, rating, wins)")
    backtest_parser.add_argument("--model", "-m", default=None, help="Fitted coefficients JSON (default: theoretical)")
    backtest_parser.add_argument("--decay-base", type=float, default=0.70, help="Seed decay for Elite 8 weights (default: 0.70)")
    backtest_parser.add_argument("--output", "-o", default=None, help="Optional report JSON")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "sample": create_sample,
        "ev": run_ev,
        "fit": run_fit,
        "backtest": run_backtest,
    }
    if args.command not in commands:
        parser.print_help()
        return 1

    try:
        return commands[args.command](args)
    except (ValueError, FileNotFoundError) as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
