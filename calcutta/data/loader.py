"""Data loader for ratings, historical games and tournament results."""

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd

from ..engine.topology import DEFAULT_RATINGS_BY_SEED, SEEDS
from ..models.bracket import NUM_REGIONS, Bracket, Region
from ..models.team import TeamSlot

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

RATING_COLUMN_ALIASES = {"barthag": "rating", "name": "team"}
RATINGS_COLUMNS = ("region", "seed", "rating")
GAMES_COLUMNS = ("team_a", "barthag_a", "barthag_b", "winner")
RESULTS_COLUMNS = ("year", "region", "seed", "rating", "wins")

SAMPLE_REGIONS = ("East", "West", "South", "Midwest")


class DataRequirementError(ValueError):
    """Raised when an input table is missing required data."""


def _read_table(file_path: PathLike) -> pd.DataFrame:
    """Read a CSV file or a JSON list of records (optionally under a top-level key)."""
    path = Path(file_path)
    if path.suffix.lower() == ".json":
        with open(path, "r") as f:
            data = json.load(f)
        if isinstance(data, dict):
            records = next((v for v in data.values() if isinstance(v, list)), None)
            if records is None:
                raise DataRequirementError(f"{path} holds no list of records")
            data = records
        return pd.DataFrame(data)
    return pd.read_csv(path)


def _require_columns(df: pd.DataFrame, columns: Iterable[str], label: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataRequirementError(f"{label} is missing required columns: {missing}")


class DataLoader:
    """Loads and writes the tables the EV engine consumes."""

    @staticmethod
    def load_ratings_table(file_path: PathLike) -> pd.DataFrame:
        """
        Load a ratings table from CSV or JSON.

        Args:
            file_path: Path with columns year, region, seed, team, rating
                ("barthag" is accepted for rating, "name" for team)

        Returns:
            DataFrame with normalised column names
        """
        df = _read_table(file_path)
        df = df.rename(columns={k: v for k, v in RATING_COLUMN_ALIASES.items() if v not in df.columns})
        _require_columns(df, RATINGS_COLUMNS, f"Ratings table {file_path}")
        logger.info("Loaded %d rating rows from %s", len(df), file_path)
        return df

    @staticmethod
    def build_bracket(table: pd.DataFrame, year: Optional[int] = None) -> Bracket:
        """
        Build a 64-team bracket from a ratings table.

        Missing seeds and missing ratings fall back to the per-seed default
        rating and are flagged with ``rating_source="default"``.

        Args:
            table: Ratings table (see load_ratings_table)
            year: Tournament year to select when the table spans several

        Returns:
            Bracket with four complete regions
        """
        df = table
        if "year" in df.columns:
            years = sorted(int(y) for y in df["year"].dropna().unique())
            if year is None:
                if len(years) > 1:
                    raise DataRequirementError(
                        f"Ratings table covers years {years}; pass a year to select one"
                    )
                year = years[0] if years else None
            else:
                df = df[df["year"] == year]
                if df.empty:
                    raise DataRequirementError(f"No ratings rows for year {year} (have {years})")

        region_names = list(dict.fromkeys(df["region"].dropna()))
        if len(region_names) != NUM_REGIONS:
            raise DataRequirementError(
                f"Expected {NUM_REGIONS} regions, found {len(region_names)}: {region_names}"
            )

        regions = []
        for region_name in region_names:
            rows = df[df["region"] == region_name]
            seeds = rows["seed"].astype(int).tolist()
            duplicated = sorted({s for s in seeds if seeds.count(s) > 1})
            if duplicated:
                raise DataRequirementError(f"Region {region_name} has duplicate seeds {duplicated}")
            bad = sorted(set(seeds) - set(SEEDS))
            if bad:
                raise DataRequirementError(f"Region {region_name} has invalid seeds {bad}")

            by_seed = {int(row["seed"]): row for _, row in rows.iterrows()}
            slots = []
            for seed in SEEDS:
                row = by_seed.get(seed)
                name = f"{region_name} {seed}"
                if row is not None and "team" in row.index and pd.notna(row["team"]):
                    name = str(row["team"])

                if row is None or pd.isna(row["rating"]):
                    rating = DEFAULT_RATINGS_BY_SEED[seed]
                    logger.warning(
                        "No rating for %s seed %d (%s); using seed default %.2f",
                        region_name, seed, name, rating,
                    )
                    slots.append(TeamSlot(name, seed, region_name, rating, rating_source="default"))
                else:
                    slots.append(TeamSlot(name, seed, region_name, float(row["rating"])))
            regions.append(Region(region_name, slots))

        return Bracket(regions, year=int(year) if year is not None else None)

    @staticmethod
    def load_bracket(file_path: PathLike, year: Optional[int] = None) -> Bracket:
        """Load a ratings table and build its bracket."""
        return DataLoader.build_bracket(DataLoader.load_ratings_table(file_path), year=year)

    @staticmethod
    def load_games(file_path: PathLike) -> pd.DataFrame:
        """
        Load historical tournament games for model fitting.

        Args:
            file_path: CSV/JSON with team_a, barthag_a, barthag_b, winner
                (team A is the better seed); year and round are optional

        Returns:
            DataFrame of games with both ratings present
        """
        df = _read_table(file_path)
        _require_columns(df, GAMES_COLUMNS, f"Games table {file_path}")
        complete = df.dropna(subset=["barthag_a", "barthag_b", "winner", "team_a"])
        dropped = len(df) - len(complete)
        if dropped:
            logger.warning("Dropped %d games without both ratings and a winner", dropped)
        logger.info("Loaded %d games from %s", len(complete), file_path)
        return complete.reset_index(drop=True)

    @staticmethod
    def load_results(file_path: PathLike) -> pd.DataFrame:
        """
        Load realised tournament results for backtesting.

        Args:
            file_path: CSV/JSON with year, region, seed, team, rating, wins

        Returns:
            DataFrame of results
        """
        df = _read_table(file_path)
        df = df.rename(columns={k: v for k, v in RATING_COLUMN_ALIASES.items() if v not in df.columns})
        _require_columns(df, RESULTS_COLUMNS, f"Results table {file_path}")
        wins = df["wins"].dropna()
        if ((wins < 0) | (wins > 6)).any():
            raise DataRequirementError("Results table has wins outside 0-6")
        logger.info("Loaded %d result rows from %s", len(df), file_path)
        return df

    @staticmethod
    def save_json(data: dict, file_path: PathLike) -> None:
        """
        Save a dictionary to a JSON file.

        Args:
            data: JSON-serialisable dictionary
            file_path: Output file path
        """
        with open(file_path, "w") as f:
            json.dump(data, f, indent=2, default=float)

    @staticmethod
    def create_sample_data(output_path: PathLike, year: int = 2025, seed: int = 2025) -> pd.DataFrame:
        """
        Create a sample 64-team ratings table.

        Ratings are the per-seed defaults with a small random perturbation.

        Args:
            output_path: Path to save sample data (.csv or .json)
            year: Year written into the table
            seed: Random seed

        Returns:
            The sample table
        """
        rng = np.random.default_rng(seed)
        rows = []
        for region in SAMPLE_REGIONS:
            for s in SEEDS:
                rating = DEFAULT_RATINGS_BY_SEED[s] + rng.normal(0.0, 0.02)
                rows.append({
                    "year": year,
                    "region": region,
                    "seed": s,
                    "team": f"{region} {s}",
                    "rating": round(float(np.clip(rating, 0.30, 0.99)), 4),
                })
        df = pd.DataFrame(rows)

        path = Path(output_path)
        if path.suffix.lower() == ".json":
            with open(path, "w") as f:
                json.dump({"teams": rows}, f, indent=2)
        else:
            df.to_csv(path, index=False)
        return df
