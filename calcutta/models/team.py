"""Team slot model for Calcutta EV estimation."""

import math
from dataclasses import dataclass

RATING_SOURCES = ("observed", "default")


@dataclass(frozen=True)
class TeamSlot:
    """A (region, seed) slot in the bracket and the team's rating."""

    name: str
    seed: int
    region: str
    rating: float
    rating_source: str = "observed"

    def __post_init__(self):
        """Validate slot data."""
        if not 1 <= self.seed <= 16:
            raise ValueError(f"Seed must be between 1 and 16, got {self.seed}")

        if not self.region:
            raise ValueError("Region name must not be empty")

        if self.rating_source not in RATING_SOURCES:
            raise ValueError(f"Invalid rating source: {self.rating_source}")

        if not math.isfinite(self.rating):
            raise ValueError(f"Rating for {self.name} must be finite, got {self.rating}")

    @property
    def is_default_rating(self) -> bool:
        return self.rating_source == "default"

    def to_dict(self) -> dict:
        """Convert slot to dictionary."""
        return {
            "name": self.name,
            "seed": self.seed,
            "region": self.region,
            "rating": self.rating,
            "rating_source": self.rating_source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TeamSlot":
        """Create slot from dictionary."""
        return cls(
            name=data["name"],
            seed=int(data["seed"]),
            region=data["region"],
            rating=float(data["rating"]),
            rating_source=data.get("rating_source", "observed"),
        )
