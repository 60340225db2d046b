"""Region and bracket models for the 64-team tournament."""

from typing import Dict, Iterator, List, Optional

from .team import TeamSlot

SEEDS_PER_REGION = 16
NUM_REGIONS = 4


class Region:
    """One 16-team region: seeds 1-16 exactly once."""

    def __init__(self, name: str, slots: List[TeamSlot]):
        """
        Initialize region.

        Args:
            name: Region name, e.g. "East"
            slots: The region's 16 team slots
        """
        self.name = name
        self.slots: Dict[int, TeamSlot] = {}
        for slot in slots:
            if slot.region != name:
                raise ValueError(f"{slot.name} belongs to {slot.region}, not {name}")
            if slot.seed in self.slots:
                raise ValueError(f"Region {name} has duplicate seed {slot.seed}")
            self.slots[slot.seed] = slot
        self._validate_seeds()

    def _validate_seeds(self):
        """Validate that seeds partition 1-16."""
        expected = set(range(1, SEEDS_PER_REGION + 1))
        missing = expected - set(self.slots)
        if missing:
            raise ValueError(f"Region {self.name} missing seeds: {sorted(missing)}")

    def __iter__(self) -> Iterator[TeamSlot]:
        return (self.slots[s] for s in sorted(self.slots))

    def __len__(self) -> int:
        return len(self.slots)

    def slot(self, seed: int) -> TeamSlot:
        return self.slots[seed]

    def ratings(self) -> Dict[int, float]:
        """Seed -> rating map consumed by the EV engine."""
        return {seed: slot.rating for seed, slot in self.slots.items()}

    def default_rating_seeds(self) -> List[int]:
        return sorted(s for s, slot in self.slots.items() if slot.is_default_rating)

    def to_dict(self) -> dict:
        return {"name": self.name, "teams": [slot.to_dict() for slot in self]}


class Bracket:
    """Represents the 64-team tournament field as four regions."""

    def __init__(self, regions: List[Region], year: Optional[int] = None):
        """
        Initialize bracket with regions.

        Args:
            regions: The four regions
            year: Tournament year, if known
        """
        self.year = year
        self.regions: Dict[str, Region] = {}
        for region in regions:
            if region.name in self.regions:
                raise ValueError(f"Duplicate region: {region.name}")
            self.regions[region.name] = region
        self._validate_regions()

    def _validate_regions(self):
        """Validate that we have exactly four regions."""
        if len(self.regions) != NUM_REGIONS:
            raise ValueError(f"Expected {NUM_REGIONS} regions, got {len(self.regions)}")

    def __iter__(self) -> Iterator[Region]:
        return iter(self.regions.values())

    @property
    def teams(self) -> List[TeamSlot]:
        return [slot for region in self for slot in region]

    def get_region(self, name: str) -> Region:
        return self.regions[name]

    def default_rating_count(self) -> int:
        return sum(len(region.default_rating_seeds()) for region in self)

    def to_dict(self) -> dict:
        """Convert bracket to dictionary."""
        return {
            "year": self.year,
            "regions": [region.to_dict() for region in self],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bracket":
        """Create bracket from dictionary."""
        regions = []
        for region_data in data["regions"]:
            slots = [TeamSlot.from_dict(t) for t in region_data["teams"]]
            regions.append(Region(region_data["name"], slots))
        return cls(regions, year=data.get("year"))
