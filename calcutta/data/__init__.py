"""Input tables and output files."""

from .loader import DataLoader, DataRequirementError

__all__ = ["DataLoader", "DataRequirementError"]
