"""Bracket data model."""

from .bracket import Bracket, Region
from .team import TeamSlot

__all__ = ["Bracket", "Region", "TeamSlot"]
