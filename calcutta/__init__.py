"""Bracket-aware expected-value engine for NCAA tournament Calcutta auctions."""

__version__ = "0.1.0"
