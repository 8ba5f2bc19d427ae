"""Matchday team engine: roster, lineup, substitution, minutes and voting logic."""

__version__ = "1.0.0"
