"""Endurance race strategy engine."""

__version__ = "0.1.0"
