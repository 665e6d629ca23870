"""Telemetry ingestion for grid-mode races."""
