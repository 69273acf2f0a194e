"""Shared types, models, errors, config, and telemetry."""
