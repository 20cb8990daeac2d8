"""HealthStats ingestion service - streams health exports into per-metric snapshots."""

__version__ = "1.0.0"
