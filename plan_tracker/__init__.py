"""Self-hosted workout plan tracker: plan file ingestion, progress and streaks."""

__version__ = '0.1.0'
