"""
Exceptions raised by the ingestion pipeline.

Only structural failures and empty results reach the caller; malformed
elements are dropped inside the extractors.
"""


class HealthDigestError(Exception):
    """Base class for all ingestion failures."""


class ArchiveError(HealthDigestError):
    """The container could not be opened or holds no main document."""


class NoHealthDataError(HealthDigestError):
    """Ingestion completed but produced no usable records or workouts."""

    def __init__(self, message: str = "No health data found in file"):
        super().__init__(message)


class IngestionCancelled(HealthDigestError):
    """Remaining windows were dropped at the caller's request."""


class WorkerError(HealthDigestError):
    """The ingestion worker thread reported an error message."""
