"""
Error taxonomy for the ingestion pipeline.

Orchestrators collect these into their result instead of raising them past
the run boundary.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for all ingestion errors."""

    def __init__(self, message: str, source: Optional[str] = None, record_id: Optional[str] = None):
        self.source = source
        self.record_id = record_id
        super().__init__(message)


class FetchError(IngestionError):
    """A source was unreachable or returned a malformed feed."""


class ValidationError(IngestionError):
    """A record is missing its natural key or carries a malformed field."""


class UpstreamError(IngestionError):
    """The summarization collaborator failed."""


class StoreError(IngestionError):
    """A write to the store failed (constraint violation, bad data, ...)."""


class StoreUnavailableError(StoreError):
    """The store itself is unreachable. Aborts the remaining run."""
