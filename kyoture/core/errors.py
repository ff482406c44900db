"""
Error taxonomy for the ingestion pipeline.

Every per-record failure raised by the normalizer, the text-analysis adapter,
the image cache or the persistence helpers is one of these. The orchestrator
turns them into skipped record outcomes; nothing here escapes a batch.
"""
from __future__ import annotations

from typing import Any


class IngestionError(Exception):
    """Base class for record-level ingestion failures."""


class ValidationError(IngestionError):
    """A required field is missing or malformed. The record is skipped, not retried."""

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = list(fields)
        super().__init__(message or f"invalid fields: {', '.join(self.fields)}")


class TransientIOError(IngestionError):
    """Network call failed in a way that may succeed on a later attempt."""


class MalformedResponseError(IngestionError):
    """Text-analysis output could not be decoded into the expected JSON shape."""

    def __init__(self, message: str, raw_response: str | None = None) -> None:
        self.raw_response = raw_response
        super().__init__(message)


class PersistenceConflictError(IngestionError):
    """A write hit a constraint violation; context holds the offending fields."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.context = dict(context or {})
        super().__init__(message)


class UnsupportedSourceError(IngestionError):
    def __init__(self, site: str) -> None:
        self.site = site
        super().__init__(f"Unsupported site: {site}")
