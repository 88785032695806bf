"""
Exception hierarchy for SeqHarvest.

Ingestion errors abort the current harvest cycle and are left to propagate;
query-path errors are mapped to responses by the web and CLI layers.
"""

from __future__ import annotations

from typing import Optional


class SeqHarvestError(Exception):
    """Base class for all SeqHarvest errors."""


class UpstreamUnavailable(SeqHarvestError):
    """The upstream query source could not be reached or returned an unusable page."""

    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        super().__init__(message)
        self.offset = offset


class MalformedRecord(SeqHarvestError):
    """A parsed record is missing a required field."""

    def __init__(self, field: str, position: int, detail: str = "") -> None:
        message = f"record {position} has missing or invalid field '{field}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.field = field
        self.position = position


class StoreError(SeqHarvestError):
    """Base class for key-value and file store failures."""


class StoreWriteFailed(StoreError):
    """A sequence file or dedup index write failed."""


class CursorReadFailed(StoreError):
    """The ingestion cursor could not be read or initialised."""


class CursorAdvanceFailed(StoreError):
    """The ingestion cursor could not be advanced."""


class ReconciliationLookupFailed(StoreError):
    """The dedup index was unreachable while expanding search hits."""


class SearchToolFailure(SeqHarvestError):
    """The external search tool failed, timed out or produced unreadable output."""

    def __init__(self, message: str, output: str = "", returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.output = output
        self.returncode = returncode
