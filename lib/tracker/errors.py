"""
Error kinds raised inside the tracker core.

Only ConfigurationError ever reaches the host; everything else is caught by the
component that owns the failing resource, or is a control signal.
"""
from __future__ import annotations


class TrackerError(Exception):
    """Base error carrying optional diagnostic meta."""

    def __init__(self, message: str, meta: dict | None = None):
        super().__init__(message)
        self.meta = meta or {}


class ConfigurationError(TrackerError):
    pass


class MalformedArchiveRowError(TrackerError, ValueError):
    """An existing ledger row could not be parsed."""

    def __init__(self, message: str, line_no: int | None = None):
        super().__init__(message, meta={"line_no": line_no})
        self.line_no = line_no


class ArchivePersistenceError(TrackerError, OSError):
    """Writing a ledger or recent-entries file failed."""


class ConsecutiveDuplicatesError(TrackerError):
    """Control signal: the destination playlist already looks up to date."""

    def __init__(self, count: int):
        super().__init__(
            f"{count} consecutive duplicates found - playlist appears up to date",
            meta={"count": count},
        )
        self.count = count


class SpotifyAPIError(TrackerError):
    """A catalog or playlist call failed."""
