"""
Data models shared by the matcher, dedup layers and the archive ledger.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class ArchiveStatus(str, Enum):
    """
    Outcome recorded for each processed record.
    """
    FOUND = "found"                     # accepted and added (or already added this run)
    LOW_CONFIDENCE = "low_confidence"   # best candidate rejected by the validator
    NOT_FOUND = "not_found"             # no candidate cleared the threshold
    DUPLICATE = "duplicate"             # already in the destination playlist


@dataclass(frozen=True)
class ScrapedSong:
    """One artist/title/album observation from the station's playlist page."""
    artist: str
    title: str
    album: Optional[str]
    scraped_at: datetime

    def display(self) -> str:
        return f"{self.artist} - {self.title}"


@dataclass(frozen=True)
class CatalogArtist:
    id: str
    name: str


@dataclass(frozen=True)
class CatalogTrack:
    """A catalog search candidate."""
    id: str
    name: str
    artists: Tuple[CatalogArtist, ...]
    external_url: str
    uri: str = ""

    @property
    def artist_names(self) -> List[str]:
        return [a.name for a in self.artists]

    @property
    def primary_artist(self) -> str:
        return self.artists[0].name if self.artists else ""

    @classmethod
    def from_spotify(cls, item: dict) -> "CatalogTrack":
        """Build from a Spotify Web API track object."""
        artists = tuple(
            CatalogArtist(id=a.get("id") or "", name=a.get("name") or "")
            for a in (item.get("artists") or [])
        )
        return cls(
            id=item.get("id") or "",
            name=item.get("name") or "",
            artists=artists,
            external_url=(item.get("external_urls") or {}).get("spotify") or "",
            uri=item.get("uri") or "",
        )


@dataclass(frozen=True)
class MatchResult:
    track: CatalogTrack
    confidence: float   # 0-100, comparable only within one song's candidate set


@dataclass(frozen=True)
class ArchiveEntry:
    song: ScrapedSong
    status: ArchiveStatus
    match: Optional[MatchResult] = None
    error: Optional[str] = None
    archived_at: datetime = field(default_factory=datetime.now)


@dataclass
class DailyStats:
    """Per-day tally; always recomputable by replaying the day's rows."""
    total: int = 0
    found: int = 0
    not_found: int = 0
    low_confidence: int = 0
    duplicates: int = 0

    def add(self, status: ArchiveStatus | str) -> None:
        status = ArchiveStatus(status)
        self.total += 1
        if status is ArchiveStatus.FOUND:
            self.found += 1
        elif status is ArchiveStatus.NOT_FOUND:
            self.not_found += 1
        elif status is ArchiveStatus.LOW_CONFIDENCE:
            self.low_confidence += 1
        elif status is ArchiveStatus.DUPLICATE:
            self.duplicates += 1

    @classmethod
    def replay(cls, statuses) -> "DailyStats":
        stats = cls()
        for status in statuses:
            stats.add(status)
        return stats


@dataclass
class ProcessingStats:
    """Per-batch counters kept by the pipeline."""
    processed: int = 0
    successful: int = 0
    failed: int = 0
    duplicates: int = 0
    consecutive_duplicates: int = 0
    skipped_recent: int = 0
    stopped_early: bool = False

    @property
    def success_rate(self) -> str:
        if not self.processed:
            return "0%"
        return f"{self.successful / self.processed * 100:.1f}%"
