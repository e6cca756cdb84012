"""
Radio playlist tracking: match scraped songs to catalog tracks, suppress
duplicates and keep a per-day archive ledger.

Public API:
  - compute_confidence(song, candidate) -> float
  - best_match(song, candidates) -> MatchResult | None
  - is_acceptable(song, candidate, confidence) -> bool
  - ArchiveLedger(base_path).archive(entry) -> bool
  - RecentArchiveCache(path, window_minutes) / CatalogDuplicateSet
  - TrackerPipeline(...).process_batch(songs, playlist_id) -> ProcessingStats
"""
from lib.tracker.matcher import compute_confidence, best_match, rank_candidates
from lib.tracker.validator import is_acceptable, explain_match
from lib.tracker.dedup import CatalogDuplicateSet, RecentArchiveCache
from lib.tracker.ledger import ArchiveLedger, LedgerState
from lib.tracker.pipeline import TrackerPipeline
from lib.tracker.models import (
    ArchiveEntry,
    ArchiveStatus,
    CatalogArtist,
    CatalogTrack,
    DailyStats,
    MatchResult,
    ProcessingStats,
    ScrapedSong,
)

__all__ = [
    "compute_confidence",
    "best_match",
    "rank_candidates",
    "is_acceptable",
    "explain_match",
    "CatalogDuplicateSet",
    "RecentArchiveCache",
    "ArchiveLedger",
    "LedgerState",
    "TrackerPipeline",
    "ArchiveEntry",
    "ArchiveStatus",
    "CatalogArtist",
    "CatalogTrack",
    "DailyStats",
    "MatchResult",
    "ProcessingStats",
    "ScrapedSong",
]
