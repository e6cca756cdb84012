"""
Duplicate suppression, two independent layers:

  - CatalogDuplicateSet: track IDs already in the destination playlist
    (snapshot loaded once per batch, updated as tracks are added)
  - RecentArchiveCache: artist|title|album -> last archived epoch millis,
    windowed and persisted so a restart does not re-archive what was just seen
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from lib.tracker.errors import ArchivePersistenceError
from lib.tracker.models import ScrapedSong
from lib.tracker.storage import write_text_atomic

logger = logging.getLogger(__name__)


class CatalogDuplicateSet:
    """Membership queries only; the early-stop policy belongs to the caller."""

    def __init__(self, track_ids: Iterable[str] = ()):
        self._ids = set(track_ids)
        self.loaded = bool(self._ids)

    def load(self, track_ids: Iterable[str]) -> None:
        """Replace the snapshot with the destination's current contents."""
        self._ids = set(track_ids)
        self.loaded = True
        logger.info(f"[dedup] cached {len(self._ids)} destination track ids")

    def is_duplicate(self, track_id: str) -> bool:
        return track_id in self._ids

    def mark_added(self, track_id: str) -> None:
        self._ids.add(track_id)

    def __len__(self) -> int:
        return len(self._ids)


class RecentEntriesFile(BaseModel):
    """On-disk shape of the recent-entries cache."""
    entries: List[Tuple[str, int]] = []


def song_identity_key(song: ScrapedSong) -> str:
    """artist|title[|album], raw text, no timestamp."""
    parts = [song.artist, song.title]
    if song.album:
        parts.append(song.album)
    return "|".join(parts)


def _epoch_ms(now: Optional[datetime]) -> int:
    return int((now or datetime.now()).timestamp() * 1000)


class RecentArchiveCache:
    def __init__(self, path: str | Path, window_minutes: int = 5):
        self.path = Path(path)
        self.window_ms = window_minutes * 60_000
        self._entries: Dict[str, int] = {}
        self.loaded = False

    def load(self, now: Optional[datetime] = None) -> int:
        """
        Rehydrate from disk. Missing or corrupt files degrade to an empty cache.

        Returns:
            number of entries kept after pruning
        """
        self._entries = {}
        if self.path.exists():
            try:
                data = RecentEntriesFile.model_validate_json(self.path.read_text(encoding="utf-8"))
                self._entries = dict(data.entries)
            except (OSError, UnicodeDecodeError, ValidationError) as e:
                logger.warning(f"[dedup] ignoring unreadable recent-entries file {self.path}: {e}")
                self._entries = {}

        self.loaded = True
        self._prune(_epoch_ms(now))
        logger.debug(f"[dedup] loaded {len(self._entries)} recent entries from {self.path}")
        return len(self._entries)

    def _ensure_loaded(self, now: Optional[datetime]) -> None:
        # the first query or write sees what an earlier process persisted
        if not self.loaded:
            self.load(now)

    def _prune(self, now_ms: int) -> None:
        self._entries = {
            key: ts for key, ts in self._entries.items() if now_ms - ts < self.window_ms
        }

    def is_recently_archived(self, song: ScrapedSong, now: Optional[datetime] = None) -> bool:
        self._ensure_loaded(now)
        last_seen = self._entries.get(song_identity_key(song))
        if last_seen is None:
            return False
        return _epoch_ms(now) - last_seen < self.window_ms

    def record_archived(self, song: ScrapedSong, now: Optional[datetime] = None) -> None:
        """Remember the song, prune stale entries and persist (best effort)."""
        self._ensure_loaded(now)
        now_ms = _epoch_ms(now)
        self._entries[song_identity_key(song)] = now_ms
        self._prune(now_ms)
        self._save()

    def _save(self) -> None:
        payload = RecentEntriesFile(entries=sorted(self._entries.items(), key=lambda kv: kv[1]))
        try:
            write_text_atomic(self.path, payload.model_dump_json())
        except ArchivePersistenceError as e:
            logger.error(f"[dedup] recent entries not saved: {e}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
