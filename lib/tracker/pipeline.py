"""
Batch orchestration: score -> validate -> dedup -> add -> archive, one song at a time.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Set

from lib.tracker.config import TrackerSettings
from lib.tracker.dedup import CatalogDuplicateSet, RecentArchiveCache
from lib.tracker.errors import ConsecutiveDuplicatesError
from lib.tracker.ledger import ArchiveLedger
from lib.tracker.matcher import rank_candidates
from lib.tracker.models import (
    ArchiveEntry,
    ArchiveStatus,
    CatalogTrack,
    MatchResult,
    ProcessingStats,
    ScrapedSong,
)
from lib.tracker.validator import explain_match, is_acceptable

logger = logging.getLogger(__name__)


class CatalogSearch(Protocol):
    def search(self, song: ScrapedSong) -> List[CatalogTrack]: ...


class PlaylistStore(Protocol):
    def get_track_ids(self, playlist_id: str) -> Set[str]: ...

    def add_track(self, playlist_id: str, track: CatalogTrack) -> None: ...


class TrackerPipeline:
    def __init__(
        self,
        search: CatalogSearch,
        playlist: PlaylistStore,
        ledger: ArchiveLedger,
        recent: RecentArchiveCache,
        settings: Optional[TrackerSettings] = None,
        catalog_ids: Optional[CatalogDuplicateSet] = None,
    ):
        self.search = search
        self.playlist = playlist
        self.ledger = ledger
        self.recent = recent
        self.settings = settings or TrackerSettings()
        self.catalog_ids = catalog_ids or CatalogDuplicateSet()
        self.stats = ProcessingStats()

    def process_batch(self, songs: Iterable[ScrapedSong], playlist_id: str) -> ProcessingStats:
        """
        Process a scraped batch against one destination playlist.

        Stops early (without raising) after too many consecutive catalog
        duplicates; stats.stopped_early tells the caller.
        """
        songs = list(songs)
        self.stats = ProcessingStats()
        logger.info(f"[pipeline] processing {len(songs)} songs into playlist {playlist_id}")

        try:
            self.catalog_ids.load(self.playlist.get_track_ids(playlist_id))
        except Exception as e:
            logger.warning(f"[pipeline] failed to load playlist snapshot, duplicates may slip through: {e}")

        for song in songs:
            try:
                self.process_song(song, playlist_id)
            except ConsecutiveDuplicatesError as e:
                logger.info(f"[pipeline] stopping batch: {e}")
                self.stats.processed += 1
                self.stats.stopped_early = True
                break
            except Exception as e:
                logger.warning(f"[pipeline] failed to process {song.display()}, continuing: {e}")
                self.stats.failed += 1
                self.stats.consecutive_duplicates = 0
            self.stats.processed += 1

        s = self.stats
        logger.info(
            f"[pipeline] done processed={s.processed} successful={s.successful} failed={s.failed} "
            f"duplicates={s.duplicates} skipped_recent={s.skipped_recent} success_rate={s.success_rate}"
        )
        return self.stats

    def process_song(self, song: ScrapedSong, playlist_id: str) -> ArchiveStatus | None:
        """
        Returns:
            the archived status, or None when skipped as recently archived

        Raises:
            ConsecutiveDuplicatesError: the duplicate streak reached the limit
        """
        if self.recent.is_recently_archived(song, now=song.scraped_at):
            logger.debug(f"[pipeline] recently archived, skipping: {song.display()}")
            self.stats.skipped_recent += 1
            return None

        logger.info(f"[pipeline] processing: {song.display()}")
        ranked = rank_candidates(song, self.search.search(song))
        top = ranked[0] if ranked else None
        threshold = self.settings.confidence_threshold

        if top is None or top.confidence <= threshold:
            logger.warning(f"[pipeline] no confident match for: {song.display()}")
            return self._fail(song, ArchiveStatus.NOT_FOUND, top)

        if not is_acceptable(song, top.track, top.confidence, threshold):
            logger.warning(
                f"[pipeline] match quality too low for {song.display()}: "
                f"{top.track.primary_artist} - {top.track.name} "
                f"({explain_match(song, top.track, top.confidence)})"
            )
            return self._fail(song, ArchiveStatus.LOW_CONFIDENCE, top)

        logger.info(
            f"[pipeline] found match: {', '.join(top.track.artist_names)} - {top.track.name} "
            f"({explain_match(song, top.track, top.confidence)})"
        )

        if self.catalog_ids.is_duplicate(top.track.id):
            self.stats.duplicates += 1
            self.stats.consecutive_duplicates += 1
            limit = self.settings.consecutive_duplicate_limit
            logger.info(
                f"[pipeline] already in playlist "
                f"({self.stats.consecutive_duplicates}/{limit} consecutive duplicates)"
            )
            self._archive(song, ArchiveStatus.DUPLICATE, top)
            if self.stats.consecutive_duplicates >= limit:
                raise ConsecutiveDuplicatesError(self.stats.consecutive_duplicates)
            return ArchiveStatus.DUPLICATE

        if self.settings.dry_run:
            logger.info(f"[pipeline] [DRY RUN] would add to playlist: {top.track.name}")
        else:
            try:
                self.playlist.add_track(playlist_id, top.track)
            except Exception as e:
                self._archive(song, ArchiveStatus.FOUND, top, error=str(e))
                raise
            logger.info(f"[pipeline] added to playlist: {top.track.name}")

        self.catalog_ids.mark_added(top.track.id)
        self.stats.successful += 1
        self.stats.consecutive_duplicates = 0
        self._archive(song, ArchiveStatus.FOUND, top)
        return ArchiveStatus.FOUND

    def _fail(self, song: ScrapedSong, status: ArchiveStatus, match: Optional[MatchResult]) -> ArchiveStatus:
        self.stats.failed += 1
        self.stats.consecutive_duplicates = 0
        self._archive(song, status, match)
        return status

    def _archive(
        self,
        song: ScrapedSong,
        status: ArchiveStatus,
        match: Optional[MatchResult],
        error: Optional[str] = None,
    ) -> None:
        entry = ArchiveEntry(song=song, status=status, match=match, error=error)
        self.ledger.archive(entry)
        self.recent.record_archived(song, now=song.scraped_at)
