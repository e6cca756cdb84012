"""
Per-day archive ledger.

One markdown file per calendar day of ScrapedSong.scraped_at. The file is the
only source of truth: the per-day uniqueness keys, the sequence high-water mark
and the statistics are all rebuilt by re-reading it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Set

from cachetools import TTLCache

from lib.cache_manager import build_ledger_cache_key, new_ledger_cache
from lib.tracker.errors import ArchivePersistenceError
from lib.tracker.ledger_format import (
    ParsedLedger,
    ParsedRow,
    append_row,
    day_file_path,
    entry_unique_key,
    parse_ledger,
    parse_table_row,
    render_row,
    render_template,
    replace_stats_block,
)
from lib.tracker.models import ArchiveEntry, DailyStats
from lib.tracker.storage import write_text_atomic

logger = logging.getLogger(__name__)


class LedgerPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    APPENDING = "appending"


@dataclass
class LedgerState:
    """What a day file says, reconstructed from its rows."""
    day: date
    path: Path
    exists: bool = False
    rows: List[ParsedRow] = field(default_factory=list)
    keys: Set[str] = field(default_factory=set)
    last_sequence: int = 0
    stored_stats: Optional[DailyStats] = None
    malformed: int = 0

    @property
    def stats(self) -> DailyStats:
        return DailyStats.replay(r.status for r in self.rows)

    @property
    def stats_consistent(self) -> bool:
        return self.stored_stats == self.stats


class ArchiveLedger:
    """
    Best-effort archive: archive() never raises, I/O errors are logged.

    Single owner per day file; writes are whole-file and atomic.
    """

    def __init__(
        self,
        base_path: str | Path,
        enabled: bool = True,
        clock: Callable[[], datetime] = datetime.now,
        parse_cache: Optional[TTLCache] = None,
    ):
        self.base_path = Path(base_path)
        self.enabled = enabled
        self.clock = clock
        self.phase = LedgerPhase.UNINITIALIZED
        self._state: Optional[LedgerState] = None
        self.parse_cache = parse_cache if parse_cache is not None else new_ledger_cache()

    @property
    def state(self) -> Optional[LedgerState]:
        return self._state

    def path_for(self, day: date) -> Path:
        return day_file_path(self.base_path, day)

    def _parse_cached(self, text: str) -> ParsedLedger:
        key = build_ledger_cache_key(text)
        parsed = self.parse_cache.get(key)
        if parsed is None:
            parsed = parse_ledger(text)
            self.parse_cache[key] = parsed
        return parsed

    def load(self, day: date) -> LedgerState:
        """
        Rebuild a day's state from its file. The current state is left as is.

        Raises:
            ArchivePersistenceError: the file exists but cannot be read
        """
        path = self.path_for(day)
        state = LedgerState(day=day, path=path)
        if not path.exists():
            return state

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ArchivePersistenceError(f"Could not read archive file {path}: {e}") from e

        parsed = self._parse_cached(text)
        for err in parsed.malformed:
            logger.warning(f"[ledger] skipping malformed row in {path.name}: {err}")

        state.exists = True
        state.stored_stats = parsed.stored_stats
        state.last_sequence = parsed.max_sequence
        state.malformed = len(parsed.malformed)
        for row in parsed.rows:
            key = row.unique_key(day)
            if key in state.keys:
                logger.warning(f"[ledger] repeated entry on line {row.line_no} of {path.name} ignored")
                continue
            state.keys.add(key)
            state.rows.append(row)

        logger.debug(f"[ledger] loaded {len(state.rows)} existing entries for {day.isoformat()}")
        return state

    def _ensure_day(self, day: date) -> LedgerState:
        if self._state is not None and self._state.day == day:
            return self._state
        if self._state is not None:
            logger.info(f"[ledger] day rollover {self._state.day.isoformat()} -> {day.isoformat()}")
        self._state = None
        self.phase = LedgerPhase.UNINITIALIZED
        self._state = self.load(day)
        self.phase = LedgerPhase.LOADED
        return self._state

    def archive(self, entry: ArchiveEntry) -> bool:
        """
        Append one row for the entry.

        Returns:
            True when a row was written; False when disabled, already recorded
            for the same minute, or the write failed.
        """
        if not self.enabled:
            return False

        song = entry.song
        try:
            state = self._ensure_day(song.scraped_at.date())
        except ArchivePersistenceError as e:
            logger.error(f"[ledger] failed to archive {song.display()}: {e}")
            return False

        key = entry_unique_key(entry)
        if key in state.keys:
            logger.debug(f"[ledger] already archived today: {song.display()}")
            return False

        sequence = state.last_sequence + 1
        row_line = render_row(entry, sequence)
        stats = DailyStats.replay([*(r.status for r in state.rows), entry.status])

        try:
            if state.path.exists():
                text = state.path.read_text(encoding="utf-8")
            else:
                text = render_template(state.day, self.clock())
            text = append_row(text, row_line)
            text = replace_stats_block(text, stats)
            write_text_atomic(state.path, text)
        except (OSError, UnicodeDecodeError) as e:
            # counted as handled for this run, just not durable
            state.keys.add(key)
            logger.exception(f"[ledger] failed to archive {song.display()}: {e}")
            return False

        state.exists = True
        state.keys.add(key)
        state.last_sequence = sequence
        state.rows.append(parse_table_row(row_line, line_no=0))
        state.stored_stats = stats
        self.phase = LedgerPhase.APPENDING
        logger.debug(f"[ledger] archived {song.display()} as {entry.status.value}")
        return True

    def repair_stats(self, day: date) -> bool:
        """
        Rewrite the stored statistics block if it disagrees with the rows.

        Returns:
            True when the file was rewritten
        """
        try:
            state = self.load(day)
            if not state.exists or state.stats_consistent:
                return False
            text = state.path.read_text(encoding="utf-8")
            write_text_atomic(state.path, replace_stats_block(text, state.stats))
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"[ledger] could not repair stats for {day.isoformat()}: {e}")
            return False

        logger.warning(
            f"[ledger] stats block for {day.isoformat()} rewritten: "
            f"stored={state.stored_stats} replayed={state.stats}"
        )
        if self._state is not None and self._state.day == day:
            self._state = self.load(day)
        return True
