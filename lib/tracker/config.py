"""
Environment configuration (.env is loaded once at import).
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from lib.tracker.errors import ConfigurationError

load_dotenv()

DEFAULT_ARCHIVE_BASE_PATH = "archives"
DEFAULT_DEDUP_WINDOW_MINUTES = 5
DEFAULT_CONFIDENCE_THRESHOLD = 70.0
DEFAULT_CONSECUTIVE_DUPLICATE_LIMIT = 5
RECENT_CACHE_FILENAME = ".recent-entries.json"

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", meta={"name": name})
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}", meta={"name": name})
    return value


@dataclass(frozen=True)
class TrackerSettings:
    archive_enabled: bool = True
    archive_base_path: Path = Path(DEFAULT_ARCHIVE_BASE_PATH)
    recent_cache_path: Path = Path(DEFAULT_ARCHIVE_BASE_PATH) / RECENT_CACHE_FILENAME
    dedup_window_minutes: int = DEFAULT_DEDUP_WINDOW_MINUTES
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    consecutive_duplicate_limit: int = DEFAULT_CONSECUTIVE_DUPLICATE_LIMIT
    dry_run: bool = False
    spotify_market: Optional[str] = None

    @classmethod
    def from_env(cls) -> "TrackerSettings":
        """
        Read settings from the environment.

        Raises:
            ConfigurationError: a numeric variable is not a non-negative number
        """
        base = Path(os.getenv("ARCHIVE_BASE_PATH", "").strip() or DEFAULT_ARCHIVE_BASE_PATH)
        recent = os.getenv("RECENT_CACHE_PATH", "").strip()
        market = os.getenv("SPOTIFY_MARKET", "").strip()
        return cls(
            archive_enabled=_env_bool("ARCHIVE_ENABLED", True),
            archive_base_path=base,
            recent_cache_path=Path(recent) if recent else base / RECENT_CACHE_FILENAME,
            dedup_window_minutes=_env_number("DEDUP_WINDOW_MINUTES", DEFAULT_DEDUP_WINDOW_MINUTES, int),
            confidence_threshold=_env_number("MATCH_CONFIDENCE_THRESHOLD", DEFAULT_CONFIDENCE_THRESHOLD, float),
            consecutive_duplicate_limit=_env_number(
                "CONSECUTIVE_DUPLICATE_LIMIT", DEFAULT_CONSECUTIVE_DUPLICATE_LIMIT, int
            ),
            dry_run=_env_bool("DRY_RUN", False),
            spotify_market=market or None,
        )
