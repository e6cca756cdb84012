"""
Secondary quality gates on top of the weighted confidence.

The title boosts can lift a weak-artist candidate over the threshold, so the
artist and title are re-checked here on raw (unboosted) similarity.
"""
from __future__ import annotations

from lib.tracker.matcher import DEFAULT_THRESHOLD, similarity
from lib.tracker.models import CatalogTrack, ScrapedSong
from lib.tracker.normalizer import normalize_for_search

MIN_ARTIST_SIMILARITY = 0.3
MIN_TITLE_SIMILARITY = 0.4


def is_acceptable(
    song: ScrapedSong,
    candidate: CatalogTrack,
    confidence: float,
    threshold: float = DEFAULT_THRESHOLD,
) -> bool:
    if confidence < threshold:
        return False
    if not candidate.artists:
        return False

    artist_sim = similarity(
        normalize_for_search(song.artist),
        normalize_for_search(candidate.primary_artist),
    )
    if artist_sim < MIN_ARTIST_SIMILARITY:
        return False

    title_sim = similarity(
        normalize_for_search(song.title),
        normalize_for_search(candidate.name),
    )
    return title_sim >= MIN_TITLE_SIMILARITY


def _describe(sim: float, what: str) -> str | None:
    if sim > 0.8:
        return f"exact {what} match"
    if sim > 0.6:
        return f"good {what} match"
    if sim > 0.3:
        return f"partial {what} match"
    return None


def explain_match(song: ScrapedSong, candidate: CatalogTrack, confidence: float) -> str:
    """Human-readable justification for logs; never affects acceptance."""
    artist_sim = similarity(song.artist.lower(), candidate.primary_artist.lower())
    title_sim = similarity(song.title.lower(), candidate.name.lower())
    reasons = [r for r in (_describe(artist_sim, "artist"), _describe(title_sim, "title")) if r]
    return f"Confidence: {confidence:.1f}% ({', '.join(reasons)})"
