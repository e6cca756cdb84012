"""
スクレイプした曲とカタログ候補のマッチング。
confidence = (artist 類似度 * 0.6 + title 類似度 * 0.4) * 100
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Optional

from lib.tracker.models import CatalogTrack, MatchResult, ScrapedSong
from lib.tracker.normalizer import (
    extract_featured_artists,
    normalize_for_match,
    normalize_title,
)

logger = logging.getLogger(__name__)

ARTIST_WEIGHT = 0.6
TITLE_WEIGHT = 0.4
PARTIAL_MATCH_FLOOR = 0.9
FIRST_WORD_FLOOR = 0.85
DEFAULT_THRESHOLD = 70.0


def _bigrams(s: str) -> Counter:
    return Counter(s[i:i + 2] for i in range(len(s) - 1))


def similarity(a: str, b: str) -> float:
    """
    Dice coefficient over character bigrams (whitespace ignored).
    Symmetric, 0-1, identical strings -> 1.
    """
    a = "".join((a or "").split())
    b = "".join((b or "").split())
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    overlap = sum((_bigrams(a) & _bigrams(b)).values())
    return 2.0 * overlap / (len(a) + len(b) - 2)


def _has_partial_match(s1: str, s2: str) -> bool:
    if not s1 or not s2:
        return False
    if s1 in s2 or s2 in s1:
        return True
    # tolerate trailing plural / possessive differences
    if len(s1) > 3 and s1[:-2] in s2:
        return True
    return len(s2) > 3 and s2[:-2] in s1


def _has_first_word_match(s1: str, s2: str) -> bool:
    w1 = s1.split(" ")[0] if s1 else ""
    w2 = s2.split(" ")[0] if s2 else ""
    if len(w1) < 3 or len(w2) < 3:
        return False
    return w2 in s1 or w1 in s2


def scraped_artist_string(song: ScrapedSong) -> str:
    """Scraped artist plus any featured artists pulled from the title."""
    _, featured = extract_featured_artists(song.title)
    return f"{song.artist}, {featured}" if featured else song.artist


def compute_confidence(song: ScrapedSong, candidate: CatalogTrack) -> float:
    """
    0-100 の confidence を返す。

    1. artist: scraped artist (+ featuring) vs 候補の全アーティスト (", " 連結)
    2. title: フル表記と括弧除去表記の高い方
    3. 部分一致なら title を 0.9 に、先頭単語一致なら 0.85 に底上げ（下げることはない）
    """
    artist_score = similarity(
        normalize_for_match(scraped_artist_string(song)),
        normalize_for_match(", ".join(candidate.artist_names)),
    )

    scraped_full, scraped_bare = normalize_title(song.title)
    cand_full, cand_bare = normalize_title(candidate.name, clean=False)

    title_score = max(
        similarity(scraped_full, cand_full),
        similarity(scraped_bare, cand_bare),
    )

    if _has_partial_match(scraped_full, cand_full) or _has_partial_match(scraped_bare, cand_bare):
        title_score = max(title_score, PARTIAL_MATCH_FLOOR)

    if _has_first_word_match(scraped_full, cand_full):
        title_score = max(title_score, FIRST_WORD_FLOOR)

    confidence = (artist_score * ARTIST_WEIGHT + title_score * TITLE_WEIGHT) * 100
    return min(100.0, max(0.0, confidence))


def rank_candidates(song: ScrapedSong, candidates: Iterable[CatalogTrack]) -> List[MatchResult]:
    """Score every candidate, best first (ties keep catalog order)."""
    results = [MatchResult(track=c, confidence=compute_confidence(song, c)) for c in candidates]
    results.sort(key=lambda r: r.confidence, reverse=True)
    return results


def best_match(
    song: ScrapedSong,
    candidates: Iterable[CatalogTrack],
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[MatchResult]:
    """
    Top-ranked candidate if its confidence clears the threshold.

    An empty candidate list is "no match", not an error.
    """
    ranked = rank_candidates(song, candidates)
    if not ranked:
        logger.debug(f"[matcher] no candidates for {song.display()}")
        return None

    top = ranked[0]
    logger.debug(
        f"[matcher] {song.display()} candidates={len(ranked)} "
        f"top={top.track.name!r} confidence={top.confidence:.1f}"
    )
    return top if top.confidence > threshold else None
