"""
Normalization helpers: reduce spelling noise in scraped and catalog titles/artists.

Two families:
  - match form (normalize_for_match / normalize_title): feeds the confidence scorer
  - search form (normalize_for_search): feeds the validator gates and query keywords
"""
from __future__ import annotations

import re
import unicodedata
from typing import List, Tuple

# "Song (feat. X)" / "Song [ft. X]"
_FEAT_BRACKETED_RE = re.compile(
    r"\s*[\(\[]\s*(?:featuring|feat|ft)\b\.?\s*(?P<who>[^\)\]]+?)\s*[\)\]]",
    re.IGNORECASE,
)
# "Song featuring X" (trailing, bare)
_FEAT_TRAILING_RE = re.compile(
    r"\s+(?:featuring|feat|ft)\b\.?\s+(?P<who>.+)$",
    re.IGNORECASE,
)
# "B.03. ", "01. ", "1 - "
_TRACK_NUMBER_RE = re.compile(r"^(?:[A-Z]\.?)?\d{1,2}(?:\.\s*(?=[^\d\s])|\s+[-_]\s+)")
# "-ABC123", "_FR-0042"; the suffix must contain a digit
_CATALOG_CODE_RE = re.compile(r"[-_](?=[\w-]*\d)[A-Za-z0-9]+(?:[-_][A-Za-z0-9]+)*$")
_PARENS_RE = re.compile(r"[\(\[][^\)\]]*[\)\]]")
_DASHES_RE = re.compile(r"[-\u2010-\u2015_]")
_AND_RE = re.compile(r"&amp;|&|\band\b", re.IGNORECASE)
_AND_TOKEN = " and "

COMMON_WORDS = frozenset(
    ["the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"]
)


def _strip_diacritics(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _collapse(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def extract_featured_artists(title: str) -> Tuple[str, str]:
    """
    タイトルから featuring 句を取り出す。

    Returns:
        (title without the clause, featured artists). The second element is
        "" when the title carries no featuring clause.
    """
    s = title or ""
    m = _FEAT_BRACKETED_RE.search(s) or _FEAT_TRAILING_RE.search(s)
    if not m:
        return s.strip(), ""
    who = re.sub(r"[^\w, ]", "", m.group("who")).strip()
    rest = _collapse(s[: m.start()] + " " + s[m.end():])
    return rest, who


def clean_title(title: str) -> str:
    """
    スクレイプしたタイトルの前処理:
    - featuring 句を削る
    - トラック番号 ("B.03. ", "01. ") を削る
    - 末尾のカタログコード ("-ABC123") を削る
    """
    s, _ = extract_featured_artists(title)
    s = _TRACK_NUMBER_RE.sub("", s, count=1)
    without_code = _CATALOG_CODE_RE.sub("", s)
    if without_code.strip():
        s = without_code
    return _collapse(s)


def strip_parentheses(text: str) -> str:
    """Drop "(Live)", "[Remastered]" style spans."""
    return _collapse(_PARENS_RE.sub(" ", text or ""))


def normalize_for_match(text: str) -> str:
    """
    照合用の正規化:
    - アクセント記号を落とす (NFD)
    - &, &amp;, and を同じトークンにそろえる
    - ダッシュ類とアンダースコアを空白に
    - 英数字と空白以外を削る
    - 空白を詰めて小文字化
    """
    s = (text or "").lower()
    s = _strip_diacritics(s)
    s = _AND_RE.sub(_AND_TOKEN, s)
    s = _DASHES_RE.sub(" ", s)
    s = re.sub(r"[^\w\s]", "", s)
    return _collapse(s).lower()


def normalize_title(title: str, clean: bool = True) -> Tuple[str, str]:
    """
    Return (full form, parenthetical-stripped form) of a title.

    Both are kept because the catalog may or may not carry the annotation.
    Scraped titles are cleaned first; catalog titles are passed with clean=False.
    """
    base = clean_title(title) if clean else (title or "")
    full = normalize_for_match(base)
    stripped = normalize_for_match(strip_parentheses(base))
    return full, stripped or full


def normalize_for_search(text: str) -> str:
    """Lowercase, strip accents, punctuation -> spaces."""
    s = _strip_diacritics((text or "").lower())
    s = re.sub(r"[^\w\s]", " ", s)
    return _collapse(s)


def remove_common_words(text: str) -> str:
    words = (text or "").lower().split()
    return " ".join(w for w in words if w not in COMMON_WORDS and len(w) > 2)


def extract_keywords(text: str, max_keywords: int = 5) -> List[str]:
    """Longest meaningful words first; used for fallback search queries."""
    words = remove_common_words(normalize_for_search(text)).split()
    return sorted(words, key=len, reverse=True)[:max_keywords]
