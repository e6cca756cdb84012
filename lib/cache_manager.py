"""Centralized cache utilities (TTLCache settings & key builders)."""
from __future__ import annotations

import hashlib
import os
from cachetools import TTLCache

# Parsed ledger cache settings
LEDGER_CACHE_VERSION = int(os.getenv("LEDGER_CACHE_VERSION", "1"))
LEDGER_CACHE_MAXSIZE = int(os.getenv("LEDGER_CACHE_MAXSIZE", "16"))
LEDGER_CACHE_TTL_S = int(os.getenv("LEDGER_CACHE_TTL_S", "600"))


def new_ledger_cache() -> TTLCache:
    """One cache per ledger owner; nothing is shared between instances."""
    return TTLCache(maxsize=LEDGER_CACHE_MAXSIZE, ttl=LEDGER_CACHE_TTL_S)


def build_ledger_cache_key(text: str) -> str:
    """Content-addressed: identical ledger text maps to the same entry."""
    content_hash = hashlib.sha1(text.encode("utf-8")).hexdigest()
    return f"ledger:{LEDGER_CACHE_VERSION}:{content_hash}"
