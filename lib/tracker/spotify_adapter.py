"""
Spotify 側のコラボレーター (spotipy)。
- SpotifyCatalogSearch: 曲検索して CatalogTrack 候補を返す
- SpotifyPlaylistStore: プレイリスト内のトラックID取得と追加
"""
from __future__ import annotations

import logging
import os
from typing import List, Optional, Set

import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials

from lib.tracker.errors import ConfigurationError, SpotifyAPIError
from lib.tracker.models import CatalogTrack, ScrapedSong
from lib.tracker.normalizer import extract_keywords

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
PLAYLIST_PAGE_SIZE = 100


def get_spotify_client() -> spotipy.Spotify:
    """
    環境変数から Spotify API のクレデンシャルを読み込み、
    Spotipy クライアントを返す（検索専用。プレイリスト更新にはユーザー認可済みクライアントが必要）。

    必要な環境変数:
    - SPOTIFY_CLIENT_ID
    - SPOTIFY_CLIENT_SECRET
    """
    client_id = os.getenv("SPOTIFY_CLIENT_ID")
    client_secret = os.getenv("SPOTIFY_CLIENT_SECRET")

    if not client_id or not client_secret:
        raise ConfigurationError(
            "Spotify client credentials are not set. "
            "Please set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET."
        )

    auth_manager = SpotifyClientCredentials(
        client_id=client_id,
        client_secret=client_secret,
    )
    return spotipy.Spotify(auth_manager=auth_manager)


class SpotifyCatalogSearch:
    def __init__(self, client: spotipy.Spotify, market: Optional[str] = None, limit: int = SEARCH_LIMIT):
        self.client = client
        self.market = market
        self.limit = limit

    def _search(self, query: str) -> List[dict]:
        try:
            resp = self.client.search(q=query, type="track", limit=self.limit, market=self.market)
        except SpotifyException as e:
            raise SpotifyAPIError(f"Search failed ({e.http_status}): {e.msg}", meta={"query": query}) from e
        return ((resp or {}).get("tracks") or {}).get("items") or []

    def search(self, song: ScrapedSong) -> List[CatalogTrack]:
        """
        artist + track で検索し、0件ならタイトルのみ、さらにキーワードで再検索する。
        """
        queries = [f"artist:{song.artist} track:{song.title}", song.title]
        keywords = " ".join(extract_keywords(f"{song.artist} {song.title}"))
        if keywords and keywords not in queries:
            queries.append(keywords)

        for query in queries:
            items = [item for item in self._search(query) if item and item.get("id")]
            if items:
                logger.debug(f"[spotify] {len(items)} candidates for query={query!r}")
                return [CatalogTrack.from_spotify(item) for item in items]

        logger.debug(f"[spotify] no candidates for {song.display()}")
        return []


class SpotifyPlaylistStore:
    def __init__(self, client: spotipy.Spotify):
        self.client = client

    def get_track_ids(self, playlist_id: str) -> Set[str]:
        """Page through the playlist and collect track ids."""
        ids: Set[str] = set()
        try:
            page = self.client.playlist_items(
                playlist_id,
                fields="items(track(id)),next",
                limit=PLAYLIST_PAGE_SIZE,
                additional_types=("track",),
            )
            while page:
                for item in page.get("items") or []:
                    track = (item or {}).get("track") or {}
                    if track.get("id"):
                        ids.add(track["id"])
                page = self.client.next(page) if page.get("next") else None
        except SpotifyException as e:
            raise SpotifyAPIError(
                f"Failed to fetch playlist tracks ({e.http_status}): {e.msg}",
                meta={"playlist_id": playlist_id},
            ) from e

        logger.info(f"[spotify] cached {len(ids)} tracks from playlist {playlist_id}")
        return ids

    def add_track(self, playlist_id: str, track: CatalogTrack) -> None:
        item = track.uri or f"spotify:track:{track.id}"
        try:
            self.client.playlist_add_items(playlist_id, [item])
        except SpotifyException as e:
            raise SpotifyAPIError(
                f"Failed to add {track.id} ({e.http_status}): {e.msg}",
                meta={"playlist_id": playlist_id},
            ) from e
