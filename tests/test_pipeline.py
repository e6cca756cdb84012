import json
import tempfile
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

from lib.tracker.config import TrackerSettings
from lib.tracker.dedup import RecentArchiveCache
from lib.tracker.models import ArchiveStatus, CatalogArtist, CatalogTrack, ScrapedSong
from lib.tracker.pipeline import TrackerPipeline

T0 = datetime(2026, 10, 19, 8, 0, 0)


def _song(artist, title, minutes=0):
    return ScrapedSong(artist=artist, title=title, album=None, scraped_at=T0 + timedelta(minutes=minutes))


def _track_for(song):
    track_id = f"{song.artist}:{song.title}".replace(" ", "_")
    return CatalogTrack(
        id=track_id,
        name=song.title,
        artists=(CatalogArtist(id="a1", name=song.artist),),
        external_url=f"https://open.spotify.com/track/{track_id}",
    )


class TrackerPipelineTests(unittest.TestCase):
    def setUp(self):
        self.search = MagicMock()
        self.search.search.side_effect = lambda song: [_track_for(song)]
        self.playlist = MagicMock()
        self.playlist.get_track_ids.return_value = set()
        self.ledger = MagicMock()
        self.ledger.archive.return_value = True
        self.recent = MagicMock()
        self.recent.is_recently_archived.return_value = False

    def _pipeline(self, **settings):
        return TrackerPipeline(
            self.search,
            self.playlist,
            self.ledger,
            self.recent,
            settings=TrackerSettings(**settings),
        )

    def _archived_statuses(self):
        return [c.args[0].status for c in self.ledger.archive.call_args_list]

    def test_found_song_is_added_and_archived(self):
        song = _song("Irma Thomas", "Ruler of My Heart")
        stats = self._pipeline().process_batch([song], "pl1")

        self.playlist.add_track.assert_called_once_with("pl1", _track_for(song))
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.FOUND])
        entry = self.ledger.archive.call_args.args[0]
        self.assertEqual(entry.match.confidence, 100.0)
        self.recent.record_archived.assert_called_once_with(song, now=song.scraped_at)
        self.assertEqual((stats.processed, stats.successful, stats.failed), (1, 1, 0))
        self.assertEqual(stats.success_rate, "100.0%")

    def test_track_already_in_playlist_is_a_duplicate(self):
        song = _song("Dr. John", "Such a Night")
        self.playlist.get_track_ids.return_value = {_track_for(song).id}
        stats = self._pipeline().process_batch([song], "pl1")

        self.playlist.add_track.assert_not_called()
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.DUPLICATE])
        self.assertEqual((stats.duplicates, stats.consecutive_duplicates, stats.stopped_early), (1, 1, False))

    def test_same_track_twice_in_one_batch_is_added_once(self):
        first = _song("Dr. John", "Such a Night")
        second = _song("Dr. John", "Such a Night", minutes=30)
        stats = self._pipeline().process_batch([first, second], "pl1")

        self.playlist.add_track.assert_called_once()
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.FOUND, ArchiveStatus.DUPLICATE])
        self.assertEqual(stats.duplicates, 1)

    def test_stops_after_five_consecutive_duplicates(self):
        songs = [_song("The Meters", f"Cissy Strut Take {i}", minutes=i) for i in range(1, 8)]
        self.playlist.get_track_ids.return_value = {_track_for(s).id for s in songs}
        stats = self._pipeline().process_batch(songs, "pl1")

        self.assertTrue(stats.stopped_early)
        self.assertEqual(stats.processed, 5)
        self.assertEqual(stats.duplicates, 5)
        self.assertEqual(self.search.search.call_count, 5)
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.DUPLICATE] * 5)

    def test_a_new_song_resets_the_duplicate_streak(self):
        dupes = [_song("The Meters", f"Take {i}", minutes=i) for i in range(4)]
        fresh = _song("Allen Toussaint", "Southern Nights", minutes=10)
        more = [_song("The Meters", f"Take {i}", minutes=20 + i) for i in range(4, 8)]
        self.playlist.get_track_ids.return_value = {_track_for(s).id for s in dupes + more}
        stats = self._pipeline().process_batch(dupes + [fresh] + more, "pl1")

        self.assertFalse(stats.stopped_early)
        self.assertEqual(stats.processed, 9)
        self.assertEqual(stats.consecutive_duplicates, 4)

    def test_custom_duplicate_limit(self):
        songs = [_song("The Meters", f"Take {i}", minutes=i) for i in range(3)]
        self.playlist.get_track_ids.return_value = {_track_for(s).id for s in songs}
        stats = self._pipeline(consecutive_duplicate_limit=2).process_batch(songs, "pl1")
        self.assertTrue(stats.stopped_early)
        self.assertEqual(stats.processed, 2)

    def test_recently_archived_song_is_skipped_silently(self):
        self.recent.is_recently_archived.return_value = True
        stats = self._pipeline().process_batch([_song("Professor Longhair", "Tipitina")], "pl1")

        self.search.search.assert_not_called()
        self.ledger.archive.assert_not_called()
        self.assertEqual((stats.processed, stats.skipped_recent, stats.failed), (1, 1, 0))

    def test_no_candidates_is_archived_not_found(self):
        self.search.search.side_effect = None
        self.search.search.return_value = []
        stats = self._pipeline().process_batch([_song("Unknown Band", "Unknown Song")], "pl1")

        self.assertEqual(self._archived_statuses(), [ArchiveStatus.NOT_FOUND])
        self.assertIsNone(self.ledger.archive.call_args.args[0].match)
        self.assertEqual(stats.failed, 1)

    def test_candidate_below_threshold_is_not_found(self):
        self.search.search.side_effect = lambda song: [
            CatalogTrack(id="x", name="Something Else", artists=(CatalogArtist(id="b", name="Nobody"),), external_url="")
        ]
        self._pipeline().process_batch([_song("Irma Thomas", "Ruler of My Heart")], "pl1")
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.NOT_FOUND])
        self.playlist.add_track.assert_not_called()

    def test_rejected_by_validator_is_low_confidence(self):
        with patch("lib.tracker.pipeline.is_acceptable", return_value=False):
            stats = self._pipeline().process_batch([_song("Irma Thomas", "Ruler of My Heart")], "pl1")

        self.assertEqual(self._archived_statuses(), [ArchiveStatus.LOW_CONFIDENCE])
        self.assertIsNotNone(self.ledger.archive.call_args.args[0].match)
        self.playlist.add_track.assert_not_called()
        self.assertEqual(stats.failed, 1)

    def test_search_failure_is_counted_and_batch_continues(self):
        ok = _song("Irma Thomas", "Ruler of My Heart", minutes=1)

        def search(song):
            if song.title == "Broken":
                raise RuntimeError("rate limited")
            return [_track_for(song)]

        self.search.search.side_effect = search
        stats = self._pipeline().process_batch([_song("Anyone", "Broken"), ok], "pl1")

        self.assertEqual((stats.processed, stats.failed, stats.successful), (2, 1, 1))
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.FOUND])

    def test_add_failure_is_archived_with_error(self):
        self.playlist.add_track.side_effect = RuntimeError("403 forbidden")
        stats = self._pipeline().process_batch([_song("Irma Thomas", "Ruler of My Heart")], "pl1")

        entry = self.ledger.archive.call_args.args[0]
        self.assertEqual(entry.status, ArchiveStatus.FOUND)
        self.assertEqual(entry.error, "403 forbidden")
        self.assertEqual((stats.failed, stats.successful), (1, 0))

    def test_dry_run_does_not_touch_the_playlist(self):
        stats = self._pipeline(dry_run=True).process_batch([_song("Irma Thomas", "Ruler of My Heart")], "pl1")

        self.playlist.add_track.assert_not_called()
        self.assertEqual(self._archived_statuses(), [ArchiveStatus.FOUND])
        self.assertEqual(stats.successful, 1)

    def test_snapshot_failure_does_not_stop_the_batch(self):
        self.playlist.get_track_ids.side_effect = RuntimeError("playlist unavailable")
        with self.assertLogs("lib.tracker.pipeline", level="WARNING"):
            stats = self._pipeline().process_batch([_song("Irma Thomas", "Ruler of My Heart")], "pl1")
        self.assertEqual(stats.successful, 1)

    def test_recent_entries_survive_a_restart(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        path = Path(tmp.name) / ".recent-entries.json"
        earlier = RecentArchiveCache(path, window_minutes=5)
        earlier.record_archived(_song("Professor Longhair", "Big Chief"), now=T0)
        earlier.record_archived(_song("Irma Thomas", "Ruler of My Heart"), now=T0)

        self.recent = RecentArchiveCache(path, window_minutes=5)
        stats = self._pipeline().process_batch(
            [_song("Professor Longhair", "Big Chief", minutes=1), _song("Professor Longhair", "Tipitina", minutes=2)],
            "pl1",
        )

        self.assertEqual((stats.skipped_recent, stats.successful), (1, 1))
        self.assertEqual([c.args[0].title for c in self.search.search.call_args_list], ["Tipitina"])
        stored = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(
            sorted(key for key, _ in stored["entries"]),
            ["Irma Thomas|Ruler of My Heart", "Professor Longhair|Big Chief", "Professor Longhair|Tipitina"],
        )

    def test_empty_batch(self):
        stats = self._pipeline().process_batch([], "pl1")
        self.assertEqual(stats.processed, 0)
        self.assertEqual(stats.success_rate, "0%")


if __name__ == "__main__":
    unittest.main()
