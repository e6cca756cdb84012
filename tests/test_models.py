import unittest

from lib.tracker.models import ArchiveStatus, DailyStats, ProcessingStats


class DailyStatsTests(unittest.TestCase):
    def test_replay_counts_every_status(self):
        stats = DailyStats.replay([ArchiveStatus.FOUND, ArchiveStatus.DUPLICATE, ArchiveStatus.FOUND])
        self.assertEqual(stats, DailyStats(total=3, found=2, duplicates=1))

    def test_plain_status_strings_are_counted(self):
        stats = DailyStats.replay(["found", "not_found", "low_confidence", "duplicate"])
        self.assertEqual(stats, DailyStats(total=4, found=1, not_found=1, low_confidence=1, duplicates=1))

    def test_unknown_status_is_rejected(self):
        stats = DailyStats()
        with self.assertRaises(ValueError):
            stats.add("maybe")
        self.assertEqual(stats.total, 0)


class ProcessingStatsTests(unittest.TestCase):
    def test_success_rate(self):
        self.assertEqual(ProcessingStats().success_rate, "0%")
        self.assertEqual(ProcessingStats(processed=3, successful=1).success_rate, "33.3%")


if __name__ == "__main__":
    unittest.main()
