"""Tests for the MetricsCollector class."""

import time
import unittest

from fetchcore.metrics import MetricsCollector
from fetchcore.models import AttemptRecord, ScrapingStrategy


def _make_attempt(**overrides) -> AttemptRecord:
    """Helper to build an AttemptRecord with sensible defaults."""
    defaults = dict(
        strategy=ScrapingStrategy.NATIVE,
        url="https://example.com",
        success=True,
        latency_ms=100,
        status=200,
        error=None,
    )
    defaults.update(overrides)
    return AttemptRecord(**defaults)


class TestMetricsCollector(unittest.TestCase):
    """Verify attempt recording and snapshot aggregation."""

    def test_empty_snapshot(self):
        """Snapshot with no events should have all zeros."""
        snap = MetricsCollector().snapshot(window_secs=30)
        self.assertEqual(snap.total_attempts, 0)
        self.assertEqual(snap.success_count, 0)
        self.assertEqual(snap.avg_latency_ms, 0.0)
        self.assertEqual(snap.attempts_by_strategy, {})

    def test_breakdown_by_strategy(self):
        """Attempts and successes are counted per strategy."""
        metrics = MetricsCollector()
        metrics.record_attempt(_make_attempt(success=False, status=403, error="HTTP 403"))
        metrics.record_attempt(_make_attempt(strategy=ScrapingStrategy.FIRECRAWL))
        metrics.record_attempt(_make_attempt(strategy=ScrapingStrategy.FIRECRAWL))
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_attempts, 3)
        self.assertEqual(snap.success_count, 2)
        self.assertEqual(snap.attempts_by_strategy, {"native": 1, "firecrawl": 2})
        self.assertEqual(snap.successes_by_strategy, {"firecrawl": 2})
        self.assertEqual(snap.http_403_count, 1)

    def test_average_latency(self):
        """Average latency should be computed across the window."""
        metrics = MetricsCollector()
        metrics.record_attempt(_make_attempt(latency_ms=100))
        metrics.record_attempt(_make_attempt(latency_ms=300))
        self.assertAlmostEqual(metrics.snapshot(window_secs=30).avg_latency_ms, 200.0)

    def test_window_excludes_old_events(self):
        """Events older than the window should not appear in the snapshot."""
        metrics = MetricsCollector()
        old_time = time.time() - 100
        with metrics._lock:
            metrics._events.append((old_time, _make_attempt()))
        metrics.record_attempt(_make_attempt(status=429, success=False))
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_attempts, 1)
        self.assertEqual(snap.http_429_count, 1)

    def test_export_json_uses_strategy_names(self):
        """Exported rows are flat dictionaries with the strategy as a string."""
        metrics = MetricsCollector()
        metrics.record_attempt(_make_attempt(strategy=ScrapingStrategy.BRIGHTDATA))
        rows = metrics.export_json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["strategy"], "brightdata")
        self.assertIn("timestamp", rows[0])
        self.assertEqual(list(metrics.export_csv_rows()), rows)


if __name__ == "__main__":
    unittest.main()
