from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import asdict
from threading import Lock
from typing import Deque, Dict, Iterable, List

from .models import AttemptRecord, MetricsSnapshot


class MetricsCollector:
    """Thread-safe collector of backend attempts.

    Records one AttemptRecord per backend call and produces aggregated
    MetricsSnapshot objects over sliding time windows, broken down by
    strategy."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, AttemptRecord]] = deque(maxlen=maxlen)

    def record_attempt(self, attempt: AttemptRecord) -> None:
        with self._lock:
            self._events.append((time.time(), attempt))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Return aggregated metrics for attempts within the last window_secs seconds."""
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            events: List[AttemptRecord] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        attempts = Counter(e.strategy.value for e in events)
        successes = Counter(e.strategy.value for e in events if e.success)

        return MetricsSnapshot(
            window_secs=window_secs,
            total_attempts=total,
            success_count=sum(successes.values()),
            attempts_by_strategy=dict(attempts),
            successes_by_strategy=dict(successes),
            http_403_count=sum(1 for e in events if e.status == 403),
            http_429_count=sum(1 for e in events if e.status == 429),
            avg_latency_ms=(sum(e.latency_ms for e in events) / total) if total else 0.0,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        """Export all recorded attempts as a list of dictionaries."""
        with self._lock:
            return [{"timestamp": ts, **self._flatten(e)} for ts, e in self._events]

    def export_csv_rows(self) -> Iterable[Dict]:
        """Yield recorded attempts as flat dictionaries suitable for CSV export."""
        with self._lock:
            rows = [{"timestamp": ts, **self._flatten(e)} for ts, e in self._events]
        yield from rows

    @staticmethod
    def _flatten(attempt: AttemptRecord) -> Dict:
        row = asdict(attempt)
        row["strategy"] = attempt.strategy.value
        return row
