import statistics
import threading
import time
from collections import deque
from typing import Dict


class MetricsTracker:
    """Collects rolling statistics for transaction lookups."""

    def __init__(self, window: int = 200):
        self._lock = threading.Lock()
        self._durations = deque(maxlen=window)
        self._completed = 0
        self._failed = 0
        self._partial = 0
        self._shard_fetches = 0
        self._start = time.time()

    def record_completion(self, duration_ms: float, shard_count: int = 0, partial: bool = False) -> None:
        with self._lock:
            self._completed += 1
            self._shard_fetches += shard_count
            if partial:
                self._partial += 1
            self._durations.append(duration_ms)

    def record_failure(self, duration_ms: float) -> None:
        with self._lock:
            self._failed += 1
            self._durations.append(duration_ms)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            avg = statistics.fmean(self._durations) if self._durations else 0.0
            uptime = time.time() - self._start
            total = self._completed + self._failed
            return {
                "avg_ms": avg,
                "completed": self._completed,
                "failed": self._failed,
                "partial": self._partial,
                "shard_fetches": self._shard_fetches,
                "uptime": uptime,
                "throughput": (total / uptime) if uptime else 0.0,
            }
