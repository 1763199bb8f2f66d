"""
In-memory metrics for the worker.

Counts pipeline runs and stage outcomes, keeps recent stage latencies and
the last few failures for the /metrics endpoint. Resets on restart.
"""

import time
import threading
from collections import defaultdict, deque
from typing import Deque, Dict

_lock = threading.Lock()

MAX_SAMPLES = 100
MAX_ERRORS = 50

_counters: Dict[str, int] = defaultdict(int)
_latency_samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=MAX_SAMPLES))
_gauges: Dict[str, float] = defaultdict(float)
_recent_errors: Deque[dict] = deque(maxlen=MAX_ERRORS)


def inc_counter(name: str, amount: int = 1):
    """Increment a counter, e.g. 'pipeline.started' or 'stage.video.failed'."""
    with _lock:
        _counters[name] += amount


def record_latency(name: str, duration_ms: float):
    with _lock:
        _latency_samples[name].append(duration_ms)


def set_gauge(name: str, value: float):
    with _lock:
        _gauges[name] = value


def add_gauge(name: str, delta: float):
    with _lock:
        _gauges[name] += delta


def record_error(stage: str, kind: str, message: str, request_id: str = ""):
    with _lock:
        _recent_errors.append({
            "timestamp": time.time(),
            "stage": stage,
            "kind": kind,
            "message": message[:300],
            "request_id": request_id,
        })


class timed:
    """Context manager recording the block's duration under `name`."""

    def __init__(self, name: str):
        self.name = name
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        record_latency(self.name, (time.perf_counter() - self._start) * 1000)
        return False


def _percentiles(samples: list[float]) -> dict:
    ordered = sorted(samples)
    n = len(ordered)
    return {
        "p50": ordered[n // 2],
        "p95": ordered[min(int(n * 0.95), n - 1)],
        "avg": sum(ordered) / n,
        "count": n,
    }


def get_snapshot() -> dict:
    now = time.time()
    with _lock:
        latency = {
            name: _percentiles(list(samples))
            for name, samples in _latency_samples.items()
            if samples
        }
        return {
            "timestamp": now,
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "latency_ms": latency,
            "recent_errors": list(_recent_errors)[-10:],
            "uptime_seconds": now - _gauges.get("start_time", now),
        }


def reset():
    with _lock:
        _counters.clear()
        _latency_samples.clear()
        _gauges.clear()
        _recent_errors.clear()
