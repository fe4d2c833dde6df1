from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Dict


_lock = threading.Lock()
_counters: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
_latency_sum: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
_latency_count: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))


def increment(metric: str, label: str, value: int = 1) -> None:
    with _lock:
        _counters[metric][label] += value


def observe_latency(metric: str, label: str, duration_seconds: float) -> None:
    with _lock:
        _latency_sum[metric][label] += duration_seconds
        _latency_count[metric][label] += 1


def counter_value(metric: str, label: str) -> int:
    with _lock:
        return _counters.get(metric, {}).get(label, 0)


def snapshot() -> Dict[str, Dict[str, Dict[str, float]]]:
    with _lock:
        counters = {name: dict(labels) for name, labels in _counters.items()}
        timers = {
            name: {
                label: {
                    "count": _latency_count[name][label],
                    "sum": round(total, 6),
                    "avg": round(total / max(_latency_count[name][label], 1), 6),
                }
                for label, total in labels.items()
            }
            for name, labels in _latency_sum.items()
        }
    return {"counters": counters, "timers": timers}


def reset() -> None:
    with _lock:
        _counters.clear()
        _latency_sum.clear()
        _latency_count.clear()


class Timer:
    def __init__(self, metric: str, label: str) -> None:
        self.metric = metric
        self.label = label
        self.start = time.perf_counter()

    def stop(self) -> float:
        duration = time.perf_counter() - self.start
        observe_latency(self.metric, self.label, duration)
        return duration

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        self.stop()
