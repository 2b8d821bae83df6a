# metrics.py – In-process pipeline metrics
from __future__ import annotations
import time
import inspect
from collections import defaultdict
from typing import Dict, Callable
from functools import wraps

class MetricsCollector:
    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timers: Dict[str, list] = defaultdict(list)
        self.gauges: Dict[str, float] = {}

    def increment(self, name: str, value: int = 1):
        self.counters[name] += value

    def timing(self, name: str, duration_ms: float):
        self.timers[name].append(duration_ms)

    def gauge(self, name: str, value: float):
        self.gauges[name] = value

    def reset(self):
        self.counters.clear()
        self.timers.clear()
        self.gauges.clear()

    def timer(self, name: str) -> Callable:
        def decorator(func: Callable) -> Callable:
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    self.timing(name, (time.perf_counter() - start) * 1000)

            @wraps(func)
            def sync_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.timing(name, (time.perf_counter() - start) * 1000)

            return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper
        return decorator

# Global metrics instance
METRICS = MetricsCollector()

class PipelineMetrics:
    """Security pipeline specific metrics wrapper"""

    def __init__(self, collector: MetricsCollector = METRICS):
        self.collector = collector

    def feed_ok(self, feed: str, records: int):
        self.collector.increment(f"feed.{feed}.ok")
        self.collector.gauge(f"feed.{feed}.records", float(records))

    def feed_failed(self, feed: str, reason: str):
        """Increment failure counter by feed and reason"""
        self.collector.increment(f"feed.{feed}.failures")
        self.collector.increment(f"feed.failures.{reason}")

    def events_aggregated(self, count: int, duplicates: int):
        self.collector.gauge("events.working_set", float(count))
        self.collector.increment("events.duplicates_dropped", duplicates)

    def geo_lookup(self, tier: str, hit: bool):
        self.collector.increment(f"geo.{tier}.{'hit' if hit else 'miss'}")

    def geo_private_skipped(self, count: int = 1):
        self.collector.increment("geo.private_skipped", count)

    def geo_chunk_failed(self):
        self.collector.increment("geo.fallback.chunk_failures")

    def get_metrics_summary(self) -> dict:
        """Get summary of all collected metrics"""
        return {
            "counters": dict(self.collector.counters),
            "timers": {k: {
                "count": len(v),
                "avg_ms": sum(v) / len(v) if v else 0,
                "min_ms": min(v) if v else 0,
                "max_ms": max(v) if v else 0
            } for k, v in self.collector.timers.items()},
            "gauges": dict(self.collector.gauges)
        }
