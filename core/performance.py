"""
Timing for feed refreshes and pipeline stages.
Each scheduler tick ends with a one-line summary per measured operation.
"""
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _Sample:
    duration: float
    success: bool
    context: Dict = field(default_factory=dict)


class PerformanceMonitor:
    def __init__(self):
        self.samples: Dict[str, List[_Sample]] = defaultdict(list)

    @contextmanager
    def measure(self, operation_name: str, context: Optional[Dict] = None):
        """
        Times the wrapped block; an exception marks the sample failed and
        propagates unchanged.

            with monitor.measure("feed_refresh", {"feed_id": feed.feed_id}):
                await service.process_feed(session, feed)
        """
        context = context or {}
        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            duration = time.perf_counter() - start
            self.samples[operation_name].append(_Sample(duration, success, context))
            if success:
                logger.debug(f"[PERF] {operation_name} completed", duration_ms=duration * 1000, context=context)
            else:
                logger.warning(f"[PERF] {operation_name} failed", duration=duration, context=context)

    def get_stats(self, operation_name: str) -> Dict:
        samples = self.samples.get(operation_name)
        if not samples:
            return {}

        durations_ms = [s.duration * 1000 for s in samples]
        succeeded = sum(1 for s in samples if s.success)
        return {
            "operation": operation_name,
            "count": len(samples),
            "success_count": succeeded,
            "failure_count": len(samples) - succeeded,
            "success_rate": succeeded / len(samples) * 100,
            "avg_duration_ms": sum(durations_ms) / len(durations_ms),
            "min_duration_ms": min(durations_ms),
            "max_duration_ms": max(durations_ms),
        }

    def get_all_stats(self) -> Dict[str, Dict]:
        return {name: self.get_stats(name) for name in self.samples}

    def log_summary(self):
        stats = self.get_all_stats()
        if not stats:
            logger.info("[PERF] No timings collected")
            return

        for name, s in stats.items():
            logger.info(
                f"[PERF] {name}: {s['count']} run(s), {s['success_rate']:.1f}% ok, "
                f"avg {s['avg_duration_ms']:.0f}ms (min {s['min_duration_ms']:.0f}ms, max {s['max_duration_ms']:.0f}ms)"
            )

    def reset(self):
        self.samples.clear()


_performance_monitor: Optional[PerformanceMonitor] = None


def get_performance_monitor() -> PerformanceMonitor:
    """Process-wide monitor shared by the scheduler and the feed pipeline."""
    global _performance_monitor
    if _performance_monitor is None:
        _performance_monitor = PerformanceMonitor()
    return _performance_monitor
