"""
Memory sampling for long-running ingestion runs.

Large exports can keep a serverless invocation busy for minutes. The monitor
samples the resident set size and, when configured, hints the garbage
collector once usage crosses a threshold. It never changes results.
"""

import gc
import logging
from dataclasses import dataclass
from typing import Optional

import psutil

logger = logging.getLogger(__name__)


@dataclass
class MemorySample:
    """One resident-memory reading."""
    rss_mb: float
    collected: bool = False


class MemoryMonitor:
    """Samples process memory and optionally forces a GC pass above a threshold."""

    def __init__(self, threshold_mb: Optional[float] = None, force_gc: bool = False):
        self.threshold_mb = threshold_mb
        self.force_gc = force_gc
        self.peak_mb = 0.0
        self.gc_runs = 0
        self._process = psutil.Process()

    def rss_mb(self) -> float:
        return self._process.memory_info().rss / (1024 * 1024)

    def sample(self, label: str = "") -> MemorySample:
        """Read current memory usage, log it and collect garbage if over threshold."""
        rss = self.rss_mb()
        self.peak_mb = max(self.peak_mb, rss)
        sample = MemorySample(rss_mb=rss)

        if self.threshold_mb is not None and rss > self.threshold_mb:
            logger.warning(
                "Memory usage %.1fMB above threshold %.1fMB%s",
                rss, self.threshold_mb, f" ({label})" if label else "",
            )
            if self.force_gc:
                gc.collect()
                self.gc_runs += 1
                sample.collected = True
        else:
            logger.debug("Memory usage %.1fMB%s", rss, f" ({label})" if label else "")

        return sample
