"""Aggregation of many metric records into duration statistics.

Percentiles use nearest rank over the ascending durations:
index = ceil(p / 100 * n) - 1, clamped to [0, n - 1]. No interpolation.
"""

import json
import math
import threading
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from beartype import beartype
from loguru import logger

from opmetrics._memory import bytes_to_mb
from opmetrics._record import MetricRecord, numeric_or_zero

PERCENTILES = (50, 75, 90, 95, 99)


def percentile(sorted_values: Sequence[float], p: int | float) -> float:
    """Nearest-rank percentile of already sorted values (0.0 when empty)."""
    count = len(sorted_values)
    if count == 0:
        return 0.0
    index = math.ceil(p / 100 * count) - 1
    index = max(0, min(index, count - 1))
    return sorted_values[index]


def calculate_percentiles(values: Sequence[float]) -> dict[str, float]:
    """Return {p50, p75, p90, p95, p99}; all 0.0 for no values."""
    sorted_values = sorted(values)
    return {f"p{p}": float(percentile(sorted_values, p)) for p in PERCENTILES}


def _duration_of(metrics: Mapping[str, Any]) -> float:
    return numeric_or_zero(metrics.get("total"))


def _memory_of(metrics: Mapping[str, Any]) -> int:
    memory = metrics.get("memory")
    if not isinstance(memory, Mapping):
        return 0
    return int(numeric_or_zero(memory.get("current")))


class MetricsCollector:
    """Accumulates finished operations for batch analysis.

    Thread-safe for concurrent record()/aggregate() calls. Entries are kept
    in insertion order as {operation, metrics, timestamp} where metrics is the
    serialized record.

    Example:
        collector = MetricsCollector()
        for batch in batches:
            with profile_operation("import_batch", collector) as profiler:
                profiler.add_count("rows", import_rows(batch))
        stats = collector.aggregate()
        print(stats["by_operation"]["import_batch"]["percentiles"]["p95"])
    """

    def __init__(self) -> None:
        self._operations: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @beartype
    def record(self, operation: str, metrics: MetricRecord | Mapping[str, Any]) -> None:
        """Append one operation's metrics. Never fails on content."""
        if isinstance(metrics, MetricRecord):
            metrics = metrics.to_dict()
        entry = {
            "operation": operation,
            "metrics": dict(metrics),
            "timestamp": int(time.time()),
        }
        with self._lock:
            self._operations.append(entry)

    @property
    def operations(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._operations)

    @beartype
    def get_by_operation(self, operation: str) -> list[dict[str, Any]]:
        """Entries for one operation name, in insertion order."""
        with self._lock:
            return [entry for entry in self._operations if entry["operation"] == operation]

    def clear(self) -> None:
        with self._lock:
            self._operations.clear()

    def count(self) -> int:
        with self._lock:
            return len(self._operations)

    def __len__(self) -> int:
        return self.count()

    def aggregate(self) -> dict[str, Any]:
        """Global and per-operation duration statistics.

        Returns:
            Dictionary with keys total_operations, total_duration,
            avg_duration, total_memory_mb, percentiles, by_operation.
            by_operation maps each name to count, total_duration,
            avg_duration, min_duration, max_duration, avg_memory_mb and
            percentiles. An empty collector yields zeros, never an error.
        """
        with self._lock:
            entries = list(self._operations)

        if not entries:
            return {
                "total_operations": 0,
                "total_duration": 0.0,
                "avg_duration": 0.0,
                "total_memory_mb": 0.0,
                "percentiles": calculate_percentiles([]),
                "by_operation": {},
            }

        total_duration = 0.0
        total_memory = 0
        all_durations: list[float] = []
        durations_by_name: dict[str, list[float]] = {}
        memory_by_name: dict[str, int] = {}

        for entry in entries:
            name = entry["operation"]
            duration = _duration_of(entry["metrics"])
            memory = _memory_of(entry["metrics"])

            total_duration += duration
            total_memory += memory
            all_durations.append(duration)
            durations_by_name.setdefault(name, []).append(duration)
            memory_by_name[name] = memory_by_name.get(name, 0) + memory

        by_operation: dict[str, dict[str, Any]] = {}
        for name, durations in durations_by_name.items():
            count = len(durations)
            name_total = sum(durations)
            by_operation[name] = {
                "count": count,
                "total_duration": name_total,
                "avg_duration": name_total / count,
                "min_duration": min(durations),
                "max_duration": max(durations),
                "avg_memory_mb": bytes_to_mb(memory_by_name[name] / count),
                "percentiles": calculate_percentiles(durations),
            }

        return {
            "total_operations": len(entries),
            "total_duration": total_duration,
            "avg_duration": total_duration / len(entries),
            "total_memory_mb": bytes_to_mb(total_memory),
            "percentiles": calculate_percentiles(all_durations),
            "by_operation": by_operation,
        }

    @beartype
    def log_checkpoint(self, checkpoint_name: str) -> None:
        """Log condensed aggregate snapshot via loguru.

        Args:
            checkpoint_name: Name for this checkpoint (e.g., "After Import")
        """
        stats = self.aggregate()
        if not stats["total_operations"]:
            logger.info(f"[CHECKPOINT: {checkpoint_name}] No profiling data yet")
            return

        logger.info(
            f"[CHECKPOINT: {checkpoint_name}] {stats['total_operations']} operations, "
            f"total elapsed: {stats['total_duration']:.2f}s"
        )
        for name, op_stats in stats["by_operation"].items():
            logger.info(
                f"  {name}: {op_stats['count']}x, avg={op_stats['avg_duration'] * 1000:.1f}ms, "
                f"p95={op_stats['percentiles']['p95'] * 1000:.1f}ms, "
                f"mem={op_stats['avg_memory_mb']:.2f}MB"
            )

    @beartype
    def print_summary(self, title: str = "PROFILING RESULTS") -> None:
        """Log a formatted table of per-operation statistics.

        Args:
            title: Header title for the summary table
        """
        stats = self.aggregate()
        width = 110

        logger.info("")
        logger.info("=" * width)
        logger.info(f"{title:^{width}}")
        logger.info("=" * width)
        logger.info(
            f"{'Operation':<40} {'Count':>8} {'Total':>10} {'Avg':>10} "
            f"{'p50':>10} {'p95':>10} {'Max':>10} {'Mem':>8}"
        )
        logger.info("-" * width)

        for name, op_stats in stats["by_operation"].items():
            percentiles = op_stats["percentiles"]
            logger.info(
                f"{name:<40} "
                f"{op_stats['count']:>8} "
                f"{op_stats['total_duration']:>9.3f}s "
                f"{op_stats['avg_duration'] * 1000:>8.1f}ms "
                f"{percentiles['p50'] * 1000:>8.1f}ms "
                f"{percentiles['p95'] * 1000:>8.1f}ms "
                f"{op_stats['max_duration'] * 1000:>8.1f}ms "
                f"{op_stats['avg_memory_mb']:>6.1f}MB"
            )

        logger.info("=" * width)
        logger.info(
            f"{'TOTAL':<40} {stats['total_operations']:>8} {stats['total_duration']:>9.3f}s"
        )
        logger.info("=" * width)
        logger.info("")

    @beartype
    def flush_to_file(self, path: Path) -> None:
        """Write the current aggregate to a JSON file.

        Args:
            path: Output file path (will be created/overwritten)
        """
        stats = self.aggregate()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(stats, f, indent=2, default=str)
