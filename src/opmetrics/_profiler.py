"""Operation profilers: one Timer plus memory, counters and context.

start_profiler() picks one of two independent implementations of the
Profiler protocol at construction time:

- ActiveProfiler measures everything and builds a MetricRecord on end()
- NullProfiler does nothing and returns MetricRecord.empty()

The process-wide switch (set_enabled) only affects profilers created after
it changes. Passing enabled= explicitly bypasses it.
"""

import threading
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from beartype import beartype
from loguru import logger

from opmetrics._memory import process_memory
from opmetrics._monitor import PerformanceMonitor
from opmetrics._record import (
    TIMESTAMP_KEY,
    WARNINGS_KEY,
    ContextValue,
    MemoryStats,
    MetricRecord,
)
from opmetrics._timer import Timer

if TYPE_CHECKING:
    from opmetrics._collector import MetricsCollector

_enabled = True
_enabled_lock = threading.Lock()


@beartype
def set_enabled(enabled: bool) -> None:
    """Enable or disable profiling for profilers started from now on."""
    global _enabled
    with _enabled_lock:
        _enabled = enabled


def is_enabled() -> bool:
    with _enabled_lock:
        return _enabled


@runtime_checkable
class Profiler(Protocol):
    """Capabilities shared by active and disabled profilers."""

    operation: str

    def checkpoint(self, name: str) -> None: ...

    def add_count(self, name: str, value: int) -> None: ...

    def increment_count(self, name: str, delta: int = 1) -> None: ...

    def add_context(self, key: str, value: ContextValue) -> None: ...

    def end(self) -> MetricRecord: ...

    def elapsed(self) -> float: ...

    def current_memory(self) -> int: ...


class ActiveProfiler:
    """Profiles one operation.

    Not thread-safe: one instance belongs to one thread of control.

    end() freezes everything. The first call builds the record (timing,
    memory, counts, context, warnings); later calls return that same record
    and later add_count/add_context calls do not change it.

    Args:
        operation: Operation name (non-empty)
        monitor: Optional monitor whose warnings land in context["warnings"]
        memory_probe: Returns (current_bytes, peak_bytes)
        clock: Monotonic clock in fractional seconds
    """

    @beartype
    def __init__(
        self,
        operation: str,
        monitor: PerformanceMonitor | None = None,
        memory_probe: Callable[[], tuple[int, int]] = process_memory,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        assert operation, "Operation name must be non-empty"
        self.operation = operation
        self.monitor = monitor
        self._memory_probe = memory_probe
        self._counts: dict[str, int] = {}
        self._context: dict[str, ContextValue] = {}
        self._record: MetricRecord | None = None
        self._memory_start, _ = memory_probe()
        self._timer = Timer.start(clock)

    @beartype
    def checkpoint(self, name: str) -> None:
        self._timer.checkpoint(name)

    @beartype
    def add_count(self, name: str, value: int) -> None:
        self._counts[name] = value

    @beartype
    def increment_count(self, name: str, delta: int = 1) -> None:
        self._counts[name] = self._counts.get(name, 0) + delta

    @beartype
    def add_context(self, key: str, value: ContextValue) -> None:
        self._context[key] = value

    def end(self) -> MetricRecord:
        if self._record is not None:
            return self._record

        timing = self._timer.end()
        current, peak = self._memory_probe()
        memory = MemoryStats(current=current, peak=peak, delta=current - self._memory_start)
        context = {**self._context, TIMESTAMP_KEY: int(time.time())}

        if self.monitor is not None:
            candidate = MetricRecord(
                operation=self.operation,
                total=timing.total,
                phases=timing.checkpoints,
                memory=memory,
                counts=self._counts,
                context=context,
            )
            warnings = self.monitor.check_thresholds(candidate)
            if warnings:
                context[WARNINGS_KEY] = warnings
                for warning in warnings:
                    logger.warning(f"[PROFILE] {self.operation}: {warning}")

        self._record = MetricRecord(
            operation=self.operation,
            total=timing.total,
            phases=timing.checkpoints,
            memory=memory,
            counts=self._counts,
            context=context,
        )
        logger.debug(
            f"[PROFILE] {self.operation} completed in {timing.total * 1000:.2f}ms "
            f"({len(timing.checkpoints)} phases, mem={memory.current_mb:.2f}MB)"
        )
        return self._record

    def elapsed(self) -> float:
        return self._timer.elapsed()

    def current_memory(self) -> int:
        current, _ = self._memory_probe()
        return current


class NullProfiler:
    """Profiler used while profiling is disabled. Every call is inert."""

    def __init__(self, operation: str) -> None:
        self.operation = operation

    def checkpoint(self, name: str) -> None:
        pass

    def add_count(self, name: str, value: int) -> None:
        pass

    def increment_count(self, name: str, delta: int = 1) -> None:
        pass

    def add_context(self, key: str, value: ContextValue) -> None:
        pass

    def end(self) -> MetricRecord:
        return MetricRecord.empty()

    def elapsed(self) -> float:
        return 0.0

    def current_memory(self) -> int:
        return 0


@beartype
def start_profiler(
    operation: str,
    monitor: PerformanceMonitor | None = None,
    *,
    enabled: bool | None = None,
) -> ActiveProfiler | NullProfiler:
    """Start profiling an operation.

    Args:
        operation: Operation name
        monitor: Optional threshold monitor
        enabled: Overrides the process-wide switch when not None

    Returns:
        ActiveProfiler, or NullProfiler when profiling is disabled
    """
    if enabled is None:
        enabled = is_enabled()
    if not enabled:
        return NullProfiler(operation)
    return ActiveProfiler(operation, monitor)


@contextmanager
def profile_operation(
    operation: str,
    collector: "MetricsCollector | None" = None,
    monitor: PerformanceMonitor | None = None,
) -> Generator[ActiveProfiler | NullProfiler, None, None]:
    """Profile a block and optionally record the result into a collector.

    The profiler is ended even when the block raises. Records from a
    disabled profiler are not collected.

    Example:
        with profile_operation("load_accounts", collector) as profiler:
            rows = fetch()
            profiler.add_count("rows", len(rows))
    """
    profiler = start_profiler(operation, monitor)
    try:
        yield profiler
    finally:
        record = profiler.end()
        if collector is not None and not record.is_empty:
            collector.record(operation, record)


class _RecordingProfiler:
    """Delegates to a profiler and hands the finished record to its owner."""

    def __init__(
        self, wrapped: ActiveProfiler | NullProfiler, owner: "ProfilesOperations"
    ) -> None:
        self._wrapped = wrapped
        self._owner = owner
        self.operation = wrapped.operation

    def checkpoint(self, name: str) -> None:
        self._wrapped.checkpoint(name)

    def add_count(self, name: str, value: int) -> None:
        self._wrapped.add_count(name, value)

    def increment_count(self, name: str, delta: int = 1) -> None:
        self._wrapped.increment_count(name, delta)

    def add_context(self, key: str, value: ContextValue) -> None:
        self._wrapped.add_context(key, value)

    def end(self) -> MetricRecord:
        record = self._wrapped.end()
        self._owner.last_profiling_metrics = record
        return record

    def elapsed(self) -> float:
        return self._wrapped.elapsed()

    def current_memory(self) -> int:
        return self._wrapped.current_memory()


class ProfilesOperations:
    """Mixin for repositories and services that profile their own calls.

    Usage:
        class AccountRepository(ProfilesOperations):
            def fetch(self):
                profiler = self.start_profiling("fetch_accounts")
                try:
                    return self._query()
                finally:
                    profiler.end()

        repo.fetch()
        repo.last_profiling_metrics.total
    """

    last_profiling_metrics: MetricRecord | None = None
    profiling_monitor: PerformanceMonitor | None = None

    def start_profiling(self, operation: str) -> Profiler:
        return _RecordingProfiler(start_profiler(operation, self.profiling_monitor), self)

    def set_profiling_monitor(self, monitor: PerformanceMonitor | None) -> None:
        self.profiling_monitor = monitor

    def clear_profiling_metrics(self) -> None:
        self.last_profiling_metrics = None
