"""opmetrics: operation timing, memory and counter profiling with analysis.

Provides:
- Timer: Checkpoint timer that freezes once ended
- start_profiler / profile_operation: Profile one operation into a MetricRecord
- PerformanceMonitor: Threshold warnings attached to finished records
- MetricsCollector: Aggregates records with nearest-rank percentiles
- MetricsComparator: Before/after diff classifying improvement or regression
- SamplingProfiler / ContextAwareProfiler: Sampled or environment-driven profiling

Usage:
    from opmetrics import MetricsCollector, PerformanceMonitor, profile_operation

    collector = MetricsCollector()
    monitor = PerformanceMonitor.create().set_slow_operation_threshold(0.5)

    with profile_operation("import_batch", collector, monitor) as profiler:
        rows = load()
        profiler.checkpoint("load")
        profiler.add_count("rows", len(rows))

    collector.print_summary("Import Results")
"""

from opmetrics._collector import MetricsCollector, calculate_percentiles, percentile
from opmetrics._comparator import MetricsComparator
from opmetrics._config import ContextAwareProfiler, ProfilingConfig
from opmetrics._errors import ConfigurationError, InvalidOperationError, ProfilingError
from opmetrics._formatters import ConsoleFormatter, Formatter, JsonFormatter
from opmetrics._memory import memory_limit, process_memory
from opmetrics._monitor import PerformanceMonitor, ThresholdConfig
from opmetrics._profiler import (
    ActiveProfiler,
    NullProfiler,
    Profiler,
    ProfilesOperations,
    is_enabled,
    profile_operation,
    set_enabled,
    start_profiler,
)
from opmetrics._record import MemoryStats, MetricRecord
from opmetrics._sampling import SamplingProfiler
from opmetrics._storage import FileStorage, MemoryStorage, MetricsStorage
from opmetrics._timer import Timer, TimingResult

__all__ = [
    "ActiveProfiler",
    "ConfigurationError",
    "ConsoleFormatter",
    "ContextAwareProfiler",
    "FileStorage",
    "Formatter",
    "InvalidOperationError",
    "JsonFormatter",
    "MemoryStats",
    "MemoryStorage",
    "MetricRecord",
    "MetricsCollector",
    "MetricsComparator",
    "MetricsStorage",
    "NullProfiler",
    "PerformanceMonitor",
    "Profiler",
    "ProfilesOperations",
    "ProfilingConfig",
    "ProfilingError",
    "SamplingProfiler",
    "ThresholdConfig",
    "Timer",
    "TimingResult",
    "calculate_percentiles",
    "is_enabled",
    "memory_limit",
    "percentile",
    "process_memory",
    "profile_operation",
    "set_enabled",
    "start_profiler",
]

__version__ = "0.1.0"
