"""Threshold checks that turn a MetricRecord into warning strings."""

from collections.abc import Callable
from dataclasses import dataclass, replace

from beartype import beartype

from opmetrics._errors import ConfigurationError
from opmetrics._memory import memory_limit
from opmetrics._record import MetricRecord

ROWS_COUNTER = "rows"


@dataclass(frozen=True)
class ThresholdConfig:
    """Performance thresholds, validated on construction.

    Attributes:
        slow_operation: Seconds above which an operation is slow (> 0)
        slow_phase: Seconds since start above which a phase is slow (> 0)
        high_memory: Fraction of the process memory limit, in (0, 1]
        high_row_count: Value of the "rows" counter above which to warn, or None
    """

    slow_operation: float = 1.0
    slow_phase: float = 0.5
    high_memory: float = 0.7
    high_row_count: int | None = None

    def __post_init__(self) -> None:
        if not self.slow_operation > 0:
            raise ConfigurationError.invalid_threshold("slow_operation", self.slow_operation)
        if not self.slow_phase > 0:
            raise ConfigurationError.invalid_threshold("slow_phase", self.slow_phase)
        if not 0 < self.high_memory <= 1.0:
            raise ConfigurationError.invalid_threshold("high_memory", self.high_memory)
        if self.high_row_count is not None and self.high_row_count <= 0:
            raise ConfigurationError.invalid_threshold(
                "high_row_count", float(self.high_row_count)
            )


class PerformanceMonitor:
    """Compares finished operations against configured thresholds.

    Setters are fluent and validate immediately; an invalid value raises
    ConfigurationError and leaves the previous configuration in place.

    Example:
        monitor = (
            PerformanceMonitor.create()
            .set_slow_operation_threshold(0.5)
            .set_high_row_count_threshold(10_000)
        )
        profiler = start_profiler("import_batch", monitor)
    """

    @beartype
    def __init__(
        self,
        config: ThresholdConfig | None = None,
        memory_limit_resolver: Callable[[], int | None] = memory_limit,
    ) -> None:
        self._config = config if config is not None else ThresholdConfig()
        self._memory_limit_resolver = memory_limit_resolver

    @classmethod
    def create(cls) -> "PerformanceMonitor":
        """Create a monitor with default thresholds."""
        return cls()

    @property
    def config(self) -> ThresholdConfig:
        return self._config

    @beartype
    def set_slow_operation_threshold(self, seconds: int | float) -> "PerformanceMonitor":
        self._config = replace(self._config, slow_operation=float(seconds))
        return self

    @beartype
    def set_slow_phase_threshold(self, seconds: int | float) -> "PerformanceMonitor":
        self._config = replace(self._config, slow_phase=float(seconds))
        return self

    @beartype
    def set_high_memory_threshold(self, fraction: int | float) -> "PerformanceMonitor":
        self._config = replace(self._config, high_memory=float(fraction))
        return self

    @beartype
    def set_high_row_count_threshold(self, rows: int | None) -> "PerformanceMonitor":
        self._config = replace(self._config, high_row_count=rows)
        return self

    @beartype
    def check_thresholds(self, record: MetricRecord) -> list[str]:
        """Return every warning the record triggers.

        Order: operation, phases (encounter order), memory, row count.
        """
        config = self._config
        warnings: list[str] = []

        if record.total > config.slow_operation:
            warnings.append(
                f"Slow operation: {record.total:.2f}s "
                f"(threshold: {config.slow_operation:.2f}s)"
            )

        for phase, duration in record.phases.items():
            if duration > config.slow_phase:
                warnings.append(
                    f'Slow phase "{phase}": {duration:.2f}s '
                    f"(threshold: {config.slow_phase:.2f}s)"
                )

        if record.memory is not None:
            limit = self._memory_limit_resolver()
            # no limit means unbounded
            if limit:
                fraction = record.memory.peak / limit
                if fraction > config.high_memory:
                    warnings.append(
                        f"High memory usage: {record.memory.peak / 1024 / 1024:.1f}MB "
                        f"({fraction * 100:.1f}% of limit, "
                        f"threshold: {config.high_memory * 100:.0f}%)"
                    )

        if config.high_row_count is not None:
            rows = record.count(ROWS_COUNTER)
            if rows is not None and rows > config.high_row_count:
                warnings.append(
                    f"High row count: {rows} (threshold: {config.high_row_count})"
                )

        return warnings
