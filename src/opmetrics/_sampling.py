"""Probabilistic admission of operations to full profiling."""

import random

from beartype import beartype

from opmetrics._errors import ConfigurationError
from opmetrics._monitor import PerformanceMonitor
from opmetrics._profiler import ActiveProfiler, NullProfiler


class SamplingProfiler:
    """Profiles only a fraction of operations to bound overhead.

    Args:
        sampling_rate: Fraction of operations profiled, 0.0 to 1.0 (0.1 = 10%)
        rng: Random source, injectable for deterministic tests

    Example:
        sampler = SamplingProfiler(0.05).set_monitor(monitor)
        profiler = sampler.start("handle_request")
    """

    @beartype
    def __init__(self, sampling_rate: int | float = 0.1, rng: random.Random | None = None) -> None:
        if not 0.0 <= sampling_rate <= 1.0:
            raise ConfigurationError.invalid_rate("sampling_rate", sampling_rate)
        self._sampling_rate = float(sampling_rate)
        self._rng = rng if rng is not None else random.Random()
        self._monitor: PerformanceMonitor | None = None

    @property
    def sampling_rate(self) -> float:
        return self._sampling_rate

    @beartype
    def set_monitor(self, monitor: PerformanceMonitor) -> "SamplingProfiler":
        self._monitor = monitor
        return self

    def should_sample(self) -> bool:
        if self._sampling_rate == 0.0:
            return False
        if self._sampling_rate == 1.0:
            return True
        return self._rng.random() < self._sampling_rate

    @beartype
    def start(self, operation: str) -> ActiveProfiler | NullProfiler:
        """Start an active profiler if this operation is sampled."""
        if not self.should_sample():
            return NullProfiler(operation)
        return ActiveProfiler(operation, self._monitor)
