"""Environment-driven profiling configuration."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from beartype import beartype
from loguru import logger

from opmetrics._errors import ConfigurationError
from opmetrics._monitor import PerformanceMonitor
from opmetrics._profiler import ActiveProfiler, NullProfiler, start_profiler
from opmetrics._sampling import SamplingProfiler

ENVIRONMENT_VARIABLES = ("APP_ENV", "ENVIRONMENT", "ENV")
ENABLED_VARIABLE = "OPMETRICS_ENABLED"
DEFAULT_ENVIRONMENT = "production"
PRODUCTION_SAMPLING_RATE = 0.1

_DEVELOPMENT = frozenset({"development", "dev", "local"})
_TESTING = frozenset({"testing", "test"})
_PRODUCTION = frozenset({"production", "prod"})
_FALSY = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class ProfilingConfig:
    """Resolved profiling behaviour.

    Attributes:
        enabled: Whether operations are profiled at all
        sampling_rate: Fraction of operations profiled when enabled
        reason: Human-readable explanation of how this was decided
    """

    enabled: bool
    sampling_rate: float
    reason: str

    def __post_init__(self) -> None:
        if not 0.0 <= self.sampling_rate <= 1.0:
            raise ConfigurationError.invalid_rate("sampling_rate", self.sampling_rate)


class ContextAwareProfiler:
    """Picks full, sampled or disabled profiling from the environment.

    Defaults:
        - development / testing: full profiling
        - production (also the default when nothing is set): 10% sampling
        - OPMETRICS_ENABLED=0: disabled everywhere

    Args:
        environ: Environment mapping, os.environ when None
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ
        self._force_enabled = False
        self._forced_sampling_rate: float | None = None
        self._monitor: PerformanceMonitor | None = None
        self._sampler: SamplingProfiler | None = None

    @classmethod
    def create(cls) -> "ContextAwareProfiler":
        return cls()

    @beartype
    def force_enable(self, enabled: bool = True) -> "ContextAwareProfiler":
        """Profile regardless of environment."""
        self._force_enabled = enabled
        self._sampler = None
        return self

    @beartype
    def force_sampling_rate(self, rate: int | float) -> "ContextAwareProfiler":
        if not 0.0 <= rate <= 1.0:
            raise ConfigurationError.invalid_rate("sampling_rate", rate)
        self._forced_sampling_rate = float(rate)
        self._sampler = None
        return self

    @beartype
    def set_monitor(self, monitor: PerformanceMonitor) -> "ContextAwareProfiler":
        self._monitor = monitor
        self._sampler = None
        return self

    def detect_environment(self) -> str:
        for name in ENVIRONMENT_VARIABLES:
            value = self._environ.get(name)
            if value:
                return value.strip().lower()
        return DEFAULT_ENVIRONMENT

    def is_production(self) -> bool:
        return self.detect_environment() in _PRODUCTION

    def get_configuration(self) -> ProfilingConfig:
        if self._force_enabled:
            rate = self._forced_sampling_rate
            return ProfilingConfig(True, 1.0 if rate is None else rate, "Forced enabled")

        if self._environ.get(ENABLED_VARIABLE, "").strip().lower() in _FALSY:
            return ProfilingConfig(False, 0.0, f"Disabled by {ENABLED_VARIABLE}")

        env = self.detect_environment()
        if env in _DEVELOPMENT:
            return ProfilingConfig(True, 1.0, "Development environment")
        if env in _TESTING:
            return ProfilingConfig(True, 1.0, "Testing environment")
        if env in _PRODUCTION:
            rate = self._forced_sampling_rate
            return ProfilingConfig(
                True,
                PRODUCTION_SAMPLING_RATE if rate is None else rate,
                "Production with sampling",
            )
        return ProfilingConfig(True, 1.0, "Unknown environment (default)")

    @beartype
    def start(self, operation: str) -> ActiveProfiler | NullProfiler:
        config = self.get_configuration()
        logger.trace(f"[PROFILE] {operation}: {config.reason}")

        if not config.enabled:
            return NullProfiler(operation)

        if config.sampling_rate < 1.0:
            if self._sampler is None or self._sampler.sampling_rate != config.sampling_rate:
                self._sampler = SamplingProfiler(config.sampling_rate)
                if self._monitor is not None:
                    self._sampler.set_monitor(self._monitor)
            return self._sampler.start(operation)

        return start_profiler(operation, self._monitor, enabled=True)
