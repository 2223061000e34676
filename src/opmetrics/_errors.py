"""Exception hierarchy for opmetrics.

Programmer errors (bad checkpoint names, checkpoints on an ended timer) and
invalid configuration values are raised immediately at the call site.
Nothing here is retried or absorbed: the core performs no I/O.
"""


class ProfilingError(RuntimeError):
    """Base class for all opmetrics errors."""


class ConfigurationError(ProfilingError, ValueError):
    """A threshold or rate value is outside its allowed range."""

    @classmethod
    def invalid_threshold(cls, name: str, value: float) -> "ConfigurationError":
        return cls(f'Invalid threshold "{name}": {value:.2f}')

    @classmethod
    def invalid_rate(cls, name: str, value: float) -> "ConfigurationError":
        return cls(f'Invalid rate "{name}": {value} (must be between 0.0 and 1.0)')


class InvalidOperationError(ProfilingError):
    """A call that is never valid in the current state (caller bug)."""

    @classmethod
    def invalid_checkpoint(cls, reason: str) -> "InvalidOperationError":
        return cls(f'Invalid checkpoint name: "{reason}"')
