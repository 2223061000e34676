"""Immutable metric record produced when an operation is finalized."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from opmetrics._memory import bytes_to_mb

ContextValue = str | int | float | bool | None | Mapping[str, Any] | Sequence[Any]

WARNINGS_KEY = "warnings"
TIMESTAMP_KEY = "timestamp"


@dataclass(frozen=True)
class MemoryStats:
    """Memory snapshot in bytes. delta may be negative (memory released)."""

    current: int
    peak: int
    delta: int

    @property
    def current_mb(self) -> float:
        return bytes_to_mb(self.current)

    @property
    def peak_mb(self) -> float:
        return bytes_to_mb(self.peak)

    @property
    def delta_mb(self) -> float:
        return bytes_to_mb(self.delta)

    def to_dict(self) -> dict[str, int | float]:
        return {
            "current": self.current,
            "peak": self.peak,
            "delta": self.delta,
            "current_mb": self.current_mb,
            "peak_mb": self.peak_mb,
            "delta_mb": self.delta_mb,
        }


def numeric_or_zero(value: Any) -> float:
    """Numbers as float; anything else (None, strings, bools) as 0.0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _frozen(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _frozen(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_frozen(item) for item in value)
    return value


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class MetricRecord:
    """Snapshot of one finished operation.

    Empty sub-maps mean "no data" and are left out of to_dict(). The record
    never changes after construction: maps are copied and exposed read-only,
    nested context mappings and sequences included. Records are unhashable.

    Attributes:
        operation: Caller-chosen operation name
        total: Duration in seconds (MUST be >= 0)
        phases: Checkpoint name -> seconds since start, in encounter order
        memory: Memory snapshot, or None when not measured
        counts: Caller-defined integer counters
        context: Free-form context (timestamp, warnings, caller keys)
    """

    operation: str
    total: float
    phases: Mapping[str, float] = field(default_factory=dict)
    memory: MemoryStats | None = None
    counts: Mapping[str, int] = field(default_factory=dict)
    context: Mapping[str, ContextValue] = field(default_factory=dict)

    __hash__ = None

    def __post_init__(self) -> None:
        assert self.total >= 0, f"Total duration must be non-negative: {self.total}"
        object.__setattr__(self, "phases", MappingProxyType(dict(self.phases)))
        object.__setattr__(self, "counts", MappingProxyType(dict(self.counts)))
        object.__setattr__(self, "context", _frozen(self.context))

    @classmethod
    def empty(cls) -> "MetricRecord":
        """The record returned by a disabled profiler."""
        return cls(operation="", total=0.0)

    @property
    def is_empty(self) -> bool:
        return (
            not self.operation
            and self.total == 0.0
            and not self.phases
            and self.memory is None
            and not self.counts
            and not self.context
        )

    @property
    def warnings(self) -> tuple[str, ...]:
        value = self.context.get(WARNINGS_KEY, ())
        return tuple(value) if isinstance(value, (list, tuple)) else ()

    def phase(self, name: str) -> float | None:
        return self.phases.get(name)

    def count(self, name: str) -> int | None:
        return self.counts.get(name)

    @property
    def memory_mb(self) -> float:
        """Current memory in MB, 0.0 when memory was not measured."""
        return self.memory.current_mb if self.memory is not None else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain data. A disabled-profiler record becomes {}."""
        if self.is_empty:
            return {}

        data: dict[str, Any] = {
            "operation": self.operation,
            "total": self.total,
        }
        if self.phases:
            data["phases"] = dict(self.phases)
        if self.memory is not None:
            data["memory"] = self.memory.to_dict()
        if self.counts:
            data["counts"] = dict(self.counts)
        if self.context:
            data["context"] = _plain(self.context)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricRecord":
        """Rebuild a record from to_dict() output. MB fields are recomputed."""
        if not data:
            return cls.empty()

        memory = None
        raw_memory = data.get("memory")
        if raw_memory:
            memory = MemoryStats(
                current=int(raw_memory.get("current", 0)),
                peak=int(raw_memory.get("peak", 0)),
                delta=int(raw_memory.get("delta", 0)),
            )

        return cls(
            operation=str(data.get("operation", "")),
            total=float(data.get("total", 0.0)),
            phases={name: float(value) for name, value in data.get("phases", {}).items()},
            memory=memory,
            counts={name: int(value) for name, value in data.get("counts", {}).items()},
            context=data.get("context", {}),
        )
