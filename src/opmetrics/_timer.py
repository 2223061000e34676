"""Checkpoint timer."""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from beartype import beartype

from opmetrics._errors import InvalidOperationError


@dataclass(frozen=True)
class TimingResult:
    """Frozen outcome of Timer.end().

    Attributes:
        total: Seconds between start and end (>= 0)
        checkpoints: Checkpoint name -> seconds since start, in recording order
    """

    total: float
    checkpoints: Mapping[str, float] = field(default_factory=dict)


class Timer:
    """Wall-clock timer with named checkpoints.

    Checkpoints record elapsed time since start, not since the previous
    checkpoint. Once ended the timer is frozen: elapsed() returns the final
    value, end() returns the same TimingResult, checkpoint() raises.

    Example:
        timer = Timer.start()
        load()
        timer.checkpoint("load")
        transform()
        result = timer.end()
        print(result.checkpoints["load"], result.total)

    Design by Contract:
        - elapsed >= 0 (crashes if the clock went backwards)
        - checkpoint names are non-blank
    """

    @beartype
    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._start: float = clock()
        self._end: float | None = None
        self._checkpoints: dict[str, float] = {}
        self._result: TimingResult | None = None

    @classmethod
    def start(cls, clock: Callable[[], float] = time.perf_counter) -> "Timer":
        return cls(clock)

    @property
    def is_ended(self) -> bool:
        return self._end is not None

    @beartype
    def checkpoint(self, name: str) -> None:
        """Record elapsed-since-start under name (last write wins)."""
        if self._end is not None:
            raise InvalidOperationError.invalid_checkpoint(f"{name} (timer already ended)")
        if not name.strip():
            raise InvalidOperationError.invalid_checkpoint("empty checkpoint name")

        self._checkpoints[name] = self._elapsed_since_start(self._clock())

    def end(self) -> TimingResult:
        """Stop the timer. Idempotent: later calls return the first result."""
        if self._result is None:
            self._end = self._clock()
            self._result = TimingResult(
                total=self.elapsed(),
                checkpoints=MappingProxyType(dict(self._checkpoints)),
            )
        return self._result

    def elapsed(self) -> float:
        now = self._end if self._end is not None else self._clock()
        return self._elapsed_since_start(now)

    def _elapsed_since_start(self, now: float) -> float:
        elapsed = now - self._start
        assert elapsed >= 0, (
            f"Elapsed time cannot be negative: {elapsed:.6f}s. "
            f"System clock went backwards or timing bug."
        )
        return elapsed

    def __enter__(self) -> "Timer":
        return self

    def __exit__(self, *args: Any) -> None:
        self.end()
