"""Shared fixtures: deterministic clock and memory probe."""

import pytest


class FakeClock:
    """Manually advanced clock returning fractional seconds."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMemoryProbe:
    """Returns scripted (current, peak) readings, repeating the last one."""

    def __init__(self, *readings: tuple[int, int]) -> None:
        self._readings = list(readings)

    def __call__(self) -> tuple[int, int]:
        if len(self._readings) > 1:
            return self._readings.pop(0)
        return self._readings[0]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_probe() -> type[FakeMemoryProbe]:
    return FakeMemoryProbe
