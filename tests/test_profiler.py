"""Tests for active/null profilers, the global switch and helpers."""

import threading
import time
from collections.abc import Generator

import pytest
from beartype.roar import BeartypeCallHintParamViolation
from loguru import logger

from opmetrics import (
    ActiveProfiler,
    InvalidOperationError,
    MetricsCollector,
    NullProfiler,
    PerformanceMonitor,
    Profiler,
    ProfilesOperations,
    is_enabled,
    profile_operation,
    set_enabled,
    start_profiler,
)

MB = 1024 * 1024


@pytest.fixture(autouse=True)
def profiling_enabled() -> Generator[None, None, None]:
    set_enabled(True)
    yield
    set_enabled(True)


def _unbounded() -> None:
    return None


# ---------------------------------------------------------------------------
# ActiveProfiler
# ---------------------------------------------------------------------------

class TestActiveProfiler:
    def test_end_builds_full_record(self, clock, make_probe):
        probe = make_probe((10 * MB, 12 * MB), (15 * MB, 20 * MB))
        profiler = ActiveProfiler("load_accounts", memory_probe=probe, clock=clock)
        clock.advance(0.1)
        profiler.checkpoint("query")
        clock.advance(0.2)
        profiler.add_count("rows", 100)
        profiler.add_context("shard", "eu-1")

        record = profiler.end()
        assert record.operation == "load_accounts"
        assert record.total == pytest.approx(0.3)
        assert record.phases == {"query": pytest.approx(0.1)}
        assert record.counts == {"rows": 100}
        assert record.context["shard"] == "eu-1"
        assert isinstance(record.context["timestamp"], int)
        assert record.memory.current == 15 * MB
        assert record.memory.peak == 20 * MB
        assert record.memory.delta == 5 * MB

    def test_add_count_overwrites(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        profiler.add_count("rows", 50)
        profiler.add_count("rows", 10)
        assert profiler.end().counts == {"rows": 10}

    def test_increment_count_starts_at_zero(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        profiler.increment_count("operations")
        profiler.increment_count("operations")
        profiler.increment_count("operations", 3)
        assert profiler.end().counts == {"operations": 5}

    def test_add_context_overwrites(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        profiler.add_context("user", "alice")
        profiler.add_context("user", "bob")
        assert profiler.end().context["user"] == "bob"

    def test_end_is_fully_idempotent(self, clock, make_probe):
        probe = make_probe((1 * MB, 1 * MB), (2 * MB, 2 * MB), (9 * MB, 9 * MB))
        profiler = ActiveProfiler("op", memory_probe=probe, clock=clock)
        profiler.add_count("rows", 1)
        clock.advance(0.5)
        first = profiler.end()

        clock.advance(3.0)
        profiler.add_count("rows", 999)
        profiler.add_context("late", True)
        second = profiler.end()

        assert second is first
        assert second.total == pytest.approx(0.5)
        assert second.counts == {"rows": 1}
        assert "late" not in second.context
        assert second.memory.current == 2 * MB

    def test_checkpoint_after_end_raises(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        profiler.end()
        with pytest.raises(InvalidOperationError):
            profiler.checkpoint("late")

    def test_monitor_warnings_attached_to_context(self, clock, make_probe):
        monitor = PerformanceMonitor(memory_limit_resolver=_unbounded)
        monitor.set_slow_operation_threshold(0.1).set_slow_phase_threshold(0.05)
        profiler = ActiveProfiler("op", monitor, memory_probe=make_probe((0, 0)), clock=clock)
        clock.advance(0.2)
        profiler.checkpoint("fetch")

        record = profiler.end()
        assert len(record.warnings) == 2
        assert record.warnings[0].startswith("Slow operation")
        assert record.warnings[1].startswith('Slow phase "fetch"')
        assert record.to_dict()["context"]["warnings"] == list(record.warnings)

    def test_no_warnings_key_when_monitor_quiet(self, clock, make_probe):
        monitor = PerformanceMonitor(memory_limit_resolver=_unbounded)
        profiler = ActiveProfiler("op", monitor, memory_probe=make_probe((0, 0)), clock=clock)
        clock.advance(0.01)
        record = profiler.end()
        assert "warnings" not in record.context
        assert record.warnings == ()

    def test_warnings_frozen_after_end(self, clock, make_probe):
        monitor = PerformanceMonitor(memory_limit_resolver=_unbounded)
        monitor.set_slow_operation_threshold(0.1)
        profiler = ActiveProfiler("op", monitor, memory_probe=make_probe((0, 0)), clock=clock)
        clock.advance(0.2)
        record = profiler.end()

        with pytest.raises(AttributeError):
            record.context["warnings"].append("injected")
        with pytest.raises(TypeError):
            record.context["warnings"] = ()
        assert len(profiler.end().warnings) == 1

    def test_nested_context_frozen_after_end(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        meta = {"tags": ["import"], "owner": "etl"}
        profiler.add_context("meta", meta)
        record = profiler.end()

        meta["tags"].append("late")
        with pytest.raises(AttributeError):
            record.context["meta"]["tags"].append("late")
        with pytest.raises(TypeError):
            record.context["meta"]["owner"] = "other"
        assert profiler.end().context["meta"]["tags"] == ("import",)

    def test_non_sequence_warnings_context_is_ignored(self, clock, make_probe):
        monitor = PerformanceMonitor(memory_limit_resolver=_unbounded)
        profiler = ActiveProfiler("op", monitor, memory_probe=make_probe((0, 0)), clock=clock)
        profiler.add_context("warnings", 5)
        clock.advance(0.01)
        record = profiler.end()
        assert record.context["warnings"] == 5
        assert record.warnings == ()

    def test_warnings_are_logged(self, clock, make_probe):
        messages: list[str] = []
        sink_id = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            monitor = PerformanceMonitor(memory_limit_resolver=_unbounded)
            monitor.set_slow_operation_threshold(0.1)
            profiler = ActiveProfiler("slow_op", monitor, memory_probe=make_probe((0, 0)), clock=clock)
            clock.advance(0.5)
            profiler.end()
        finally:
            logger.remove(sink_id)

        assert len(messages) == 1
        assert "slow_op" in messages[0]
        assert "Slow operation" in messages[0]

    def test_elapsed_and_current_memory(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((3 * MB, 4 * MB)), clock=clock)
        clock.advance(0.4)
        assert profiler.elapsed() == pytest.approx(0.4)
        assert profiler.current_memory() == 3 * MB

    def test_real_probe_and_clock(self):
        profiler = ActiveProfiler("real")
        time.sleep(0.01)
        record = profiler.end()
        assert record.total >= 0.01
        assert record.memory.current > 0
        assert record.memory.peak >= record.memory.current

    def test_empty_operation_name_crashes(self):
        with pytest.raises(AssertionError, match="non-empty"):
            ActiveProfiler("")

    def test_beartype_rejects_non_int_count(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        with pytest.raises(BeartypeCallHintParamViolation):
            profiler.add_count("rows", "many")

    def test_beartype_rejects_unsupported_context_value(self, clock, make_probe):
        profiler = ActiveProfiler("op", memory_probe=make_probe((0, 0)), clock=clock)
        with pytest.raises(BeartypeCallHintParamViolation):
            profiler.add_context("handle", object())


# ---------------------------------------------------------------------------
# NullProfiler and the global switch
# ---------------------------------------------------------------------------

class TestNullProfiler:
    def test_every_call_is_inert(self):
        profiler = NullProfiler("op")
        profiler.checkpoint("")
        profiler.add_count("rows", 1)
        profiler.increment_count("rows")
        profiler.add_context("key", "value")

        record = profiler.end()
        assert record.is_empty
        assert record.to_dict() == {}
        assert profiler.elapsed() == 0.0
        assert profiler.current_memory() == 0

    def test_both_variants_satisfy_protocol(self):
        assert isinstance(NullProfiler("op"), Profiler)
        assert isinstance(ActiveProfiler("op"), Profiler)


class TestGlobalSwitch:
    def test_enabled_by_default(self):
        assert is_enabled()
        assert isinstance(start_profiler("op"), ActiveProfiler)

    def test_disabled_returns_null_profiler(self):
        set_enabled(False)
        profiler = start_profiler("op")
        assert isinstance(profiler, NullProfiler)
        profiler.checkpoint("phase")
        profiler.add_count("rows", 10)
        assert profiler.end().to_dict() == {}

    def test_toggle_affects_only_new_profilers(self):
        active = start_profiler("before")
        set_enabled(False)
        disabled = start_profiler("after")

        assert isinstance(active, ActiveProfiler)
        assert isinstance(disabled, NullProfiler)
        assert active.end().operation == "before"

    def test_explicit_enabled_overrides_switch(self):
        set_enabled(False)
        assert isinstance(start_profiler("op", enabled=True), ActiveProfiler)
        set_enabled(True)
        assert isinstance(start_profiler("op", enabled=False), NullProfiler)

    def test_monitor_passed_to_active_profiler(self):
        monitor = PerformanceMonitor.create()
        profiler = start_profiler("op", monitor)
        assert profiler.monitor is monitor

    def test_concurrent_toggling_never_corrupts(self):
        errors: list[BaseException] = []

        def toggle() -> None:
            for i in range(200):
                set_enabled(i % 2 == 0)

        def start_many() -> None:
            try:
                for _ in range(200):
                    profiler = start_profiler("op")
                    assert isinstance(profiler, (ActiveProfiler, NullProfiler))
                    profiler.end()
            except BaseException as e:
                errors.append(e)

        threads = [threading.Thread(target=toggle)] + [
            threading.Thread(target=start_many) for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []


# ---------------------------------------------------------------------------
# profile_operation
# ---------------------------------------------------------------------------

class TestProfileOperation:
    def test_records_into_collector(self):
        collector = MetricsCollector()
        with profile_operation("timed_op", collector) as profiler:
            profiler.add_count("rows", 5)
            time.sleep(0.01)

        entries = collector.get_by_operation("timed_op")
        assert len(entries) == 1
        assert entries[0]["metrics"]["total"] >= 0.01
        assert entries[0]["metrics"]["counts"] == {"rows": 5}

    def test_ends_profiler_on_exception(self):
        collector = MetricsCollector()
        with pytest.raises(RuntimeError, match="boom"):
            with profile_operation("failing", collector):
                raise RuntimeError("boom")
        assert collector.count() == 1

    def test_disabled_profiling_records_nothing(self):
        set_enabled(False)
        collector = MetricsCollector()
        with profile_operation("noop", collector) as profiler:
            profiler.checkpoint("phase")
        assert collector.count() == 0

    def test_without_collector_still_executes(self):
        executed = False
        with profile_operation("solo") as profiler:
            executed = True
        assert executed
        assert profiler.end().operation == "solo"


# ---------------------------------------------------------------------------
# ProfilesOperations mixin
# ---------------------------------------------------------------------------

class _Repository(ProfilesOperations):
    def fetch(self) -> list[int]:
        profiler = self.start_profiling("fetch_rows")
        try:
            rows = [1, 2, 3]
            profiler.add_count("rows", len(rows))
            return rows
        finally:
            profiler.end()


class TestProfilesOperations:
    def test_last_metrics_captured_on_end(self):
        repo = _Repository()
        assert repo.last_profiling_metrics is None
        repo.fetch()
        assert repo.last_profiling_metrics.operation == "fetch_rows"
        assert repo.last_profiling_metrics.count("rows") == 3

    def test_monitor_applies_to_started_profilers(self):
        repo = _Repository()
        monitor = PerformanceMonitor(memory_limit_resolver=_unbounded)
        repo.set_profiling_monitor(monitor.set_high_row_count_threshold(2))
        repo.fetch()
        assert repo.last_profiling_metrics.warnings == ("High row count: 3 (threshold: 2)",)

    def test_clear_profiling_metrics(self):
        repo = _Repository()
        repo.fetch()
        repo.clear_profiling_metrics()
        assert repo.last_profiling_metrics is None

    def test_instances_do_not_share_metrics(self):
        first, second = _Repository(), _Repository()
        first.fetch()
        assert second.last_profiling_metrics is None
