"""Before/after comparison of two metric records."""

import math
from collections.abc import Mapping
from typing import Any

from beartype import beartype

from opmetrics._errors import ConfigurationError
from opmetrics._memory import bytes_to_mb
from opmetrics._record import MetricRecord, numeric_or_zero

MEMORY_MESSAGE_THRESHOLD = 10.0
PHASE_MESSAGE_THRESHOLD = 20.0


def _as_dict(metrics: MetricRecord | Mapping[str, Any]) -> Mapping[str, Any]:
    return metrics.to_dict() if isinstance(metrics, MetricRecord) else metrics


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _percentage(before: float, absolute: float) -> float:
    return absolute / before * 100 if before > 0 else 0.0


def _union_keys(first: Mapping[str, Any], second: Mapping[str, Any]) -> list[str]:
    return list(dict.fromkeys([*first, *second]))


class MetricsComparator:
    """Diffs two records to verify an optimization or catch a regression.

    Missing fields never fail: absent numbers count as 0, absent maps as
    empty. A duration increase above the regression threshold (a fraction,
    default 0.1 = 10%) marks the comparison as regressed.

    Example:
        result = MetricsComparator().compare(baseline, candidate)
        if result["summary"]["status"] == "regressed":
            print("\\n".join(result["summary"]["messages"]))
    """

    def __init__(self) -> None:
        self._regression_threshold = 0.1

    @property
    def regression_threshold(self) -> float:
        return self._regression_threshold

    @beartype
    def set_regression_threshold(self, threshold: int | float) -> "MetricsComparator":
        if not math.isfinite(threshold) or threshold < 0:
            raise ConfigurationError.invalid_threshold("regression", threshold)
        self._regression_threshold = float(threshold)
        return self

    @beartype
    def compare(
        self,
        before: MetricRecord | Mapping[str, Any],
        after: MetricRecord | Mapping[str, Any],
    ) -> dict[str, Any]:
        """Compare baseline metrics against current metrics.

        Returns:
            Dictionary with duration, memory, phases, counts and summary.
        """
        before, after = _as_dict(before), _as_dict(after)
        comparison: dict[str, Any] = {
            "duration": self._compare_duration(before, after),
            "memory": self._compare_memory(before, after),
            "phases": self._compare_phases(before, after),
            "counts": self._compare_counts(before, after),
        }
        comparison["summary"] = self._summarize(comparison)
        return comparison

    def _compare_duration(
        self, before: Mapping[str, Any], after: Mapping[str, Any]
    ) -> dict[str, Any]:
        before_total = numeric_or_zero(before.get("total"))
        after_total = numeric_or_zero(after.get("total"))
        absolute = after_total - before_total
        percentage = _percentage(before_total, absolute)

        return {
            "before": before_total,
            "after": after_total,
            "absolute_change": absolute,
            "percentage_change": percentage,
            "improved": absolute < 0,
            "regressed": percentage > self._regression_threshold * 100,
        }

    @staticmethod
    def _compare_memory(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, Any]:
        before_memory = int(numeric_or_zero(_mapping(before.get("memory")).get("current")))
        after_memory = int(numeric_or_zero(_mapping(after.get("memory")).get("current")))
        absolute = after_memory - before_memory

        return {
            "before_mb": bytes_to_mb(before_memory),
            "after_mb": bytes_to_mb(after_memory),
            "absolute_change_mb": bytes_to_mb(absolute),
            "percentage_change": _percentage(before_memory, absolute),
            "improved": absolute < 0,
        }

    @staticmethod
    def _compare_phases(
        before: Mapping[str, Any], after: Mapping[str, Any]
    ) -> dict[str, dict[str, Any]]:
        before_phases = _mapping(before.get("phases"))
        after_phases = _mapping(after.get("phases"))

        comparison = {}
        for phase in _union_keys(before_phases, after_phases):
            before_duration = numeric_or_zero(before_phases.get(phase))
            after_duration = numeric_or_zero(after_phases.get(phase))
            absolute = after_duration - before_duration
            comparison[str(phase)] = {
                "before": before_duration,
                "after": after_duration,
                "absolute_change": absolute,
                "percentage_change": _percentage(before_duration, absolute),
                "improved": absolute < 0,
            }
        return comparison

    @staticmethod
    def _compare_counts(
        before: Mapping[str, Any], after: Mapping[str, Any]
    ) -> dict[str, dict[str, int]]:
        before_counts = _mapping(before.get("counts"))
        after_counts = _mapping(after.get("counts"))

        comparison = {}
        for name in _union_keys(before_counts, after_counts):
            before_value = int(numeric_or_zero(before_counts.get(name)))
            after_value = int(numeric_or_zero(after_counts.get(name)))
            comparison[str(name)] = {
                "before": before_value,
                "after": after_value,
                "change": after_value - before_value,
            }
        return comparison

    @staticmethod
    def _summarize(comparison: Mapping[str, Any]) -> dict[str, Any]:
        duration = comparison["duration"]
        memory = comparison["memory"]
        percentage = duration["percentage_change"]
        messages: list[str] = []
        status = "unchanged"

        if duration["regressed"]:
            status = "regressed"
            messages.append(
                f"Performance regression: {percentage:.1f}% slower "
                f"({duration['before']:.2f}s → {duration['after']:.2f}s)"
            )
        elif duration["improved"]:
            status = "improved"
            messages.append(
                f"Performance improvement: {abs(percentage):.1f}% faster "
                f"({duration['before']:.2f}s → {duration['after']:.2f}s)"
            )

        if abs(memory["percentage_change"]) > MEMORY_MESSAGE_THRESHOLD:
            verb = "reduced" if memory["improved"] else "increased"
            messages.append(
                f"Memory {verb}: {abs(memory['percentage_change']):.1f}% "
                f"({memory['before_mb']:.1f}MB → {memory['after_mb']:.1f}MB)"
            )

        significant = [
            phase
            for phase in comparison["phases"].values()
            if abs(phase["percentage_change"]) > PHASE_MESSAGE_THRESHOLD
        ]
        if significant:
            messages.append(f"{len(significant)} phases changed significantly")

        return {
            "status": status,
            "messages": messages,
            "overall_change_percent": percentage,
        }
