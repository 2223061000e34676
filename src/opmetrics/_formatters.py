"""Text renderings of serialized metric records."""

import json
from typing import Any, Protocol


class Formatter(Protocol):
    def format(self, metrics: dict[str, Any]) -> str: ...


class ConsoleFormatter:
    """Human-readable multi-line summary of one record.

    Args:
        show_percentages: Show each phase as a share of the total
        indent_size: Spaces before phase and warning lines
    """

    def __init__(self, show_percentages: bool = True, indent_size: int = 2) -> None:
        self.show_percentages = show_percentages
        self.indent = " " * indent_size

    def format(self, metrics: dict[str, Any]) -> str:
        lines: list[str] = []

        if "operation" in metrics:
            lines.append(f"Operation: {metrics['operation']}")

        total = metrics.get("total")
        if total is not None:
            lines.append(f"Total: {total * 1000:.2f}ms")

        phases = metrics.get("phases") or {}
        if phases:
            lines.append("Phases:")
            for phase, duration in phases.items():
                if self.show_percentages and total:
                    lines.append(
                        f"{self.indent}{phase}: {duration * 1000:8.2f}ms "
                        f"({duration / total * 100:5.1f}%)"
                    )
                else:
                    lines.append(f"{self.indent}{phase}: {duration * 1000:.2f}ms")

        memory = metrics.get("memory") or {}
        parts = []
        if "current_mb" in memory:
            parts.append(f"{memory['current_mb']:.1f}MB")
        if "peak_mb" in memory:
            parts.append(f"peak: {memory['peak_mb']:.1f}MB")
        if "delta_mb" in memory:
            sign = "+" if memory["delta_mb"] >= 0 else ""
            parts.append(f"Δ{sign}{memory['delta_mb']:.1f}MB")
        if parts:
            lines.append(f"Memory: {', '.join(parts)}")

        counts = metrics.get("counts") or {}
        if counts:
            lines.append("Counts: " + ", ".join(f"{name}: {value}" for name, value in counts.items()))

        warnings = (metrics.get("context") or {}).get("warnings") or []
        if warnings:
            lines.append("Warnings:")
            lines.extend(f"{self.indent}! {warning}" for warning in warnings)

        return "\n".join(lines)


class JsonFormatter:
    """JSON export of one record (or any plain-data result)."""

    def __init__(self, pretty_print: bool = True) -> None:
        self.pretty_print = pretty_print

    def format(self, metrics: dict[str, Any]) -> str:
        return json.dumps(metrics, indent=2 if self.pretty_print else None, ensure_ascii=False)
