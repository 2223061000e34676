"""Process memory readings.

All readings are in bytes. Peak is the process-wide high-water mark, so
operations running concurrently in one process share it.
"""

import sys
from pathlib import Path

import psutil

_CGROUP_LIMIT_FILES = (
    Path("/sys/fs/cgroup/memory.max"),
    Path("/sys/fs/cgroup/memory/memory.limit_in_bytes"),
)

# cgroup v1 reports "no limit" as a huge page-aligned number
_CGROUP_V1_UNLIMITED = 1 << 62


def bytes_to_mb(value: int | float) -> float:
    """Convert bytes to megabytes rounded to 2 decimals."""
    return round(value / 1024 / 1024, 2)


def _peak_rss(info) -> int:
    if psutil.WINDOWS:
        return int(info.peak_wset)

    import resource

    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    return int(max_rss if sys.platform == "darwin" else max_rss * 1024)


def process_memory() -> tuple[int, int]:
    """Return (current_rss_bytes, peak_rss_bytes) for this process."""
    info = psutil.Process().memory_info()
    current = int(info.rss)
    return current, max(current, _peak_rss(info))


def _rlimit_bytes() -> int | None:
    if not hasattr(psutil, "RLIMIT_AS"):
        return None
    soft, _hard = psutil.Process().rlimit(psutil.RLIMIT_AS)
    if soft == psutil.RLIM_INFINITY or soft <= 0:
        return None
    return int(soft)


def _cgroup_limit_bytes() -> int | None:
    for path in _CGROUP_LIMIT_FILES:
        try:
            raw = path.read_text().strip()
        except OSError:
            continue
        if raw == "max" or not raw.isdigit():
            return None
        value = int(raw)
        return value if 0 < value < _CGROUP_V1_UNLIMITED else None
    return None


def memory_limit() -> int | None:
    """Return the memory cap for this process in bytes, or None if unbounded.

    The smaller of the address-space rlimit and the cgroup memory limit wins.
    """
    limits = [limit for limit in (_rlimit_bytes(), _cgroup_limit_bytes()) if limit]
    return min(limits) if limits else None
