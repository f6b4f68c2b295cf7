"""
Process probes — memory, uptime and CPU readings for the current process.

Python has no separate managed heap figure, so resident set size is
the "heap usage" the scanner and the performance stage compare
against their thresholds.
"""

from __future__ import annotations

import os
import time
from typing import Any

import psutil

MB = 1024 * 1024

_process = psutil.Process(os.getpid())


def heap_bytes() -> int:
    """Resident memory of this process, in bytes."""
    return _process.memory_info().rss


def uptime_seconds() -> float:
    return max(0.0, time.time() - _process.create_time())


def cpu_snapshot() -> dict[str, Any]:
    times = _process.cpu_times()
    return {"user": times.user, "system": times.system}


def format_uptime(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"
