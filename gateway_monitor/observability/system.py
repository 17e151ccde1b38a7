"""
System — Process resource figures via psutil.
"""

from __future__ import annotations

import platform
import time
from typing import Any, Dict

import psutil

_PROCESS = psutil.Process()


def process_uptime_seconds() -> float:
    return max(0.0, time.time() - _PROCESS.create_time())


def system_info() -> Dict[str, Any]:
    """Memory, CPU and runtime details for the current process."""
    with _PROCESS.oneshot():
        memory = _PROCESS.memory_info()
        cpu = _PROCESS.cpu_times()
        memory_percent = _PROCESS.memory_percent()

    return {
        "memory": {
            "rss": memory.rss,
            "vms": memory.vms,
            "percent": round(memory_percent, 2),
        },
        "cpu": {
            "user": cpu.user,
            "system": cpu.system,
        },
        "uptime": process_uptime_seconds(),
        "version": platform.python_version(),
        "platform": platform.system().lower(),
    }
