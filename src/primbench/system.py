"""
Description of the machine a suite ran on, stored alongside every report.
"""

from __future__ import annotations

import os
import platform
import sys
from typing import Any, Dict, Optional

import psutil


class SystemMetrics:
    """Track resource usage of the benchmarking process."""

    def __init__(self, pid: Optional[int] = None):
        self.process = psutil.Process(pid)

    def get_memory_mb(self) -> float:
        """Get current resident memory in MB."""
        return self.process.memory_info().rss / 1024 / 1024


def describe_system() -> Dict[str, Any]:
    """Static facts about the host and interpreter."""
    memory = psutil.virtual_memory()
    freq = None
    try:
        cpu_freq = psutil.cpu_freq()
        if cpu_freq is not None:
            freq = round(cpu_freq.current, 1)
    except (NotImplementedError, OSError):
        # Not exposed on some virtualised hosts
        freq = None

    return {
        "hostname": platform.node(),
        "platform": platform.platform(),
        "machine": platform.machine(),
        "processor": platform.processor() or None,
        "python": platform.python_version(),
        "implementation": platform.python_implementation(),
        "executable": sys.executable,
        "pid": os.getpid(),
        "cpu_count_logical": psutil.cpu_count(logical=True),
        "cpu_count_physical": psutil.cpu_count(logical=False),
        "cpu_freq_mhz": freq,
        "memory_total_mb": round(memory.total / 1024 / 1024, 1),
    }


__all__ = ["SystemMetrics", "describe_system"]
