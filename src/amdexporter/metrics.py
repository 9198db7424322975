"""
Raw telemetry definitions for the exporter.

A TelemetrySnapshot mirrors what the AMD SMI libraries report for one
scan: counts of sockets, threads and GPUs, plus fixed-capacity arrays of
readings indexed by logical unit. Readings that could not be taken hold
SENTINEL rather than zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

SENTINEL = -1.0

MAX_THREADS = 768
MAX_SOCKETS = 8
MAX_GPU_DEVICES = 24


def _slots(capacity: int) -> List[float]:
    return [SENTINEL] * capacity


@dataclass
class TelemetrySnapshot:
    """A single point-in-time reading of CPU and GPU counters."""

    sockets: int = 0
    threads: int = 0
    threads_per_core: int = 0
    num_gpus: int = 0

    # Per thread
    core_energy: List[float] = field(default_factory=lambda: _slots(MAX_THREADS))
    core_boost: List[float] = field(default_factory=lambda: _slots(MAX_THREADS))

    # Per socket
    socket_energy: List[float] = field(default_factory=lambda: _slots(MAX_SOCKETS))
    socket_power: List[float] = field(default_factory=lambda: _slots(MAX_SOCKETS))
    power_limit: List[float] = field(default_factory=lambda: _slots(MAX_SOCKETS))
    prochot_status: List[float] = field(default_factory=lambda: _slots(MAX_SOCKETS))

    # Per GPU (power in microwatts, temperature in millidegrees, clocks in Hz)
    gpu_dev_id: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_power_cap: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_power: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_temperature: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_sclk: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_mclk: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_usage: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))
    gpu_memory_usage: List[float] = field(default_factory=lambda: _slots(MAX_GPU_DEVICES))

    @classmethod
    def empty(cls) -> "TelemetrySnapshot":
        """Zero counts, every slot at SENTINEL."""
        return cls()

    def count_for(self, scope: str) -> int:
        """Number of valid entries for a per-unit scope ("thread", "socket", "gpu")."""
        counts = {
            "thread": self.threads,
            "socket": self.sockets,
            "gpu": self.num_gpus,
        }
        return counts[scope]

    def valid(self, field_name: str, scope: str) -> List[float]:
        """The readings of one array that belong to the current scan."""
        return list(getattr(self, field_name)[: self.count_for(scope)])

    def summary(self) -> dict:
        """Return a plain dict for debug logging."""
        return {
            "sockets": self.sockets,
            "threads": self.threads,
            "threads_per_core": self.threads_per_core,
            "num_gpus": self.num_gpus,
            "socket_power": self.socket_power[: self.sockets],
            "gpu_power": self.gpu_power[: self.num_gpus],
            "gpu_temperature": self.gpu_temperature[: self.num_gpus],
            "gpu_usage": self.gpu_usage[: self.num_gpus],
        }
