"""
Mock AMD node generator.

Produces fake but plausible telemetry so we can develop and test without
AMD hardware. Numbers are loosely based on a dual-socket EPYC host with
four MI250 GCDs under moderate load.
"""

import math
import random
import threading

from amdexporter.devices.registry import DeviceInfo, DeviceRegistry
from amdexporter.metrics import TelemetrySnapshot

MOCK_SERIES = "amdinstinctmi250(mcm)oamacmba"
MOCK_BUS_ADDRESSES = ["0000:b3:00.0", "0000:8e:00.0", "0000:34:00.0", "0000:11:00.0"]


def mock_registry() -> DeviceRegistry:
    """Registry matching the GPUs the mock node reports."""
    return DeviceRegistry(
        DeviceInfo(
            series=MOCK_SERIES,
            model="0x740c",
            vendor="advancedmicrodevices,inc.[amd/ati]",
            sku="d65210v",
            bus_address=bus,
            guid=str(63755 + i),
        )
        for i, bus in enumerate(MOCK_BUS_ADDRESSES)
    )


class MockAMDNode:

    def __init__(self, seed: int = 42, sockets: int = 2, threads_per_socket: int = 8):
        self._rng = random.Random(seed)
        self._tick = 0
        self._sockets = sockets
        self._threads = sockets * threads_per_socket
        self._num_gpus = len(MOCK_BUS_ADDRESSES)
        self._core_energy = [0.0] * self._threads
        self._socket_energy = [0.0] * self._sockets
        self._lock = threading.Lock()

    def snapshot(self) -> TelemetrySnapshot:
        """Generate one reading, advancing the simulation clock. Safe across scrape threads."""
        with self._lock:
            return self._advance()

    def _advance(self) -> TelemetrySnapshot:
        self._tick += 1
        t = self._tick

        # Sinusoidal base load with occasional random spikes
        load = 0.5 + 0.3 * math.sin(t * 0.05)
        if self._rng.random() > 0.9:
            load = min(1.0, load + self._rng.random() * 0.3)

        stat = TelemetrySnapshot.empty()
        stat.sockets = self._sockets
        stat.threads = self._threads
        stat.threads_per_core = 2
        stat.num_gpus = self._num_gpus

        # Energy counters are monotonic (microjoules)
        for i in range(self._threads):
            self._core_energy[i] += 2_000_000 * load + self._rng.uniform(0, 100_000)
            stat.core_energy[i] = round(self._core_energy[i])
            stat.core_boost[i] = 3500.0

        for i in range(self._sockets):
            watts = 120 + 160 * load + self._rng.gauss(0, 5)
            self._socket_energy[i] += watts * 2 * 1e6
            stat.socket_energy[i] = round(self._socket_energy[i])
            stat.socket_power[i] = round(watts * 1000)  # milliwatts
            stat.power_limit[i] = 280_000.0
            stat.prochot_status[i] = 1.0 if watts > 270 else 0.0

        for i in range(self._num_gpus):
            busy = max(0.0, min(100.0, 100 * load + self._rng.gauss(0, 4)))
            stat.gpu_dev_id[i] = float(0x740C)
            stat.gpu_power_cap[i] = 500_000_000.0
            stat.gpu_power[i] = round((90 + 3.5 * busy) * 1e6)
            stat.gpu_temperature[i] = round((35 + 0.4 * busy) * 1e3)
            stat.gpu_sclk[i] = 800e6 + 9e6 * busy
            stat.gpu_mclk[i] = 1600e6
            stat.gpu_usage[i] = round(busy)
            stat.gpu_memory_usage[i] = round(busy * 0.6)

        return stat
