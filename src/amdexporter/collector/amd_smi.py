"""
Hardware telemetry via the AMD SMI Python bindings (the library behind amd-smi).

Falls back gracefully when amdsmi isn't installed or no AMD device is
present: scan() then returns the empty, sentinel-filled snapshot so the
rest of the exporter keeps serving.

Readings are stored in the sub-units the metric catalog divides down:
GPU power in microwatts, temperature in millidegrees C, clocks in Hz.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from amdexporter.collector.base import TelemetrySource
from amdexporter.metrics import (
    MAX_GPU_DEVICES,
    MAX_SOCKETS,
    MAX_THREADS,
    TelemetrySnapshot,
)

try:
    import amdsmi
    _AMDSMI_AVAILABLE = True
except ImportError:
    _AMDSMI_AVAILABLE = False

log = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    """Coerce an SMI reading to float. Handles ints, "0x740c" and "123.4 W" style strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text or text.upper() == "N/A":
        return None
    head = text.split()[0]
    try:
        return float(int(head, 0)) if head.lower().startswith("0x") else float(head)
    except ValueError:
        return None


def _const(enum_name: str, member: str) -> Any:
    """An amdsmi enum member, or None when the bindings don't define it."""
    return getattr(getattr(amdsmi, enum_name, None), member, None)


class AMDSMIScanner(TelemetrySource):
    """Reads CPU and GPU counters from AMD SMI. Safe to construct without hardware."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or log
        self._initialized = False

        if not _AMDSMI_AVAILABLE:
            self._log.info("amdsmi bindings not installed, hardware readings unavailable")
            return

        try:
            amdsmi.amdsmi_init(amdsmi.AmdSmiInitFlags.INIT_AMD_APUS)
            self._initialized = True
        except amdsmi.AmdSmiException as err:
            self._log.warning("initializing amdsmi: %s", err)

    @property
    def available(self) -> bool:
        return self._initialized

    def name(self) -> str:
        return "AMD SMI"

    def scan(self) -> TelemetrySnapshot:
        self._log.debug("scanning metrics")
        stat = TelemetrySnapshot.empty()
        if not self._initialized:
            return stat

        self._scan_cpus(stat)
        self._scan_gpus(stat)
        return stat

    def _read(self, fn_name: str, *args: Any) -> Any:
        # Bindings built for CPU-only or GPU-only hosts lack some functions
        fn = getattr(amdsmi, fn_name, None)
        if fn is None or any(arg is None for arg in args):
            self._log.debug("%s not available in these amdsmi bindings", fn_name)
            return None
        try:
            return fn(*args)
        except (amdsmi.AmdSmiException, KeyError, IndexError, TypeError) as err:
            self._log.debug("%s failed: %s", fn_name, err)
            return None

    def _read_dict(self, fn_name: str, *args: Any) -> dict:
        value = self._read(fn_name, *args)
        return value if isinstance(value, dict) else {}

    def _read_handles(self, fn_name: str, limit: int) -> List[Any]:
        value = self._read(fn_name)
        return list(value)[:limit] if isinstance(value, (list, tuple)) else []

    def _scan_cpus(self, stat: TelemetrySnapshot):
        sockets = self._read_handles("amdsmi_get_cpusocket_handles", MAX_SOCKETS)
        cores = self._read_handles("amdsmi_get_cpucore_handles", MAX_THREADS)

        stat.sockets = len(sockets)
        stat.threads = len(cores)
        stat.threads_per_core = int(_to_float(self._read("amdsmi_get_threads_per_core")) or 0)

        for i, core in enumerate(cores):
            self._store(stat.core_energy, i, self._read("amdsmi_get_cpu_core_energy", core))
            self._store(stat.core_boost, i, self._read("amdsmi_get_cpu_core_boostlimit", core))

        for i, socket in enumerate(sockets):
            self._store(stat.socket_energy, i, self._read("amdsmi_get_cpu_socket_energy", socket))
            self._store(stat.socket_power, i, self._read("amdsmi_get_cpu_socket_power", socket))
            self._store(stat.power_limit, i, self._read("amdsmi_get_cpu_socket_power_cap", socket))
            self._store(stat.prochot_status, i, self._read("amdsmi_get_cpu_prochot_status", socket))

    def _scan_gpus(self, stat: TelemetrySnapshot):
        handles = self._read_handles("amdsmi_get_processor_handles", MAX_GPU_DEVICES)
        stat.num_gpus = len(handles)

        for i, h in enumerate(handles):
            asic = self._read_dict("amdsmi_get_gpu_asic_info", h)
            self._store(stat.gpu_dev_id, i, asic.get("device_id"))

            cap = self._read_dict("amdsmi_get_power_cap_info", h)
            self._store(stat.gpu_power_cap, i, cap.get("power_cap"))

            # amdsmi reports socket power in watts
            power = self._read_dict("amdsmi_get_power_info", h)
            watts = _to_float(power.get("current_socket_power"))
            if watts is None:
                watts = _to_float(power.get("average_socket_power"))
            if watts is not None:
                stat.gpu_power[i] = watts * 1e6

            # Edge sensor first, junction (hotspot) when edge isn't exposed
            celsius = _to_float(self._read(
                "amdsmi_get_temp_metric", h,
                _const("AmdSmiTemperatureType", "EDGE"), _const("AmdSmiTemperatureMetric", "CURRENT"),
            ))
            if celsius is None:
                celsius = _to_float(self._read(
                    "amdsmi_get_temp_metric", h,
                    _const("AmdSmiTemperatureType", "HOTSPOT"), _const("AmdSmiTemperatureMetric", "CURRENT"),
                ))
            if celsius is not None:
                stat.gpu_temperature[i] = celsius * 1e3

            self._store(stat.gpu_sclk, i, self._current_clock(h, _const("AmdSmiClkType", "SYS")))
            self._store(stat.gpu_mclk, i, self._current_clock(h, _const("AmdSmiClkType", "MEM")))

            activity = self._read_dict("amdsmi_get_gpu_activity", h)
            self._store(stat.gpu_usage, i, activity.get("gfx_activity"))
            self._store(stat.gpu_memory_usage, i, activity.get("umc_activity"))

    def _current_clock(self, handle: Any, clk_type: Any) -> Optional[float]:
        freq = self._read("amdsmi_get_clk_freq", handle, clk_type)
        if not freq:
            return None
        try:
            return _to_float(freq["frequency"][freq["current"]])
        except (KeyError, IndexError, TypeError):
            return None

    @staticmethod
    def _store(slots: list, index: int, raw: Any):
        value = _to_float(raw)
        if value is not None:
            slots[index] = value

    def close(self):
        if self._initialized:
            try:
                amdsmi.amdsmi_shut_down()
            except amdsmi.AmdSmiException:
                pass
            self._initialized = False
