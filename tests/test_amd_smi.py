"""Tests for AMDSMIScanner graceful fallback (no AMD hardware on this machine)."""

import types

from amdexporter.collector import amd_smi
from amdexporter.collector.amd_smi import AMDSMIScanner, _to_float


def _scanner_without_bindings(monkeypatch):
    monkeypatch.setattr(amd_smi, "_AMDSMI_AVAILABLE", False)
    return AMDSMIScanner()


def test_scanner_unavailable_without_bindings(monkeypatch):
    scanner = _scanner_without_bindings(monkeypatch)
    assert scanner.available is False
    assert scanner.name() == "AMD SMI"


def test_scan_returns_empty_snapshot(monkeypatch):
    snap = _scanner_without_bindings(monkeypatch).scan()

    assert snap.num_gpus == 0
    assert snap.threads == 0
    assert snap.gpu_power[0] == -1.0


def test_close_is_safe_without_bindings(monkeypatch):
    scanner = _scanner_without_bindings(monkeypatch)
    scanner.close()  # should not raise
    assert scanner.available is False


def test_to_float_handles_smi_values():
    assert _to_float(42) == 42.0
    assert _to_float(3.5) == 3.5
    assert _to_float("0x740c") == float(0x740C)
    assert _to_float("123.4 W") == 123.4
    assert _to_float("N/A") is None
    assert _to_float("") is None
    assert _to_float(None) is None
    assert _to_float(True) is None
    assert _to_float("garbage") is None


class _FakeSmiError(Exception):
    pass


def _gpu_only_bindings():
    """Bindings with the GPU calls only, as on hosts without the CPU (ESMI) library."""
    return types.SimpleNamespace(
        AmdSmiException=_FakeSmiError,
        AmdSmiInitFlags=types.SimpleNamespace(INIT_AMD_APUS=0),
        amdsmi_init=lambda flags: None,
        amdsmi_shut_down=lambda: None,
        amdsmi_get_processor_handles=lambda: ["gpu0"],
        amdsmi_get_gpu_asic_info=lambda h: {"device_id": "0x740c"},
        amdsmi_get_power_info=lambda h: {"current_socket_power": 250},
        amdsmi_get_power_cap_info=lambda h: [],
    )


def test_scan_tolerates_missing_functions(monkeypatch):
    monkeypatch.setattr(amd_smi, "amdsmi", _gpu_only_bindings(), raising=False)
    monkeypatch.setattr(amd_smi, "_AMDSMI_AVAILABLE", True)
    scanner = AMDSMIScanner()

    snap = scanner.scan()

    assert scanner.available is True
    assert snap.sockets == 0
    assert snap.threads == 0
    assert snap.num_gpus == 1
    assert snap.gpu_dev_id[0] == float(0x740C)
    assert snap.gpu_power[0] == 250e6
    # No power cap dict, no temperature or clock enums in these bindings
    assert snap.gpu_power_cap[0] == -1.0
    assert snap.gpu_temperature[0] == -1.0
    assert snap.gpu_sclk[0] == -1.0
    scanner.close()
