"""Basic sanity checks for the mock AMD node generator."""

import threading

from amdexporter.collector.mock_collector import MockTelemetrySource
from amdexporter.mock.generator import MOCK_BUS_ADDRESSES, MockAMDNode, mock_registry


def test_snapshot_returns_valid_data():
    snap = MockAMDNode(seed=42).snapshot()

    assert snap.sockets == 2
    assert snap.threads == 16
    assert snap.threads_per_core == 2
    assert snap.num_gpus == 4
    assert all(v > 0 for v in snap.valid("core_energy", "thread"))
    assert all(0 <= v <= 100 for v in snap.valid("gpu_usage", "gpu"))
    assert all(v > 0 for v in snap.valid("gpu_power", "gpu"))


def test_slots_past_count_keep_sentinel():
    snap = MockAMDNode(seed=42).snapshot()

    assert snap.core_energy[snap.threads] == -1.0
    assert snap.gpu_power[snap.num_gpus] == -1.0


def test_energy_counters_are_monotonic():
    node = MockAMDNode(seed=42)
    snap1 = node.snapshot()
    snap2 = node.snapshot()

    for a, b in zip(snap1.valid("core_energy", "thread"), snap2.valid("core_energy", "thread")):
        assert b > a
    for a, b in zip(snap1.valid("socket_energy", "socket"), snap2.valid("socket_energy", "socket")):
        assert b > a


def test_deterministic_with_same_seed():
    snap_a = MockAMDNode(seed=99).snapshot()
    snap_b = MockAMDNode(seed=99).snapshot()

    assert snap_a == snap_b


def test_mock_registry_matches_gpus():
    registry = mock_registry()

    assert [d.bus_address for d in registry] == MOCK_BUS_ADDRESSES
    assert len(registry) == MockAMDNode().snapshot().num_gpus


def test_mock_source():
    source = MockTelemetrySource(seed=1)

    assert "Mock" in source.name()
    assert source.scan().num_gpus == 4


def test_summary_dict_has_expected_keys():
    summary = MockAMDNode(seed=42).snapshot().summary()

    for key in ["sockets", "threads", "threads_per_core", "num_gpus", "socket_power", "gpu_power"]:
        assert key in summary, f"Missing key: {key}"
    assert len(summary["gpu_power"]) == 4


def test_concurrent_snapshots_keep_state_consistent():
    shared = MockAMDNode(seed=5)
    reference = MockAMDNode(seed=5)

    threads = [threading.Thread(target=lambda: [shared.snapshot() for _ in range(25)]) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    for _ in range(100):
        reference.snapshot()

    assert shared.snapshot() == reference.snapshot()
