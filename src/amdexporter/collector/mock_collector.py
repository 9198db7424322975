"""
Telemetry source backed by the mock node generator.
Used for local development on machines without AMD hardware.
"""

from amdexporter.collector.base import TelemetrySource
from amdexporter.metrics import TelemetrySnapshot
from amdexporter.mock.generator import MockAMDNode


class MockTelemetrySource(TelemetrySource):
    """Wraps the mock generator as a standard telemetry source."""

    def __init__(self, seed: int = 42):
        self._node = MockAMDNode(seed=seed)

    def scan(self) -> TelemetrySnapshot:
        return self._node.snapshot()

    def name(self) -> str:
        return "Mock AMD node (2x EPYC, 4x MI250 GCD)"
