"""
Base telemetry source interface.

A telemetry source is anything that can produce a TelemetrySnapshot.
This keeps the exporter decoupled from where the readings actually
come from (AMD SMI on real hardware, the mock generator, test fakes).
"""

from abc import ABC, abstractmethod

from amdexporter.metrics import TelemetrySnapshot


class TelemetrySource(ABC):
    """Interface for all hardware readers."""

    @abstractmethod
    def scan(self) -> TelemetrySnapshot:
        """Take one fresh snapshot. Must not raise; unavailable readings stay at SENTINEL."""
        ...

    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        ...
