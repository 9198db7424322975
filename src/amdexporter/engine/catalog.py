"""
Metric definitions exported for an AMD node.

The catalog is built once when the exporter starts and shared read-only
by every scrape. Its order is the order metric families appear in a
scrape, so keep new entries grouped with their scope.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

AMD_NAMESPACE = "amd"
DEFAULT_HELP_TEXT = "AMD Params"

PRODUCT_NAME_LABEL = "productname"
DEVICE_NAME_LABEL = "device"


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"


class Scope(str, Enum):
    THREAD = "thread"
    SOCKET = "socket"
    GPU = "gpu"
    AGGREGATE = "aggregate"


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    kind: MetricKind
    scope: Scope
    field: str
    labels: Tuple[str, ...] = ()
    divisor: Optional[float] = None
    namespace: str = AMD_NAMESPACE
    subsystem: str = ""
    help_text: str = DEFAULT_HELP_TEXT

    @property
    def fq_name(self) -> str:
        """Fully-qualified name, e.g. amd_gpu_power."""
        return "_".join(part for part in (self.namespace, self.subsystem, self.name) if part)

    def scale(self, value: float) -> float:
        """Convert a raw reading into the exported unit."""
        if self.divisor is not None and self.divisor > 0:
            return value / self.divisor
        return value


def _per_unit(name: str, kind: MetricKind, scope: Scope, field: str, label: str) -> MetricDefinition:
    return MetricDefinition(name=name, kind=kind, scope=scope, field=field, labels=(label,))


def _gpu(name: str, field: str, kind: MetricKind = MetricKind.GAUGE, divisor: Optional[float] = None) -> MetricDefinition:
    return MetricDefinition(
        name=name,
        kind=kind,
        scope=Scope.GPU,
        field=field,
        labels=(name, PRODUCT_NAME_LABEL, DEVICE_NAME_LABEL),
        divisor=divisor,
    )


def _aggregate(name: str, field: str) -> MetricDefinition:
    # Aggregates carry a single label named after the metric, always empty
    return MetricDefinition(
        name=name, kind=MetricKind.GAUGE, scope=Scope.AGGREGATE, field=field, labels=(name,)
    )


def build_catalog() -> Tuple[MetricDefinition, ...]:
    return (
        _per_unit("core_energy", MetricKind.COUNTER, Scope.THREAD, "core_energy", "thread"),
        _per_unit("boost_limit", MetricKind.GAUGE, Scope.THREAD, "core_boost", "thread"),
        _per_unit("socket_energy", MetricKind.COUNTER, Scope.SOCKET, "socket_energy", "socket"),
        _per_unit("socket_power", MetricKind.GAUGE, Scope.SOCKET, "socket_power", "socket"),
        _per_unit("power_limit", MetricKind.GAUGE, Scope.SOCKET, "power_limit", "power_limit"),
        _per_unit("prochot_status", MetricKind.GAUGE, Scope.SOCKET, "prochot_status", "prochot_status"),
        _gpu("gpu_dev_id", "gpu_dev_id"),
        _gpu("gpu_power_cap", "gpu_power_cap", divisor=1e6),
        _gpu("gpu_power", "gpu_power", kind=MetricKind.COUNTER, divisor=1e6),
        _gpu("gpu_current_temperature", "gpu_temperature", divisor=1e3),
        _gpu("gpu_SCLK", "gpu_sclk", divisor=1e6),
        _gpu("gpu_MCLK", "gpu_mclk", divisor=1e6),
        _gpu("gpu_use_percent", "gpu_usage"),
        _gpu("gpu_memory_use_percent", "gpu_memory_usage"),
        _aggregate("num_sockets", "sockets"),
        _aggregate("num_threads", "threads"),
        _aggregate("num_threads_per_core", "threads_per_core"),
        _aggregate("num_gpus", "num_gpus"),
    )


def collector_descriptor() -> MetricDefinition:
    """The single definition the exporter announces when asked to describe itself."""
    return MetricDefinition(
        name="data",
        kind=MetricKind.GAUGE,
        scope=Scope.AGGREGATE,
        field="",
        labels=("socket",),
    )
