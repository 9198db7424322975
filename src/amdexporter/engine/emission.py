"""
Turns one telemetry snapshot into the ordered observations for a scrape.

Per-thread and per-socket families get one observation per unit. GPU
families get one observation per workload bound to the GPU, or a single
observation with just the device labels when nothing is bound to it (or
Kubernetes correlation is off). The aggregate counts close the list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from amdexporter.devices.registry import DeviceRegistry
from amdexporter.engine.catalog import (
    DEVICE_NAME_LABEL,
    PRODUCT_NAME_LABEL,
    MetricDefinition,
    Scope,
)
from amdexporter.engine.labels import LabelSet, Pair, format_label_name
from amdexporter.metrics import TelemetrySnapshot
from amdexporter.workloads.model import DeviceKeyMap, WorkloadBinding

POD_NAME_LABEL = "exported_pod"
CONTAINER_NAME_LABEL = "exported_container"
NAMESPACE_NAME_LABEL = "exported_namespace"
NODE_NAME_LABEL = "exported_node"

DEVICE_ID_PREFIX = "amd"


@dataclass(frozen=True)
class Observation:
    """One sample: a metric definition, its scaled value and its labels."""

    definition: MetricDefinition
    value: float
    labels: Tuple[Pair, ...] = ()

    @property
    def name(self) -> str:
        return self.definition.fq_name

    @property
    def label_names(self) -> List[str]:
        return [name for name, _ in self.labels]

    @property
    def label_values(self) -> List[str]:
        return [value for _, value in self.labels]


def _observe(definition: MetricDefinition, raw: float, labels: LabelSet) -> Observation:
    return Observation(definition=definition, value=definition.scale(raw), labels=labels.pairs())


def device_name(index: int) -> str:
    return f"{DEVICE_ID_PREFIX}{index}"


def workload_labels(binding: WorkloadBinding, allow_list: Optional[Sequence[str]] = None) -> List[Pair]:
    """Pod identity labels followed by the pod's custom labels in key order."""
    pairs = [
        (POD_NAME_LABEL, binding.name),
        (CONTAINER_NAME_LABEL, binding.container),
        (NAMESPACE_NAME_LABEL, binding.namespace),
        (NODE_NAME_LABEL, binding.node_name),
    ]
    allowed = set(allow_list) if allow_list is not None else None
    for key in binding.sorted_label_keys():
        if allowed is not None and key.lower() not in allowed:
            continue
        pairs.append((format_label_name(key, with_prefix=True), binding.labels[key]))
    return pairs


def _per_unit(definition: MetricDefinition, snapshot: TelemetrySnapshot) -> List[Observation]:
    values = snapshot.valid(definition.field, definition.scope.value)
    return [
        _observe(definition, raw, LabelSet().add(definition.labels[0], str(i)))
        for i, raw in enumerate(values)
    ]


def _per_gpu(
    definition: MetricDefinition,
    snapshot: TelemetrySnapshot,
    registry: DeviceRegistry,
    bindings: Optional[DeviceKeyMap],
    allow_list: Optional[Sequence[str]],
) -> List[Observation]:
    observations = []
    for i, raw in enumerate(snapshot.valid(definition.field, Scope.GPU.value)):
        device = registry.slot(i)
        base = LabelSet([
            (definition.labels[0], str(i)),
            (PRODUCT_NAME_LABEL, device.series),
            (DEVICE_NAME_LABEL, device_name(i)),
        ])

        workloads = () if bindings is None else bindings.get(device.bus_address, ())
        if not workloads:
            observations.append(_observe(definition, raw, base))
            continue

        for binding in workloads:
            labels = base.copy().extend(workload_labels(binding, allow_list))
            observations.append(_observe(definition, raw, labels))

    return observations


def _aggregate(definition: MetricDefinition, snapshot: TelemetrySnapshot) -> List[Observation]:
    raw = float(getattr(snapshot, definition.field))
    return [_observe(definition, raw, LabelSet().add(definition.labels[0], ""))]


def emit(
    catalog: Sequence[MetricDefinition],
    snapshot: TelemetrySnapshot,
    registry: DeviceRegistry,
    bindings: Optional[DeviceKeyMap],
    label_allow_list: Optional[Sequence[str]] = None,
) -> List[Observation]:
    """Build every observation for one scrape, in catalog order.

    bindings=None means Kubernetes correlation is disabled; an empty map
    means it is enabled but found nothing (or failed this pass). Both
    yield device-only labels for every GPU.
    """
    observations: List[Observation] = []
    for definition in catalog:
        if definition.scope in (Scope.THREAD, Scope.SOCKET):
            observations.extend(_per_unit(definition, snapshot))
        elif definition.scope is Scope.GPU:
            observations.extend(_per_gpu(definition, snapshot, registry, bindings, label_allow_list))
        else:
            observations.extend(_aggregate(definition, snapshot))
    return observations
