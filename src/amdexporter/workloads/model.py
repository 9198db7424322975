"""
Workload types shared by the correlator and the emission engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

DEFAULT_NAMESPACE = "default"


def namespaced_name(name: str, namespace: str) -> str:
    """"<namespace>/<name>", with an empty namespace meaning "default"."""
    return f"{namespace or DEFAULT_NAMESPACE}/{name}"


@dataclass(frozen=True)
class WorkloadBinding:
    """One pod container holding a GPU device."""

    name: str
    namespace: str = ""
    container: str = ""
    node_name: str = ""
    labels: Mapping[str, str] = field(default_factory=dict, hash=False)

    @property
    def namespaced_name(self) -> str:
        return namespaced_name(self.name, self.namespace)

    def sorted_label_keys(self) -> List[str]:
        return sorted(self.labels or {})

    def with_labels(self, labels: Mapping[str, str]) -> "WorkloadBinding":
        return replace(self, labels=dict(labels))


# Canonical device key -> every workload currently bound to it
DeviceKeyMap = Mapping[str, Tuple[WorkloadBinding, ...]]


def freeze_key_map(groups: Dict[str, List[WorkloadBinding]]) -> DeviceKeyMap:
    """Read-only view of an accumulated key map."""
    return MappingProxyType({key: tuple(bindings) for key, bindings in groups.items()})


EMPTY_KEY_MAP: DeviceKeyMap = MappingProxyType({})
