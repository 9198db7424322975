"""
Maps GPU devices to the pods using them.

Each scrape the correlator asks the kubelet which containers hold which
device ids, looks up the allow-listed pod labels from the API server,
and files every workload under all the keys its device id normalizes
to. The result is what the emission engine uses to fan a GPU's readings
out across its workloads.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence

from amdexporter.context import PassContext
from amdexporter.errors import LabelResolutionError
from amdexporter.workloads.device_ids import device_keys
from amdexporter.workloads.model import DeviceKeyMap, WorkloadBinding, freeze_key_map

log = logging.getLogger(__name__)

Labels = Dict[str, str]


class DeviceBindingSource(ABC):
    """Where device allocations come from (the kubelet pod-resources API)."""

    @abstractmethod
    def list_device_bindings(self, timeout: Optional[float] = None) -> Dict[str, WorkloadBinding]:
        """Raw device id -> workload holding it. Raises CorrelationError on failure."""
        ...


class WorkloadLabelSource(ABC):
    """Where pod labels come from (the Kubernetes API server)."""

    @abstractmethod
    def labels_on_node(
        self,
        node_name: str,
        workloads: Sequence[WorkloadBinding],
        allow_list: Sequence[str],
        timeout: Optional[float] = None,
    ) -> Dict[str, Labels]:
        """Bulk lookup of every given workload on one node, keyed by namespaced name."""
        ...

    @abstractmethod
    def labels_for_workload(
        self,
        workload: WorkloadBinding,
        allow_list: Sequence[str],
        timeout: Optional[float] = None,
    ) -> Labels:
        """Labels of a single workload's pod."""
        ...


def select_labels(pod_labels: Optional[Mapping[str, str]], allow_list: Sequence[str]) -> Labels:
    """Keep the pod labels whose lower-cased key is in the allow-list."""
    if not isinstance(pod_labels, Mapping):
        return {}
    allowed = set(allow_list)
    return {key: value for key, value in pod_labels.items() if key.lower() in allowed}


class WorkloadCorrelator:

    def __init__(
        self,
        bindings_source: DeviceBindingSource,
        label_source: Optional[WorkloadLabelSource] = None,
        label_allow_list: Sequence[str] = (),
        node_name: str = "",
        logger: Optional[logging.Logger] = None,
    ):
        self._bindings_source = bindings_source
        self._label_source = label_source
        self._allow_list = tuple(label_allow_list)
        self._node_name = node_name
        self._log = logger or log

    def correlate(self, ctx: PassContext) -> DeviceKeyMap:
        """Build the device key -> workloads map for one pass.

        Raises CorrelationError when device allocations can't be listed.
        Label lookup problems never fail the pass; affected workloads are
        just reported without custom labels.
        """
        ctx.check("listing pod resources")
        bindings = self._bindings_source.list_device_bindings(timeout=ctx.remaining())
        self._log.debug("found %d device allocation(s)", len(bindings))

        labels = self._resolve_labels(ctx, list(bindings.values()))

        groups: Dict[str, List[WorkloadBinding]] = {}
        for device_id, binding in bindings.items():
            found = labels.get(binding.namespaced_name)
            if found is not None:
                binding = binding.with_labels(found)
            for key in device_keys(device_id):
                groups.setdefault(key, []).append(binding)

        return freeze_key_map(groups)

    def _resolve_labels(self, ctx: PassContext, workloads: List[WorkloadBinding]) -> Dict[str, Labels]:
        if self._label_source is None or not self._allow_list or not workloads:
            return {}

        unique: Dict[str, WorkloadBinding] = {}
        for w in workloads:
            unique.setdefault(w.namespaced_name, w)
        pods = list(unique.values())

        found: Dict[str, Labels] = {}
        if self._node_name:
            try:
                found = self._label_source.labels_on_node(
                    self._node_name, pods, self._allow_list, timeout=ctx.remaining()
                )
            except LabelResolutionError as err:
                self._log.error("getting pods within node %s: %s", self._node_name, err)
                found = {}

        if found:
            return found

        self._log.info("trying pod by pod")
        for pod in pods:
            if ctx.expired():
                self._log.warning("scrape deadline reached, skipping remaining pod label lookups")
                break
            try:
                found[pod.namespaced_name] = self._label_source.labels_for_workload(
                    pod, self._allow_list, timeout=ctx.remaining()
                )
            except LabelResolutionError as err:
                self._log.error("getting pod labels for %s: %s", pod.namespaced_name, err)

        return found
