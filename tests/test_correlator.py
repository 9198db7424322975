"""Tests for WorkloadCorrelator using in-memory binding and label sources."""

import httpx
import pytest

from amdexporter.context import PassContext
from amdexporter.errors import CorrelationError, LabelResolutionError
from amdexporter.workloads.correlator import (
    DeviceBindingSource,
    WorkloadCorrelator,
    WorkloadLabelSource,
    select_labels,
)
from amdexporter.workloads.kube_api import KubeAPIConfig, KubeAPILabelSource
from amdexporter.workloads.model import WorkloadBinding


class FakeBindings(DeviceBindingSource):
    def __init__(self, bindings=None, error=None):
        self.bindings = bindings or {}
        self.error = error
        self.calls = 0

    def list_device_bindings(self, timeout=None):
        self.calls += 1
        if self.error:
            raise self.error
        return dict(self.bindings)


class FakeLabels(WorkloadLabelSource):
    def __init__(self, pods, bulk_error=False, broken=()):
        self.pods = pods  # namespaced name -> raw pod labels
        self.bulk_error = bulk_error
        self.broken = set(broken)
        self.bulk_calls = 0
        self.single_calls = []

    def labels_on_node(self, node_name, workloads, allow_list, timeout=None):
        self.bulk_calls += 1
        if self.bulk_error:
            raise LabelResolutionError("forbidden")
        return {
            w.namespaced_name: select_labels(self.pods.get(w.namespaced_name), allow_list)
            for w in workloads
            if w.namespaced_name in self.pods
        }

    def labels_for_workload(self, workload, allow_list, timeout=None):
        self.single_calls.append(workload.namespaced_name)
        if workload.namespaced_name in self.broken:
            raise LabelResolutionError("not found")
        return select_labels(self.pods.get(workload.namespaced_name), allow_list)


def _bindings():
    return {
        "0000:b3:00.0": WorkloadBinding(name="pod-ii", namespace="team-b", container="main", node_name="node-1"),
        "0000:8e:00.0": WorkloadBinding(name="pod-c", namespace="team-2", container="main", node_name="node-1"),
        "0001:34:00.0": WorkloadBinding(name="pod-1", namespace="team-a", container="main", node_name="node-1"),
    }


def _pods():
    return {
        "team-b/pod-ii": {"app": "train", "Owner": "bob", "secret": "x"},
        "team-2/pod-c": {"app": "serve"},
        "team-a/pod-1": {"oip/author-username": "alice"},
    }


def test_select_labels_matches_lowercased_key():
    selected = select_labels({"Owner": "bob", "app": "x", "other": "y"}, ["owner", "app"])
    assert selected == {"Owner": "bob", "app": "x"}


def test_select_labels_handles_missing_labels():
    assert select_labels(None, ["app"]) == {}


def test_every_raw_id_and_normalized_key_is_filed():
    correlator = WorkloadCorrelator(FakeBindings(_bindings()))
    key_map = correlator.correlate(PassContext.start())

    assert key_map["0000:b3:00.0"][0].name == "pod-ii"
    assert key_map["0001:34:00.0"][0].name == "pod-1"
    # Colon rule shares the PCI domain prefix
    assert [b.name for b in key_map["0000"]] == ["pod-ii", "pod-c"]
    assert [b.name for b in key_map["0001"]] == ["pod-1"]


def test_gpu_instance_ids_get_instance_keys():
    bindings = {
        "amd1/gi0": WorkloadBinding(name="pod-a"),
        "amd1/gi1": WorkloadBinding(name="pod-b"),
    }
    key_map = WorkloadCorrelator(FakeBindings(bindings)).correlate(PassContext.start())

    assert [b.name for b in key_map["1-0"]] == ["pod-a"]
    assert [b.name for b in key_map["1-1"]] == ["pod-b"]
    assert "amd1/gi0" in key_map


def test_bulk_labels_are_attached():
    labels = FakeLabels(_pods())
    correlator = WorkloadCorrelator(
        FakeBindings(_bindings()), labels, label_allow_list=["app", "owner"], node_name="node-1"
    )
    key_map = correlator.correlate(PassContext.start())

    assert key_map["0000:b3:00.0"][0].labels == {"app": "train", "Owner": "bob"}
    assert key_map["0000:8e:00.0"][0].labels == {"app": "serve"}
    assert key_map["0001:34:00.0"][0].labels == {}
    assert labels.bulk_calls == 1
    assert labels.single_calls == []


def test_bulk_failure_falls_back_to_single_lookups():
    labels = FakeLabels(_pods(), bulk_error=True)
    correlator = WorkloadCorrelator(
        FakeBindings(_bindings()), labels, label_allow_list=["app"], node_name="node-1"
    )
    key_map = correlator.correlate(PassContext.start())

    assert sorted(labels.single_calls) == ["team-2/pod-c", "team-a/pod-1", "team-b/pod-ii"]
    assert key_map["0000:b3:00.0"][0].labels == {"app": "train"}


def test_no_node_name_goes_straight_to_single_lookups():
    labels = FakeLabels(_pods())
    correlator = WorkloadCorrelator(FakeBindings(_bindings()), labels, label_allow_list=["app"])
    correlator.correlate(PassContext.start())

    assert labels.bulk_calls == 0
    assert len(labels.single_calls) == 3


def test_single_lookup_failure_only_affects_that_pod():
    labels = FakeLabels(_pods(), bulk_error=True, broken=["team-b/pod-ii"])
    correlator = WorkloadCorrelator(
        FakeBindings(_bindings()), labels, label_allow_list=["app"], node_name="node-1"
    )
    key_map = correlator.correlate(PassContext.start())

    assert key_map["0000:b3:00.0"][0].labels == {}
    assert key_map["0000:8e:00.0"][0].labels == {"app": "serve"}


def test_pod_with_two_devices_is_looked_up_once():
    pod = WorkloadBinding(name="pod-ii", namespace="team-b")
    labels = FakeLabels(_pods())
    correlator = WorkloadCorrelator(
        FakeBindings({"0000:b3:00.0": pod, "0000:8e:00.0": pod}), labels, label_allow_list=["app"]
    )
    correlator.correlate(PassContext.start())

    assert labels.single_calls == ["team-b/pod-ii"]


def test_labels_skipped_without_allow_list():
    labels = FakeLabels(_pods())
    correlator = WorkloadCorrelator(FakeBindings(_bindings()), labels, node_name="node-1")
    key_map = correlator.correlate(PassContext.start())

    assert labels.bulk_calls == 0
    assert labels.single_calls == []
    assert key_map["0000:b3:00.0"][0].labels == {}


def test_broken_api_server_keeps_pods_bound_without_labels():
    def handler(request):
        return httpx.Response(200, json=[])

    api = KubeAPILabelSource(client=httpx.Client(base_url="https://kube.test", transport=httpx.MockTransport(handler)))
    correlator = WorkloadCorrelator(
        FakeBindings(_bindings()), api, label_allow_list=["app"], node_name="node-1"
    )
    key_map = correlator.correlate(PassContext.start())

    assert key_map["0000:b3:00.0"][0].name == "pod-ii"
    assert key_map["0000:b3:00.0"][0].labels == {}
    assert key_map["0000:8e:00.0"][0].name == "pod-c"


def test_missing_token_keeps_pods_bound_without_labels(tmp_path):
    config = KubeAPIConfig(base_url="https://kube.test", token_path=tmp_path / "token")
    client = httpx.Client(
        base_url=config.base_url,
        auth=config.auth(),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"items": []})),
    )
    correlator = WorkloadCorrelator(
        FakeBindings(_bindings()), KubeAPILabelSource(client=client), label_allow_list=["app"], node_name="node-1"
    )
    key_map = correlator.correlate(PassContext.start())

    assert [b.name for b in key_map["0000"]] == ["pod-ii", "pod-c"]
    assert all(b.labels == {} for b in key_map["0000"])


def test_listing_failure_propagates():
    correlator = WorkloadCorrelator(FakeBindings(error=CorrelationError("socket closed")))
    with pytest.raises(CorrelationError):
        correlator.correlate(PassContext.start())


def test_expired_deadline_stops_before_listing():
    source = FakeBindings(_bindings())
    correlator = WorkloadCorrelator(source)
    with pytest.raises(CorrelationError):
        correlator.correlate(PassContext.start(timeout=0))
    assert source.calls == 0


def test_empty_allocation_gives_empty_map():
    key_map = WorkloadCorrelator(FakeBindings({})).correlate(PassContext.start())
    assert len(key_map) == 0
