"""
Kubelet pod-resources client.

The pod-resources API is served by the kubelet over a unix socket on the
node itself. It is the only place that says which container was handed
which device id by a device plugin. We only need the v1alpha1 List call,
so the handful of protobuf messages it uses are declared here and built
at import time instead of shipping generated stubs.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from amdexporter.errors import CorrelationError, StartupError
from amdexporter.workloads.correlator import DeviceBindingSource
from amdexporter.workloads.model import WorkloadBinding

log = logging.getLogger(__name__)

AMD_RESOURCE_NAME = "amd.com/gpu"
DEFAULT_SOCKET_PATH = "/var/lib/kubelet/pod-resources/kubelet.sock"

SERVICE_NAME = "v1alpha1.PodResourcesLister"
LIST_METHOD = f"/{SERVICE_NAME}/List"

_PACKAGE = "v1alpha1"


def _build_message_classes() -> Dict[str, type]:
    F = descriptor_pb2.FieldDescriptorProto
    proto = descriptor_pb2.FileDescriptorProto(
        name="amdexporter/podresources/v1alpha1/api.proto",
        package=_PACKAGE,
        syntax="proto3",
    )

    def message(name, *fields):
        msg = proto.message_type.add(name=name)
        for field_name, number, kind, repeated, type_name in fields:
            f = msg.field.add(
                name=field_name,
                number=number,
                type=kind,
                label=F.LABEL_REPEATED if repeated else F.LABEL_OPTIONAL,
            )
            if type_name:
                f.type_name = f".{_PACKAGE}.{type_name}"

    message("ListPodResourcesRequest")
    message(
        "ContainerDevices",
        ("resource_name", 1, F.TYPE_STRING, False, None),
        ("device_ids", 2, F.TYPE_STRING, True, None),
    )
    message(
        "ContainerResources",
        ("name", 1, F.TYPE_STRING, False, None),
        ("devices", 2, F.TYPE_MESSAGE, True, "ContainerDevices"),
    )
    message(
        "PodResources",
        ("name", 1, F.TYPE_STRING, False, None),
        ("namespace", 2, F.TYPE_STRING, False, None),
        ("containers", 3, F.TYPE_MESSAGE, True, "ContainerResources"),
    )
    message(
        "ListPodResourcesResponse",
        ("pod_resources", 1, F.TYPE_MESSAGE, True, "PodResources"),
    )

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(proto.SerializeToString())
    return {
        msg.name: message_factory.GetMessageClass(pool.FindMessageTypeByName(f"{_PACKAGE}.{msg.name}"))
        for msg in proto.message_type
    }


_MESSAGES = _build_message_classes()

ListPodResourcesRequest = _MESSAGES["ListPodResourcesRequest"]
ListPodResourcesResponse = _MESSAGES["ListPodResourcesResponse"]
PodResources = _MESSAGES["PodResources"]
ContainerResources = _MESSAGES["ContainerResources"]
ContainerDevices = _MESSAGES["ContainerDevices"]


def kubelet_target(socket_path: str = "") -> str:
    """gRPC target for a kubelet socket path. Targets with a scheme pass through."""
    path = socket_path or DEFAULT_SOCKET_PATH
    if "://" in path or path.startswith("unix:"):
        return path
    return f"unix://{path}"


class KubeletPodResourcesClient(DeviceBindingSource):
    """Lists GPU devices allocated to containers on this node."""

    def __init__(
        self,
        target: str = "",
        custom_resource_names: Sequence[str] = (),
        node_name: str = "",
        channel: Optional[grpc.Channel] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._target = kubelet_target(target)
        self._log = logger or log
        self._channel = channel or grpc.insecure_channel(self._target)
        self._list = self._channel.unary_unary(
            LIST_METHOD,
            request_serializer=ListPodResourcesRequest.SerializeToString,
            response_deserializer=ListPodResourcesResponse.FromString,
        )
        self._resource_names = {AMD_RESOURCE_NAME, *custom_resource_names}
        self._node_name = node_name

    @property
    def target(self) -> str:
        return self._target

    def connect(self, timeout: float = 10.0):
        """Wait until the kubelet socket answers. Raises StartupError otherwise."""
        self._log.info("using kubelet pod resources endpoint %s", self._target)
        try:
            grpc.channel_ready_future(self._channel).result(timeout=timeout)
        except grpc.FutureTimeoutError as err:
            raise StartupError(f"unable to connect to pod resources api at {self._target}") from err

    def list_device_bindings(self, timeout: Optional[float] = None) -> Dict[str, WorkloadBinding]:
        try:
            response = self._list(ListPodResourcesRequest(), timeout=timeout)
        except grpc.RpcError as err:
            raise CorrelationError(f"unable to get pod resources: {err}") from err

        bindings: Dict[str, WorkloadBinding] = {}
        for pod in response.pod_resources:
            for container in pod.containers:
                for device in container.devices:
                    if device.resource_name not in self._resource_names:
                        continue

                    binding = WorkloadBinding(
                        name=pod.name,
                        namespace=pod.namespace,
                        container=container.name,
                        node_name=self._node_name,
                    )
                    for device_id in device.device_ids:
                        self._log.debug(
                            "pod device info: pod=%s container=%s namespace=%s device-id=%s node=%s",
                            binding.name, binding.container, binding.namespace,
                            device_id, self._node_name,
                        )
                        bindings[device_id] = binding

        return bindings

    def close(self):
        self._channel.close()
