"""
Runtime settings for the exporter.

Values come from click options, each of which falls back to an
AMD_EXPORTER_* environment variable so the exporter can be configured
from a DaemonSet manifest alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from amdexporter.workloads.kubelet import DEFAULT_SOCKET_PATH

ENV_PREFIX = "AMD_EXPORTER_"

LOG_LEVELS = {
    "development": logging.DEBUG,
    "production": logging.INFO,
}

DEFAULT_PORT = 2021
DEFAULT_SCRAPE_TIMEOUT = 10.0


def env_var(name: str) -> str:
    return ENV_PREFIX + name


def parse_list(value: Optional[str]) -> List[str]:
    """Split a comma separated setting, dropping blanks: "a, b,,c" -> ["a", "b", "c"]."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ExporterSettings:
    log_level: str = "development"
    port: int = DEFAULT_PORT
    kubelet_socket: str = DEFAULT_SOCKET_PATH
    resource_names: List[str] = field(default_factory=list)
    with_kubernetes: bool = True
    node_name: str = ""
    pod_name: str = ""
    pod_namespace: str = ""
    pod_labels: List[str] = field(default_factory=list)
    kube_api_url: Optional[str] = None
    scrape_timeout: float = DEFAULT_SCRAPE_TIMEOUT
    mock: bool = False
    verbose: bool = False

    @property
    def logging_level(self) -> int:
        if self.verbose:
            return logging.DEBUG
        return LOG_LEVELS.get(self.log_level, logging.DEBUG)

    def missing_identity(self) -> List[str]:
        """Names of the downward-API values that were not provided."""
        missing = []
        if not self.node_name:
            missing.append(env_var("NODE_NAME"))
        if not self.pod_name:
            missing.append(env_var("POD_NAME"))
        if not self.pod_namespace:
            missing.append(env_var("NAMESPACE"))
        return missing

    def summary(self) -> dict:
        return {
            "port": self.port,
            "with_kubernetes": self.with_kubernetes,
            "kubelet_socket": self.kubelet_socket,
            "resource_names": self.resource_names,
            "pod_labels": self.pod_labels,
            "node_name": self.node_name,
            "scrape_timeout": self.scrape_timeout,
            "mock": self.mock,
        }
