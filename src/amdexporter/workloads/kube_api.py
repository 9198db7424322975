"""
Pod label lookups against the Kubernetes API server.

Only two read calls are needed: list the pods scheduled on this node,
and get a single pod. Both go through a plain httpx client, configured
either from the in-cluster service account or an explicit URL/token.
"""

from __future__ import annotations

import logging
import os
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union

import httpx

from amdexporter.errors import LabelResolutionError, StartupError
from amdexporter.workloads.correlator import Labels, WorkloadLabelSource, select_labels
from amdexporter.workloads.model import DEFAULT_NAMESPACE, WorkloadBinding, namespaced_name

log = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class ServiceAccountAuth(httpx.Auth):
    """Bearer auth that re-reads the projected token, which the kubelet rotates."""

    def __init__(self, token_path: Path):
        self._token_path = token_path

    def auth_flow(self, request):
        token = self._token_path.read_text().strip()
        request.headers["Authorization"] = f"Bearer {token}"
        yield request


@dataclass
class KubeAPIConfig:
    base_url: str
    token: str = ""
    token_path: Optional[Path] = None
    ca_cert: Optional[str] = None

    @classmethod
    def in_cluster(
        cls,
        environ: Mapping[str, str] = os.environ,
        service_account_dir: Path = SERVICE_ACCOUNT_DIR,
    ) -> "KubeAPIConfig":
        host = environ.get("KUBERNETES_SERVICE_HOST", "")
        port = environ.get("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise StartupError("KUBERNETES_SERVICE_HOST is not set; not running inside a cluster?")
        if ":" in host:
            host = f"[{host}]"

        token_path = service_account_dir / "token"
        if not token_path.exists():
            raise StartupError(f"service account token not found at {token_path}")

        ca_path = service_account_dir / "ca.crt"
        return cls(
            base_url=f"https://{host}:{port}",
            token_path=token_path,
            ca_cert=str(ca_path) if ca_path.exists() else None,
        )

    def verify(self) -> Union[ssl.SSLContext, bool]:
        if self.ca_cert:
            return ssl.create_default_context(cafile=self.ca_cert)
        return True

    def auth(self) -> Optional[httpx.Auth]:
        if self.token_path is not None:
            return ServiceAccountAuth(self.token_path)
        return None

    def headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}


def _metadata(obj: object) -> dict:
    meta = obj.get("metadata") if isinstance(obj, dict) else None
    return meta if isinstance(meta, dict) else {}


class KubeAPILabelSource(WorkloadLabelSource):
    """Resolves allow-listed pod labels through the API server."""

    def __init__(
        self,
        config: Optional[KubeAPIConfig] = None,
        client: Optional[httpx.Client] = None,
        timeout_seconds: float = 5.0,
        logger: Optional[logging.Logger] = None,
    ):
        if client is None:
            if config is None:
                raise ValueError("either config or client is required")
            client = httpx.Client(
                base_url=config.base_url,
                headers=config.headers(),
                auth=config.auth(),
                verify=config.verify(),
                timeout=timeout_seconds,
            )
        self._client = client
        self._log = logger or log

    def _get_json(self, path: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> dict:
        kwargs = {} if timeout is None else {"timeout": timeout}
        try:
            response = self._client.get(path, params=params, **kwargs)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as err:
            raise LabelResolutionError(f"GET {path}: {err}") from err
        except ValueError as err:
            raise LabelResolutionError(f"GET {path}: invalid JSON body: {err}") from err
        except OSError as err:
            # The service account token is read on every request
            raise LabelResolutionError(f"GET {path}: {err}") from err

        if not isinstance(body, dict):
            raise LabelResolutionError(f"GET {path}: expected a JSON object, got {type(body).__name__}")
        return body

    def labels_on_node(
        self,
        node_name: str,
        workloads: Sequence[WorkloadBinding],
        allow_list: Sequence[str],
        timeout: Optional[float] = None,
    ) -> Dict[str, Labels]:
        body = self._get_json(
            "/api/v1/pods",
            params={"fieldSelector": f"spec.nodeName={node_name}"},
            timeout=timeout,
        )

        wanted = {w.namespaced_name for w in workloads}
        result: Dict[str, Labels] = {}
        items = body.get("items")
        for item in items if isinstance(items, list) else []:
            meta = _metadata(item)
            key = namespaced_name(meta.get("name", ""), meta.get("namespace", ""))
            if key in wanted:
                result[key] = select_labels(meta.get("labels"), allow_list)

        self._log.debug("resolved labels for %d/%d pod(s) on node %s", len(result), len(wanted), node_name)
        return result

    def labels_for_workload(
        self,
        workload: WorkloadBinding,
        allow_list: Sequence[str],
        timeout: Optional[float] = None,
    ) -> Labels:
        namespace = workload.namespace or DEFAULT_NAMESPACE
        body = self._get_json(f"/api/v1/namespaces/{namespace}/pods/{workload.name}", timeout=timeout)
        meta = _metadata(body)
        return select_labels(meta.get("labels"), allow_list)

    def close(self):
        self._client.close()
