"""
amd-exporter entry point.

Usage:
    amd-exporter                          Serve /metrics on :2021
    amd-exporter --mock                   Serve simulated node metrics
    amd-exporter --mock snapshot          One pass, printed as a table
    amd-exporter snapshot --output jsonl  One pass, one JSON line per sample
"""

from __future__ import annotations

import contextlib
import json
import logging
import platform
from typing import Tuple

import click

from amdexporter import __version__
from amdexporter.collector.amd_smi import AMDSMIScanner
from amdexporter.collector.base import TelemetrySource
from amdexporter.collector.mock_collector import MockTelemetrySource
from amdexporter.devices.registry import DeviceRegistry, fetch_device_registry
from amdexporter.errors import StartupError
from amdexporter.exporter import AMDExporter
from amdexporter.mock.generator import mock_registry
from amdexporter.server import serve
from amdexporter.settings import (
    DEFAULT_PORT,
    DEFAULT_SCRAPE_TIMEOUT,
    LOG_LEVELS,
    ExporterSettings,
    env_var,
    parse_list,
)
from amdexporter.workloads.correlator import WorkloadCorrelator
from amdexporter.workloads.kube_api import KubeAPIConfig, KubeAPILabelSource
from amdexporter.workloads.kubelet import DEFAULT_SOCKET_PATH, KubeletPodResourcesClient


log = logging.getLogger("amdexporter")


def _log_startup(settings: ExporterSettings):
    log.info("amd-exporter %s (python %s)", __version__, platform.python_version())
    log.debug("settings: %s", settings.summary())
    for name in settings.missing_identity():
        log.info("%s is empty; set it from the downward API in the pod spec", name)


def _build_source(settings: ExporterSettings, stack: contextlib.ExitStack) -> Tuple[TelemetrySource, DeviceRegistry]:
    if settings.mock:
        return MockTelemetrySource(), mock_registry()

    registry = fetch_device_registry()
    log.info("found %d GPU(s) in rocm-smi", len(registry))

    scanner = AMDSMIScanner()
    stack.callback(scanner.close)
    if not scanner.available:
        log.warning("AMD SMI is not available; every reading will be exported as -1")
    return scanner, registry


def _build_correlator(settings: ExporterSettings, stack: contextlib.ExitStack):
    if not settings.with_kubernetes:
        log.info("kubernetes integration disabled")
        return None
    if settings.mock:
        log.info("mock mode, kubernetes integration disabled")
        return None

    kubelet = KubeletPodResourcesClient(
        target=settings.kubelet_socket,
        custom_resource_names=settings.resource_names,
        node_name=settings.node_name,
    )
    stack.callback(kubelet.close)
    kubelet.connect()

    label_source = None
    if settings.pod_labels:
        if settings.kube_api_url:
            config = KubeAPIConfig(base_url=settings.kube_api_url)
        else:
            config = KubeAPIConfig.in_cluster()
        label_source = KubeAPILabelSource(config)
        stack.callback(label_source.close)
        log.info("exporting pod labels: %s", ", ".join(settings.pod_labels))

    return WorkloadCorrelator(
        bindings_source=kubelet,
        label_source=label_source,
        label_allow_list=settings.pod_labels,
        node_name=settings.node_name,
    )


def build_exporter(settings: ExporterSettings, stack: contextlib.ExitStack) -> AMDExporter:
    """Wire up every collaborator. Raises StartupError if one can't start."""
    source, registry = _build_source(settings, stack)
    correlator = _build_correlator(settings, stack)
    return AMDExporter(
        source=source,
        registry=registry,
        correlator=correlator,
        label_allow_list=settings.pod_labels,
        scrape_timeout=settings.scrape_timeout,
    )


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="amd-exporter")
@click.option("--log-level", type=click.Choice(list(LOG_LEVELS)), default="development",
              envvar=env_var("LOG_LEVEL"), show_default=True, help="development logs at debug level")
@click.option("--port", type=int, default=DEFAULT_PORT, envvar=env_var("WEB_SERVER_PORT"),
              show_default=True, help="Port serving /metrics")
@click.option("--kubelet-socket", default=DEFAULT_SOCKET_PATH, envvar=env_var("KUBELET_SOCKET_PATH"),
              show_default=True, help="Kubelet pod-resources socket")
@click.option("--resource-names", default="", envvar=env_var("RESOURCE_NAMES"),
              help="Extra GPU resource names, comma separated (amd.com/gpu is always included)")
@click.option("--with-kubernetes/--without-kubernetes", default=True, envvar=env_var("WITH_KUBERNETES"),
              show_default=True, help="Label GPU metrics with the pods using them")
@click.option("--node-name", default="", envvar=env_var("NODE_NAME"), help="Name of this node")
@click.option("--pod-name", default="", envvar=env_var("POD_NAME"), help="Name of the exporter pod")
@click.option("--pod-namespace", default="", envvar=env_var("NAMESPACE"), help="Namespace of the exporter pod")
@click.option("--pod-labels", default="", envvar=env_var("POD_LABELS"),
              help="Pod label keys to export on GPU metrics, comma separated")
@click.option("--kube-api-url", default=None, envvar=env_var("KUBE_API_URL"),
              help="API server URL (default: in-cluster config)")
@click.option("--scrape-timeout", type=float, default=DEFAULT_SCRAPE_TIMEOUT, envvar=env_var("SCRAPE_TIMEOUT"),
              show_default=True, help="Deadline in seconds for the kubernetes lookups of one scrape")
@click.option("--mock", is_flag=True, default=False, help="Use simulated node telemetry")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx, log_level: str, port: int, kubelet_socket: str, resource_names: str, with_kubernetes: bool,
        node_name: str, pod_name: str, pod_namespace: str, pod_labels: str, kube_api_url: str,
        scrape_timeout: float, mock: bool, verbose: bool):
    """AMD CPU/GPU Prometheus exporter for Kubernetes nodes."""
    settings = ExporterSettings(
        log_level=log_level,
        port=port,
        kubelet_socket=kubelet_socket,
        resource_names=parse_list(resource_names),
        with_kubernetes=with_kubernetes,
        node_name=node_name,
        pod_name=pod_name,
        pod_namespace=pod_namespace,
        pod_labels=parse_list(pod_labels),
        kube_api_url=kube_api_url or None,
        scrape_timeout=scrape_timeout,
        mock=mock,
        verbose=verbose,
    )
    logging.basicConfig(
        level=settings.logging_level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    ctx.obj = settings

    if ctx.invoked_subcommand is not None:
        return

    _log_startup(settings)
    with contextlib.ExitStack() as stack:
        try:
            exporter = build_exporter(settings, stack)
        except StartupError as err:
            log.error("startup failed: %s", err)
            raise SystemExit(1)
        serve(exporter, settings.port)


@cli.command()
@click.option("--output", type=click.Choice(["table", "jsonl"]), default="table",
              help="Output mode: table (Rich) or jsonl (one JSON line per sample)")
@click.pass_obj
def snapshot(settings: ExporterSettings, output: str):
    """Run a single collection pass and print what a scrape would return."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    with contextlib.ExitStack() as stack:
        try:
            exporter = build_exporter(settings, stack)
        except StartupError as err:
            log.error("startup failed: %s", err)
            raise SystemExit(1)
        observations = exporter.collect_observations()

    if output == "jsonl":
        for obs in observations:
            click.echo(json.dumps({"name": obs.name, "labels": dict(obs.labels), "value": obs.value}))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Labels")
    table.add_column("Value", justify="right")
    for obs in observations:
        labels = ", ".join(f"{name}={value!r}" for name, value in obs.labels)
        table.add_row(f"[cyan]{obs.name}[/cyan]", escape(labels), f"{obs.value:g}")

    console = Console()
    console.print(table)
    console.print(f"[dim]{len(observations)} samples[/dim]")


if __name__ == "__main__":
    cli()
