"""
Serves /metrics until the process is told to stop.
"""

from __future__ import annotations

import logging
import signal
import threading
from typing import Optional

from prometheus_client import CollectorRegistry, start_http_server

from amdexporter.exporter import AMDExporter

log = logging.getLogger(__name__)


def build_registry(exporter: AMDExporter) -> CollectorRegistry:
    # A dedicated registry keeps the default process/platform collectors out
    registry = CollectorRegistry()
    registry.register(exporter)
    return registry


def _stop_on_signals(stop: threading.Event, logger: logging.Logger):
    def _on_signal(signum, _frame):
        logger.info("received %s, shutting down", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)


def serve(
    exporter: AMDExporter,
    port: int,
    addr: str = "0.0.0.0",
    stop: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
):
    """Block serving scrapes on addr:port.

    Without a stop event the server runs until SIGINT or SIGTERM.
    """
    logger = logger or log
    if stop is None:
        stop = threading.Event()
        _stop_on_signals(stop, logger)

    httpd, thread = start_http_server(port, addr=addr, registry=build_registry(exporter))
    logger.info("serving metrics on %s:%d/metrics", addr, httpd.server_port)

    try:
        stop.wait()
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)
        logger.info("metrics server stopped")
