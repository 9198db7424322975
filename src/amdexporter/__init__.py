"""Prometheus exporter for AMD CPU and GPU telemetry on Kubernetes nodes."""

__version__ = "0.4.0"
