"""
Exception types for the exporter.

StartupError and its subclasses stop the process before it serves.
CorrelationError and LabelResolutionError only ever degrade a single
scrape; the exporter catches them and keeps going.
"""


class ExporterError(Exception):
    """Base class for all exporter errors."""


class StartupError(ExporterError):
    """Raised when the exporter cannot be brought up."""


class DeviceRegistryError(StartupError):
    """Raised when GPU product information can't be fetched or decoded."""


class CorrelationError(ExporterError):
    """Raised when pods using GPU devices can't be listed for this scrape."""


class LabelResolutionError(ExporterError):
    """Raised when pod labels can't be read from the Kubernetes API."""
