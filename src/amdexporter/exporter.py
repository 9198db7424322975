"""
The Prometheus collector for an AMD node.

Every scrape runs one complete pass: correlate GPUs with pods, scan the
hardware, build observations. A failing Kubernetes lookup never fails
the scrape; GPU metrics are then exported without pod labels.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from prometheus_client.core import Metric

from amdexporter.collector.base import TelemetrySource
from amdexporter.context import PassContext
from amdexporter.devices.registry import DeviceRegistry
from amdexporter.engine.catalog import MetricDefinition, MetricKind, build_catalog, collector_descriptor
from amdexporter.engine.emission import Observation, emit
from amdexporter.errors import CorrelationError
from amdexporter.workloads.correlator import WorkloadCorrelator
from amdexporter.workloads.model import EMPTY_KEY_MAP, DeviceKeyMap

log = logging.getLogger(__name__)


def _empty_family(definition: MetricDefinition) -> Metric:
    return Metric(definition.fq_name, definition.help_text, definition.kind.value)


def to_metric_families(observations: Iterable[Observation]) -> List[Metric]:
    """Group observations into one exposition family per metric name.

    Families keep first-seen order and samples keep observation order.
    Label sets may differ between samples of the same family.
    """
    families: Dict[str, Metric] = {}
    for obs in observations:
        definition = obs.definition
        family = families.get(definition.fq_name)
        if family is None:
            family = families[definition.fq_name] = _empty_family(definition)

        sample_name = definition.fq_name
        if definition.kind is MetricKind.COUNTER:
            sample_name += "_total"
        family.add_sample(sample_name, dict(obs.labels), obs.value)

    return list(families.values())


class AMDExporter:
    """Custom collector, registered with a prometheus_client CollectorRegistry."""

    def __init__(
        self,
        source: TelemetrySource,
        registry: DeviceRegistry,
        correlator: Optional[WorkloadCorrelator] = None,
        label_allow_list: Optional[Sequence[str]] = None,
        scrape_timeout: Optional[float] = None,
        catalog: Optional[Sequence[MetricDefinition]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._source = source
        self._registry = registry
        self._correlator = correlator
        self._allow_list = tuple(label_allow_list) if label_allow_list is not None else None
        self._scrape_timeout = scrape_timeout
        self._catalog = tuple(catalog) if catalog is not None else build_catalog()
        self._log = logger or log

    @property
    def with_kubernetes(self) -> bool:
        return self._correlator is not None

    def describe(self) -> List[Metric]:
        # Label sets change with the pods on the node, so only a single
        # placeholder is announced up front.
        return [_empty_family(collector_descriptor())]

    def collect(self) -> Iterator[Metric]:
        yield from to_metric_families(self.collect_observations())

    def collect_observations(self, timeout: Optional[float] = None) -> List[Observation]:
        """Run one full pass and return its observations in scrape order."""
        self._log.debug("collecting metrics")
        ctx = PassContext.start(
            timeout=timeout if timeout is not None else self._scrape_timeout,
            with_kubernetes=self.with_kubernetes,
        )

        bindings = self._correlate(ctx)
        snapshot = self._source.scan()
        self._log.debug("scanned %s: %s", self._source.name(), snapshot.summary())

        observations = emit(self._catalog, snapshot, self._registry, bindings, self._allow_list)
        self._log.debug("built %d observation(s) in %.3fs", len(observations), ctx.elapsed())
        return observations

    def _correlate(self, ctx: PassContext) -> Optional[DeviceKeyMap]:
        if not ctx.with_kubernetes:
            return None

        try:
            return self._correlator.correlate(ctx)
        except CorrelationError as err:
            self._log.error("scanning k8s resources: %s", err)
        except Exception:
            self._log.exception("unexpected error scanning k8s resources")

        self._log.info("will continue collecting without k8s resources")
        return EMPTY_KEY_MAP
