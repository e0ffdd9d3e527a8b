"""prometheus_client adapter — exposes scan samples as a custom collector."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from nvcollect._buffer import SampleBuffer
from nvcollect._errors import CollectorError
from nvcollect._schema import MetricDescriptor, MetricKind
from nvcollect._types import Sample

if TYPE_CHECKING:
    from nvcollect._processor import BackgroundScanner
    from nvcollect._scan import ScanOrchestrator

logger = logging.getLogger("nvcollect.registry")


def samples_to_families(samples: Iterable[Sample]) -> list[Metric]:
    """Group samples by descriptor into metric families, in first-seen order."""
    families: dict[str, Metric] = {}
    for sample in samples:
        family = families.get(sample.name)
        if family is None:
            family = _new_family(sample.descriptor)
            families[sample.name] = family
        family.add_metric(list(sample.label_values), sample.value)  # type: ignore[attr-defined]
    return list(families.values())


def _new_family(descriptor: MetricDescriptor) -> Metric:
    labels = list(descriptor.label_names)
    if descriptor.kind is MetricKind.COUNTER:
        return CounterMetricFamily(descriptor.name, descriptor.help, labels=labels)
    return GaugeMetricFamily(descriptor.name, descriptor.help, labels=labels)


class NvidiaCollector(Collector):
    """Custom collector for prometheus_client registries.

    Scans on every scrape, or serves the latest batch of a BackgroundScanner
    when one is given. A failed scan yields no families; it is logged and the
    scrape still succeeds.
    """

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        *,
        scanner: BackgroundScanner | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._scanner = scanner

    def describe(self) -> Iterable[Metric]:
        # Registering must not trigger a scan.
        return []

    def collect(self) -> Iterator[Metric]:
        if self._scanner is not None:
            yield from samples_to_families(self._scanner.latest)
            return
        buffer = SampleBuffer()
        try:
            self._orchestrator.scan(buffer)
        except CollectorError as exc:
            logger.warning("Scan failed during scrape: %s", exc)
            return
        yield from samples_to_families(buffer.drain())
