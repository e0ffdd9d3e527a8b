"""OTLP gRPC exporter — converts Sample batches to protobuf metrics and ships them."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import grpc
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import (
    ExportMetricsServiceRequest,
)
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2_grpc import (
    MetricsServiceStub,
)
from opentelemetry.proto.common.v1.common_pb2 import (
    AnyValue,
    InstrumentationScope,
    KeyValue,
)
from opentelemetry.proto.metrics.v1.metrics_pb2 import (
    AGGREGATION_TEMPORALITY_CUMULATIVE,
    Gauge,
    Metric,
    NumberDataPoint,
    ResourceMetrics,
    ScopeMetrics,
    Sum,
)
from opentelemetry.proto.resource.v1.resource_pb2 import Resource

from nvcollect._schema import MetricKind

if TYPE_CHECKING:
    from nvcollect._schema import MetricDescriptor
    from nvcollect._types import Sample

logger = logging.getLogger("nvcollect.exporter")


def _make_attribute(key: str, value: str) -> KeyValue:
    """Convert a label pair to an OTLP KeyValue protobuf."""
    return KeyValue(key=key, value=AnyValue(string_value=value))


def _sample_to_data_point(sample: Sample, time_unix_nano: int) -> NumberDataPoint:
    """Convert a single Sample to an OTLP NumberDataPoint."""
    attrs = [
        _make_attribute(name, value)
        for name, value in zip(sample.descriptor.label_names, sample.label_values)
    ]
    return NumberDataPoint(
        attributes=attrs,
        time_unix_nano=time_unix_nano,
        as_double=sample.value,
    )


def _samples_to_metrics(samples: list[Sample], time_unix_nano: int) -> list[Metric]:
    """Group samples into one OTLP Metric per descriptor, in first-seen order."""
    points: dict[str, list[NumberDataPoint]] = {}
    descriptors: dict[str, MetricDescriptor] = {}
    for sample in samples:
        descriptors.setdefault(sample.name, sample.descriptor)
        points.setdefault(sample.name, []).append(
            _sample_to_data_point(sample, time_unix_nano)
        )

    metrics: list[Metric] = []
    for name, descriptor in descriptors.items():
        if descriptor.kind is MetricKind.COUNTER:
            metrics.append(Metric(
                name=name,
                description=descriptor.help,
                sum=Sum(
                    data_points=points[name],
                    aggregation_temporality=AGGREGATION_TEMPORALITY_CUMULATIVE,
                    is_monotonic=True,
                ),
            ))
        else:
            metrics.append(Metric(
                name=name,
                description=descriptor.help,
                gauge=Gauge(data_points=points[name]),
            ))
    return metrics


def _build_export_request(
    samples: list[Sample],
    service_name: str,
    environment: str,
    *,
    time_unix_nano: int | None = None,
) -> ExportMetricsServiceRequest:
    """Build an ExportMetricsServiceRequest from a batch of samples."""
    if time_unix_nano is None:
        time_unix_nano = time.time_ns()

    resource_attrs = [
        _make_attribute("service.name", service_name),
        _make_attribute("deployment.environment", environment),
        _make_attribute("telemetry.sdk.name", "nvcollect"),
        _make_attribute("telemetry.sdk.version", "0.1.0"),
    ]

    resource = Resource(attributes=resource_attrs)
    scope = InstrumentationScope(name="nvcollect", version="0.1.0")

    scope_metrics = ScopeMetrics(
        scope=scope, metrics=_samples_to_metrics(samples, time_unix_nano)
    )
    resource_metrics = ResourceMetrics(resource=resource, scope_metrics=[scope_metrics])

    return ExportMetricsServiceRequest(resource_metrics=[resource_metrics])


class OTLPMetricExporter:
    """Exports Sample batches over gRPC using the OTLP metrics protocol.

    Designed as a BatchHandler for BackgroundScanner. Failures are logged
    but never raised — a collector outage must not stop the scan schedule.
    """

    def __init__(
        self,
        endpoint: str,
        service_name: str,
        environment: str,
        *,
        insecure: bool = True,
        timeout_s: float = 10.0,
        api_key: str | None = None,
    ) -> None:
        self._service_name = service_name
        self._environment = environment
        self._timeout_s = timeout_s
        self._metadata: list[tuple[str, str]] | None = None
        if api_key is not None:
            self._metadata = [("authorization", f"Bearer {api_key}")]

        if insecure:
            self._channel = grpc.insecure_channel(endpoint)
        else:
            self._channel = grpc.secure_channel(endpoint, grpc.ssl_channel_credentials())

        self._stub = MetricsServiceStub(self._channel)  # type: ignore[no-untyped-call]

    def export(self, samples: list[Sample]) -> None:
        """Export a batch of samples. Logs and swallows all errors."""
        if not samples:
            return
        try:
            request = _build_export_request(
                samples, self._service_name, self._environment
            )
            self._stub.Export(request, timeout=self._timeout_s, metadata=self._metadata)
        except Exception:  # noqa: BLE001
            logger.debug("Failed to export %d samples", len(samples), exc_info=True)

    def shutdown(self) -> None:
        """Close the gRPC channel."""
        try:
            self._channel.close()
        except Exception:  # noqa: BLE001
            pass
