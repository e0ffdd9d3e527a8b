"""Collector singleton — wires library, scans, registry and exporters together."""

from __future__ import annotations

import atexit
import logging
import threading
from typing import TYPE_CHECKING

from prometheus_client import REGISTRY, start_http_server

from nvcollect._config import CollectorConfig
from nvcollect._exporter import OTLPMetricExporter
from nvcollect._nvml import NvmlLibrary
from nvcollect._processor import BackgroundScanner
from nvcollect._registry import NvidiaCollector
from nvcollect._sampler import DeviceSampler
from nvcollect._scan import SampleSink, ScanOrchestrator, ScanReport
from nvcollect._schema import build_schema

if TYPE_CHECKING:
    from wsgiref.simple_server import WSGIServer

    from prometheus_client import CollectorRegistry

    from nvcollect._library import DeviceLibrary

logger = logging.getLogger("nvcollect.runtime")

_collector_instance: _NvCollector | None = None


class _NvCollector:
    """Internal collector singleton. Not part of the public API."""

    def __init__(
        self,
        config: CollectorConfig,
        *,
        library: DeviceLibrary,
        registry: CollectorRegistry,
    ) -> None:
        self.config = config
        self._registry = registry
        schema = build_schema(config.namespace)
        self.orchestrator = ScanOrchestrator(
            library,
            schema=schema,
            sampler=DeviceSampler(schema, average_window_s=config.average_window_s),
        )
        self._scanner: BackgroundScanner | None = None
        self._exporter: OTLPMetricExporter | None = None
        self._collector: NvidiaCollector | None = None
        self._server: WSGIServer | None = None
        self._server_thread: threading.Thread | None = None

    def start(self) -> None:
        """Register the collector and start background work the config asks for."""
        if self.config.otlp_endpoint is not None:
            self._exporter = OTLPMetricExporter(
                endpoint=self.config.otlp_endpoint,
                service_name=self.config.service_name,
                environment=self.config.environment,
                api_key=self.config.api_key,
            )
        if self.config.scan_interval_ms > 0:
            if self._exporter is not None:
                self._scanner = BackgroundScanner(
                    self.orchestrator,
                    scan_interval_ms=self.config.scan_interval_ms,
                    handler=self._exporter.export,
                )
            else:
                self._scanner = BackgroundScanner(
                    self.orchestrator,
                    scan_interval_ms=self.config.scan_interval_ms,
                )

        self._collector = NvidiaCollector(self.orchestrator, scanner=self._scanner)
        self._registry.register(self._collector)

        if self._scanner is not None:
            self._scanner.start()

        if self.config.listen_port is not None:
            self._server, self._server_thread = start_http_server(
                self.config.listen_port,
                addr=self.config.listen_addr,
                registry=self._registry,
            )
            logger.info(
                "Serving metrics on %s:%d", self.config.listen_addr, self.config.listen_port
            )

    def shutdown(self) -> None:
        """Stop scanning, serving and exporting; unregister the collector."""
        if self._scanner is not None:
            self._scanner.stop()
            self._scanner = None
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            self._server_thread = None
        if self._collector is not None:
            self._registry.unregister(self._collector)
            self._collector = None
        if self._exporter is not None:
            self._exporter.shutdown()
            self._exporter = None

    @property
    def scanner(self) -> BackgroundScanner | None:
        return self._scanner

    @property
    def collector(self) -> NvidiaCollector | None:
        return self._collector


def _get_collector() -> _NvCollector:
    if _collector_instance is None:
        raise RuntimeError("nvcollect is not initialized; call nvcollect.init() first")
    return _collector_instance


def init(
    *,
    namespace: str = "nvidia",
    average_window_s: float = 10.0,
    scan_interval_ms: int = 0,
    listen_port: int | None = None,
    listen_addr: str = "0.0.0.0",
    otlp_endpoint: str | None = None,
    service_name: str = "nvcollect",
    environment: str = "development",
    api_key: str | None = None,
    library: DeviceLibrary | None = None,
    registry: CollectorRegistry | None = None,
) -> None:
    """Initialize the collector and register it with a prometheus registry.

    ``library`` defaults to NVML through pynvml; ``registry`` defaults to the
    prometheus_client global registry.
    """
    global _collector_instance  # noqa: PLW0603

    if _collector_instance is not None:
        _collector_instance.shutdown()
        _collector_instance = None

    config = CollectorConfig(
        namespace=namespace,
        average_window_s=average_window_s,
        scan_interval_ms=scan_interval_ms,
        listen_port=listen_port,
        listen_addr=listen_addr,
        otlp_endpoint=otlp_endpoint,
        service_name=service_name,
        environment=environment,
        api_key=api_key,
    )
    instance = _NvCollector(
        config,
        library=library if library is not None else NvmlLibrary(),
        registry=registry if registry is not None else REGISTRY,
    )
    try:
        instance.start()
    except BaseException:
        # e.g. the listen port is taken after the scanner already started.
        instance.shutdown()
        raise
    _collector_instance = instance
    atexit.register(shutdown)


def scan_once(sink: SampleSink, *, cancel: threading.Event | None = None) -> ScanReport:
    """Run a single scan on the active collector, pushing samples to ``sink``."""
    return _get_collector().orchestrator.scan(sink, cancel=cancel)


def shutdown() -> None:
    """Shut down the collector. Safe to call more than once."""
    global _collector_instance  # noqa: PLW0603
    if _collector_instance is not None:
        _collector_instance.shutdown()
        _collector_instance = None
