"""Collector configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CollectorConfig:
    """Immutable collector configuration.

    ``scan_interval_ms`` of 0 scans on every scrape; a positive value scans
    in the background and serves the latest batch.
    """

    namespace: str = "nvidia"
    average_window_s: float = 10.0
    scan_interval_ms: int = 0
    listen_port: int | None = None
    listen_addr: str = "0.0.0.0"
    otlp_endpoint: str | None = None
    service_name: str = "nvcollect"
    environment: str = "development"
    api_key: str | None = None

    def __post_init__(self) -> None:
        if self.average_window_s <= 0:
            raise ValueError("average_window_s must be positive")
        if self.scan_interval_ms < 0:
            raise ValueError("scan_interval_ms must be >= 0")
        if self.otlp_endpoint is not None and self.scan_interval_ms == 0:
            raise ValueError("otlp_endpoint requires background scanning (scan_interval_ms > 0)")
