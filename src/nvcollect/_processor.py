"""Background scanner that runs scans periodically on a daemon thread."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from nvcollect._buffer import SampleBuffer
from nvcollect._errors import CollectorError
from nvcollect._scan import ScanOrchestrator, ScanReport
from nvcollect._types import Sample

logger = logging.getLogger("nvcollect.processor")

BatchHandler = Callable[[list[Sample]], None]


def _noop_handler(samples: list[Sample]) -> None:
    """Default handler that discards batches. ``latest`` still updates."""


class BackgroundScanner:
    """Daemon thread that scans every ``scan_interval_ms`` and keeps the last batch.

    A failed scan keeps the previous batch and retries on the next tick.
    """

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        *,
        scan_interval_ms: int = 15000,
        handler: BatchHandler = _noop_handler,
    ) -> None:
        self._orchestrator = orchestrator
        self._interval_s = scan_interval_ms / 1000.0
        self._handler = handler
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._latest: list[Sample] = []
        self._last_report: ScanReport | None = None
        self._failures = 0

    def start(self) -> None:
        """Start the background scan loop. The first scan runs immediately."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="nvcollect-scanner")
        self._thread.start()

    def stop(self) -> None:
        """Signal stop, cancelling any scan in progress, and wait for the thread."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def scan_now(self) -> list[Sample]:
        """Run one scan on the calling thread and publish its batch.

        Only the background loop's scans are cancelled by ``stop()``.
        """
        return self._scan(cancel=None)

    def _scan(self, cancel: threading.Event | None) -> list[Sample]:
        buffer = SampleBuffer()
        try:
            report = self._orchestrator.scan(buffer, cancel=cancel)
        except CollectorError as exc:
            self._failures += 1
            logger.warning("Scan failed: %s", exc)
            return self._latest
        batch = buffer.drain()
        if report.cancelled:
            return self._latest
        self._latest = batch
        self._last_report = report
        try:
            self._handler(batch)
        except Exception:  # noqa: BLE001
            logger.warning("Batch handler failed", exc_info=True)
        return batch

    def _run(self) -> None:
        self._scan(cancel=self._stop_event)
        while not self._stop_event.wait(timeout=self._interval_s):
            self._scan(cancel=self._stop_event)

    @property
    def latest(self) -> list[Sample]:
        """Samples from the most recent successful scan."""
        return list(self._latest)

    @property
    def last_report(self) -> ScanReport | None:
        return self._last_report

    @property
    def failure_count(self) -> int:
        """Number of scans that failed at session level."""
        return self._failures

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
