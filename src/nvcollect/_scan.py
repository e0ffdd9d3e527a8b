"""Scan orchestrator — one full collection pass from session open to close."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from nvcollect._errors import DeviceUnavailableError, FieldExtractionError
from nvcollect._library import DeviceLibrary
from nvcollect._sampler import DeviceSampler
from nvcollect._schema import DEFAULT_SCHEMA, MetricDescriptor, MetricKey
from nvcollect._session import NativeSession
from nvcollect._types import Device, Sample

logger = logging.getLogger("nvcollect.scan")

SampleSink = Callable[[Sample], None]


class ScanState(enum.Enum):
    """Where the orchestrator is within a scan."""

    IDLE = "idle"
    SESSION_OPENING = "session_opening"
    ENUMERATING = "enumerating"
    SAMPLING = "sampling"
    SESSION_CLOSING = "session_closing"


@dataclass
class ScanReport:
    """Diagnostics for one completed scan."""

    device_count: int = 0
    devices: list[Device] = field(default_factory=list)
    skipped: list[DeviceUnavailableError] = field(default_factory=list)
    field_failures: list[FieldExtractionError] = field(default_factory=list)
    samples_emitted: int = 0
    cancelled: bool = False


class ScanOrchestrator:
    """Drives scans over a device library and pushes samples to a sink.

    Session-level failures (SessionUnavailableError, EnumerationError)
    propagate to the caller. Device and field failures are logged, recorded
    in the ScanReport, and the scan carries on.
    """

    def __init__(
        self,
        library: DeviceLibrary,
        *,
        schema: Mapping[MetricKey, MetricDescriptor] = DEFAULT_SCHEMA,
        sampler: DeviceSampler | None = None,
        session_lock: threading.Lock | None = None,
    ) -> None:
        self._library = library
        self._schema = schema
        self._sampler = sampler if sampler is not None else DeviceSampler(schema)
        self._session_lock = session_lock
        # Taken before the session lock; ``state`` belongs to the holder.
        self._scan_lock = threading.Lock()
        self._state = ScanState.IDLE

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def schema(self) -> Mapping[MetricKey, MetricDescriptor]:
        return self._schema

    def scan(
        self,
        sink: SampleSink,
        *,
        cancel: threading.Event | None = None,
    ) -> ScanReport:
        """Run one scan, pushing every sample to ``sink`` as it is produced.

        ``cancel`` is checked before each device. A cancelled scan still
        closes its session. Concurrent calls on one orchestrator run one at
        a time, so ``state`` always describes the scan in progress.
        """
        with self._scan_lock:
            return self._scan_locked(sink, cancel)

    def _scan_locked(self, sink: SampleSink, cancel: threading.Event | None) -> ScanReport:
        report = ScanReport()
        session = NativeSession(self._library, lock=self._session_lock)

        self._state = ScanState.SESSION_OPENING
        try:
            session.open()
        except BaseException:
            self._state = ScanState.IDLE
            raise

        try:
            self._state = ScanState.ENUMERATING
            count = session.device_count()
            report.device_count = count
            self._emit(sink, report, Sample(self._schema[MetricKey.DEVICE_COUNT], (), float(count)))
            driver_version = session.driver_version()

            self._state = ScanState.SAMPLING
            for index in range(count):
                if cancel is not None and cancel.is_set():
                    logger.info("Scan cancelled after %d of %d devices", index, count)
                    report.cancelled = True
                    break
                self._scan_device(session, index, driver_version, sink, report)
        finally:
            self._state = ScanState.SESSION_CLOSING
            session.close()
            self._state = ScanState.IDLE

        return report

    def _scan_device(
        self,
        session: NativeSession,
        index: int,
        driver_version: str | None,
        sink: SampleSink,
        report: ScanReport,
    ) -> None:
        try:
            handle = session.handle_at(index)
            device = self._sampler.identify(handle, index)
        except DeviceUnavailableError as exc:
            logger.warning("Skipping device: %s", exc)
            report.skipped.append(exc)
            return

        report.devices.append(device)
        for outcome in self._sampler.iter_fields(handle, device, driver_version):
            if outcome.failure is not None:
                report.field_failures.append(outcome.failure)
            for sample in outcome.samples:
                self._emit(sink, report, sample)

    @staticmethod
    def _emit(sink: SampleSink, report: ScanReport, sample: Sample) -> None:
        sink(sample)
        report.samples_emitted += 1
