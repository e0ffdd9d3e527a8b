"""Device sampler — per-field telemetry extraction with independent failures."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field

from nvcollect._errors import DeviceLibraryError, DeviceUnavailableError, FieldExtractionError
from nvcollect._library import DeviceHandle
from nvcollect._schema import DEFAULT_SCHEMA, MetricDescriptor, MetricKey
from nvcollect._types import Device, Sample

logger = logging.getLogger("nvcollect.sampler")

DEFAULT_AVERAGE_WINDOW_S = 10.0


@dataclass(frozen=True)
class FieldResult:
    """Outcome of one field extraction: samples on success, a failure otherwise."""

    field: str
    samples: tuple[Sample, ...] = ()
    failure: FieldExtractionError | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class DeviceSamples:
    """Everything one device produced in one scan."""

    device: Device
    samples: list[Sample] = field(default_factory=list)
    failures: list[FieldExtractionError] = field(default_factory=list)


_Extractor = Callable[[DeviceHandle, Device], list[Sample]]


class DeviceSampler:
    """Extracts telemetry from one device handle, field by field.

    Identity (minor number, uuid, name) is required: it labels almost every
    other sample. Every other field fails on its own without affecting the
    rest of the device.
    """

    def __init__(
        self,
        schema: Mapping[MetricKey, MetricDescriptor] = DEFAULT_SCHEMA,
        *,
        average_window_s: float = DEFAULT_AVERAGE_WINDOW_S,
    ) -> None:
        self._schema = schema
        self._average_window_s = average_window_s
        self._extractors: tuple[tuple[str, _Extractor], ...] = (
            ("memory_info", self._memory_info),
            ("power_usage", self._power_usage),
            ("temperature", self._temperature),
            ("processes", self._processes),
            ("utilization", self._utilization),
            ("average_utilization", self._average_utilization),
        )

    @property
    def average_window_s(self) -> float:
        return self._average_window_s

    def identify(self, handle: DeviceHandle, index: int) -> Device:
        """Resolve the device identity or raise DeviceUnavailableError."""
        try:
            minor, uuid, name = handle.identity()
        except DeviceLibraryError as exc:
            raise DeviceUnavailableError(index, f"identity unavailable: {exc}") from exc
        return Device(index=index, minor_number=minor, uuid=uuid, name=name)

    def iter_fields(
        self,
        handle: DeviceHandle,
        device: Device,
        driver_version: str | None = None,
    ) -> Iterator[FieldResult]:
        """Yield one FieldResult per telemetry field, in extraction order."""
        if driver_version is not None:
            yield FieldResult(
                field="driver_info",
                samples=(self._sample(MetricKey.DRIVER_INFO, (*device.labels, driver_version), 0),),
            )
        for name, extractor in self._extractors:
            yield self._extract(name, extractor, handle, device)

    def sample(
        self,
        handle: DeviceHandle,
        index: int,
        driver_version: str | None = None,
    ) -> DeviceSamples:
        """Identify the device and collect every field that succeeds."""
        device = self.identify(handle, index)
        result = DeviceSamples(device=device)
        for outcome in self.iter_fields(handle, device, driver_version):
            result.samples.extend(outcome.samples)
            if outcome.failure is not None:
                result.failures.append(outcome.failure)
        return result

    def _extract(
        self,
        name: str,
        extractor: _Extractor,
        handle: DeviceHandle,
        device: Device,
    ) -> FieldResult:
        try:
            samples = extractor(handle, device)
        except DeviceLibraryError as exc:
            failure = FieldExtractionError(name, device, str(exc))
            failure.__cause__ = exc
            logger.debug("Skipping %s", failure)
            return FieldResult(field=name, failure=failure)
        return FieldResult(field=name, samples=tuple(samples))

    def _sample(self, key: MetricKey, labels: tuple[str, ...], value: float) -> Sample:
        return Sample(self._schema[key], labels, float(value))

    def _memory_info(self, handle: DeviceHandle, device: Device) -> list[Sample]:
        mem = handle.memory_info()
        return [
            self._sample(MetricKey.MEMORY_USED, device.labels, mem.used),
            self._sample(MetricKey.MEMORY_TOTAL, device.labels, mem.total),
        ]

    def _power_usage(self, handle: DeviceHandle, device: Device) -> list[Sample]:
        return [self._sample(MetricKey.POWER_USAGE, device.labels, handle.power_usage())]

    def _temperature(self, handle: DeviceHandle, device: Device) -> list[Sample]:
        return [self._sample(MetricKey.TEMPERATURE, device.labels, handle.temperature())]

    def _processes(self, handle: DeviceHandle, device: Device) -> list[Sample]:
        minor = str(device.minor_number)
        return [
            self._sample(
                MetricKey.PROCESS_INFO,
                (minor, str(proc.pid), proc.process_name),
                proc.used_memory_bytes,
            )
            for proc in handle.processes()
        ]

    def _utilization(self, handle: DeviceHandle, device: Device) -> list[Sample]:
        util = handle.utilization()
        return [
            self._sample(MetricKey.UTILIZATION_GPU, device.labels, util.gpu),
            self._sample(MetricKey.UTILIZATION_MEMORY, device.labels, util.memory),
        ]

    def _average_utilization(self, handle: DeviceHandle, device: Device) -> list[Sample]:
        average = handle.average_utilization(self._average_window_s)
        return [self._sample(MetricKey.UTILIZATION_GPU_AVERAGE, device.labels, average)]
