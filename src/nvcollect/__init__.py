"""nvcollect: NVML device-scan collector exposing per-GPU telemetry as metrics."""

from __future__ import annotations

from nvcollect._buffer import SampleBuffer
from nvcollect._config import CollectorConfig
from nvcollect._errors import (
    CollectorError,
    DeviceLibraryError,
    DeviceUnavailableError,
    EnumerationError,
    FieldExtractionError,
    SessionUnavailableError,
)
from nvcollect._library import DeviceHandle, DeviceLibrary, MockDevice, MockDeviceLibrary
from nvcollect._nvml import NvmlLibrary
from nvcollect._processor import BackgroundScanner
from nvcollect._registry import NvidiaCollector
from nvcollect._runtime import init, scan_once, shutdown
from nvcollect._sampler import DeviceSampler, DeviceSamples, FieldResult
from nvcollect._scan import ScanOrchestrator, ScanReport, ScanState
from nvcollect._schema import (
    DEFAULT_SCHEMA,
    MetricDescriptor,
    MetricKey,
    MetricKind,
    build_schema,
)
from nvcollect._session import NativeSession
from nvcollect._types import Device, MemoryInfo, ProcessUsage, Sample, UtilizationRates

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_SCHEMA",
    "BackgroundScanner",
    "CollectorConfig",
    "CollectorError",
    "Device",
    "DeviceHandle",
    "DeviceLibrary",
    "DeviceLibraryError",
    "DeviceSampler",
    "DeviceSamples",
    "DeviceUnavailableError",
    "EnumerationError",
    "FieldExtractionError",
    "FieldResult",
    "MemoryInfo",
    "MetricDescriptor",
    "MetricKey",
    "MetricKind",
    "MockDevice",
    "MockDeviceLibrary",
    "NativeSession",
    "NvidiaCollector",
    "NvmlLibrary",
    "ProcessUsage",
    "Sample",
    "SampleBuffer",
    "ScanOrchestrator",
    "ScanReport",
    "ScanState",
    "SessionUnavailableError",
    "UtilizationRates",
    "__version__",
    "build_schema",
    "init",
    "scan_once",
    "shutdown",
]
