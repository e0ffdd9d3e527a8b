"""Metric schema: static descriptors for every metric the collector emits."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

DEVICE_LABELS: tuple[str, ...] = ("minor_number", "uuid", "name")


class MetricKind(enum.Enum):
    """Value kind of a metric."""

    COUNTER = "counter"
    GAUGE = "gauge"


class MetricKey(enum.Enum):
    """Logical metric keys. The value is the metric name suffix."""

    DEVICE_COUNT = "device_count"
    DRIVER_INFO = "driver_info"
    MEMORY_USED = "memory_used"
    MEMORY_TOTAL = "memory_total"
    POWER_USAGE = "power_usage"
    TEMPERATURE = "temperature"
    PROCESS_INFO = "process_info"
    UTILIZATION_GPU = "utilization_gpu"
    UTILIZATION_MEMORY = "utilization_memory"
    UTILIZATION_GPU_AVERAGE = "utilization_gpu_average"


@dataclass(frozen=True)
class MetricDescriptor:
    """Immutable identity of a metric. Samples supply values in label_names order."""

    name: str
    help: str
    label_names: tuple[str, ...]
    kind: MetricKind


_DEFINITIONS: tuple[tuple[MetricKey, str, tuple[str, ...], MetricKind], ...] = (
    (MetricKey.DEVICE_COUNT, "Number of GPU devices.", (), MetricKind.COUNTER),
    (
        MetricKey.DRIVER_INFO,
        "NVIDIA driver version, reported as a label. Value is always 0.",
        (*DEVICE_LABELS, "version"),
        MetricKind.COUNTER,
    ),
    (
        MetricKey.MEMORY_USED,
        "Memory used by the GPU device in bytes.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
    (
        MetricKey.MEMORY_TOTAL,
        "Total memory of the GPU device in bytes.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
    (
        MetricKey.POWER_USAGE,
        "Power usage of the GPU device in milliwatts.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
    (
        MetricKey.TEMPERATURE,
        "Temperature of the GPU device in celsius.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
    (
        MetricKey.PROCESS_INFO,
        "Memory used by a process on the GPU device in bytes.",
        ("minor_number", "pid", "process_name"),
        MetricKind.GAUGE,
    ),
    (
        MetricKey.UTILIZATION_GPU,
        "Percent of time over the past sample period during which one or more "
        "kernels were executing on the GPU device.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
    (
        MetricKey.UTILIZATION_MEMORY,
        "Percent of time over the past sample period during which device memory "
        "was being read or written.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
    (
        MetricKey.UTILIZATION_GPU_AVERAGE,
        "GPU utilization reported by the device averaged over a trailing window.",
        DEVICE_LABELS,
        MetricKind.GAUGE,
    ),
)


def build_schema(namespace: str = "nvidia") -> Mapping[MetricKey, MetricDescriptor]:
    """Build the read-only key -> descriptor mapping for a metric namespace."""
    prefix = f"{namespace}_" if namespace else ""
    return MappingProxyType({
        key: MetricDescriptor(
            name=f"{prefix}{key.value}",
            help=help_text,
            label_names=label_names,
            kind=kind,
        )
        for key, help_text, label_names, kind in _DEFINITIONS
    })


DEFAULT_SCHEMA = build_schema()
