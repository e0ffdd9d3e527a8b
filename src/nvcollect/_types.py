"""Core types: devices, library value objects and metric samples."""

from __future__ import annotations

from dataclasses import dataclass

from nvcollect._schema import MetricDescriptor, MetricKind


@dataclass(frozen=True)
class Device:
    """Identity of one physical GPU, derived fresh on every scan."""

    index: int
    minor_number: int
    uuid: str
    name: str

    @property
    def labels(self) -> tuple[str, str, str]:
        """Label values for the (minor_number, uuid, name) label set."""
        return (str(self.minor_number), self.uuid, self.name)


@dataclass(frozen=True)
class ProcessUsage:
    """Memory used by one process on one device."""

    pid: int
    process_name: str
    used_memory_bytes: int


@dataclass(frozen=True)
class MemoryInfo:
    total: int
    used: int


@dataclass(frozen=True)
class UtilizationRates:
    gpu: int
    memory: int


@dataclass(frozen=True)
class Sample:
    """One fully resolved metric observation."""

    descriptor: MetricDescriptor
    label_values: tuple[str, ...]
    value: float

    def __post_init__(self) -> None:
        expected = len(self.descriptor.label_names)
        if len(self.label_values) != expected:
            raise ValueError(
                f"{self.descriptor.name} expects {expected} label values, "
                f"got {len(self.label_values)}"
            )
        for value in self.label_values:
            if not isinstance(value, str):
                raise ValueError(
                    f"{self.descriptor.name} label values must be str, got {value!r}"
                )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def kind(self) -> MetricKind:
        return self.descriptor.kind

    @property
    def labels(self) -> dict[str, str]:
        return dict(zip(self.descriptor.label_names, self.label_values))
