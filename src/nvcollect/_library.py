"""Device-library capability protocol and a deterministic mock implementation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from nvcollect._errors import DeviceLibraryError
from nvcollect._types import MemoryInfo, ProcessUsage, UtilizationRates


@runtime_checkable
class DeviceHandle(Protocol):
    """Opaque per-GPU reference, valid only while its session is open."""

    def identity(self) -> tuple[int, str, str]: ...

    def memory_info(self) -> MemoryInfo: ...

    def power_usage(self) -> int: ...

    def temperature(self) -> int: ...

    def processes(self) -> list[ProcessUsage]: ...

    def utilization(self) -> UtilizationRates: ...

    def average_utilization(self, window_s: float) -> float: ...


@runtime_checkable
class DeviceLibrary(Protocol):
    """Structural protocol for device-management libraries.

    Every method raises DeviceLibraryError on failure.
    """

    def init(self) -> None: ...

    def shutdown(self) -> None: ...

    def count(self) -> int: ...

    def handle(self, index: int) -> DeviceHandle: ...

    def driver_version(self) -> str: ...


@dataclass
class MockDevice:
    """Test-only device handle with configurable per-call failures.

    ``failing`` names the handle methods that raise DeviceLibraryError.
    """

    minor_number: int = 0
    uuid: str = "GPU-0000"
    name: str = "NVIDIA H100 80GB HBM3"
    memory_total: int = 80 * 1024**3
    memory_used: int = 42 * 1024**3
    power_mw: int = 350_000
    temperature_c: int = 72
    process_list: list[ProcessUsage] = field(default_factory=list)
    utilization_gpu: int = 85
    utilization_memory: int = 40
    average_gpu: float = 80.0
    failing: frozenset[str] = frozenset()
    average_windows: list[float] = field(default_factory=list)

    def _check(self, method: str) -> None:
        if method in self.failing:
            raise DeviceLibraryError(f"{method}: simulated failure")

    def identity(self) -> tuple[int, str, str]:
        self._check("identity")
        return (self.minor_number, self.uuid, self.name)

    def memory_info(self) -> MemoryInfo:
        self._check("memory_info")
        return MemoryInfo(total=self.memory_total, used=self.memory_used)

    def power_usage(self) -> int:
        self._check("power_usage")
        return self.power_mw

    def temperature(self) -> int:
        self._check("temperature")
        return self.temperature_c

    def processes(self) -> list[ProcessUsage]:
        self._check("processes")
        return list(self.process_list)

    def utilization(self) -> UtilizationRates:
        self._check("utilization")
        return UtilizationRates(gpu=self.utilization_gpu, memory=self.utilization_memory)

    def average_utilization(self, window_s: float) -> float:
        self._check("average_utilization")
        self.average_windows.append(window_s)
        return self.average_gpu


class MockDeviceLibrary:
    """Test-only library that simulates NVML without hardware.

    Tracks lifecycle calls so tests can assert the session bracket.
    """

    def __init__(
        self,
        devices: Iterable[MockDevice] | None = None,
        *,
        num_gpus: int = 2,
        driver: str = "550.54.15",
        fail_init: bool = False,
        fail_count: bool = False,
        fail_driver_version: bool = False,
        failing_handles: Iterable[int] = (),
    ) -> None:
        if devices is None:
            devices = [
                MockDevice(
                    minor_number=i,
                    uuid=f"GPU-{i:04d}",
                    memory_used=(42 + i) * 1024**3,
                    power_mw=350_000 + i * 10_000,
                    temperature_c=72 + i,
                )
                for i in range(num_gpus)
            ]
        self.devices = list(devices)
        self.driver = driver
        self.fail_init = fail_init
        self.fail_count = fail_count
        self.fail_driver_version = fail_driver_version
        self.failing_handles = set(failing_handles)

        self.init_calls = 0
        self.shutdown_calls = 0
        self.count_calls = 0
        self.handle_calls: list[int] = []

    def init(self) -> None:
        self.init_calls += 1
        if self.fail_init:
            raise DeviceLibraryError("library not found")

    def shutdown(self) -> None:
        self.shutdown_calls += 1

    def count(self) -> int:
        self.count_calls += 1
        if self.fail_count:
            raise DeviceLibraryError("device count unavailable")
        return len(self.devices)

    def handle(self, index: int) -> MockDevice:
        self.handle_calls.append(index)
        if index in self.failing_handles or index >= len(self.devices):
            raise DeviceLibraryError(f"no handle for device {index}")
        return self.devices[index]

    def driver_version(self) -> str:
        if self.fail_driver_version:
            raise DeviceLibraryError("driver version unavailable")
        return self.driver

    @property
    def is_balanced(self) -> bool:
        """True when every successful init was matched by one shutdown."""
        successful = 0 if self.fail_init else self.init_calls
        return successful == self.shutdown_calls
