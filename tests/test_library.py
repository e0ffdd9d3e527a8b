"""Tests for the device-library protocol and its mock implementation."""

from __future__ import annotations

import pytest

from nvcollect._errors import DeviceLibraryError
from nvcollect._library import DeviceHandle, DeviceLibrary, MockDevice, MockDeviceLibrary
from nvcollect._nvml import NvmlDevice, NvmlLibrary
from nvcollect._types import MemoryInfo, ProcessUsage, UtilizationRates


class TestProtocols:
    def test_mock_library_satisfies_protocol(self) -> None:
        assert isinstance(MockDeviceLibrary(), DeviceLibrary)

    def test_mock_device_satisfies_protocol(self) -> None:
        assert isinstance(MockDevice(), DeviceHandle)

    def test_nvml_library_satisfies_protocol(self) -> None:
        assert isinstance(NvmlLibrary(), DeviceLibrary)

    def test_nvml_device_satisfies_protocol(self) -> None:
        assert isinstance(NvmlDevice(object()), DeviceHandle)

    def test_protocol_requires_driver_version(self) -> None:
        class _NoDriver:
            def init(self) -> None:
                pass

            def shutdown(self) -> None:
                pass

            def count(self) -> int:
                return 0

            def handle(self, index: int) -> MockDevice:
                return MockDevice()

        assert not isinstance(_NoDriver(), DeviceLibrary)


class TestMockDevice:
    def test_default_values(self) -> None:
        device = MockDevice()
        assert device.identity() == (0, "GPU-0000", "NVIDIA H100 80GB HBM3")
        assert device.memory_info() == MemoryInfo(total=80 * 1024**3, used=42 * 1024**3)
        assert device.utilization() == UtilizationRates(gpu=85, memory=40)
        assert device.processes() == []

    def test_failing_method_raises(self) -> None:
        device = MockDevice(failing=frozenset({"temperature"}))
        with pytest.raises(DeviceLibraryError):
            device.temperature()
        assert device.power_usage() == 350_000

    def test_average_window_recorded(self) -> None:
        device = MockDevice()
        device.average_utilization(10.0)
        assert device.average_windows == [10.0]

    def test_process_list_is_copied(self) -> None:
        procs = [ProcessUsage(pid=1, process_name="python", used_memory_bytes=10)]
        device = MockDevice(process_list=procs)
        device.processes().clear()
        assert device.processes() == procs


class TestMockDeviceLibrary:
    def test_default_two_gpus(self) -> None:
        lib = MockDeviceLibrary()
        assert lib.count() == 2
        assert lib.handle(1).identity() == (1, "GPU-0001", "NVIDIA H100 80GB HBM3")

    def test_call_counters(self) -> None:
        lib = MockDeviceLibrary(num_gpus=1)
        lib.init()
        lib.count()
        lib.handle(0)
        lib.shutdown()
        assert lib.init_calls == 1
        assert lib.count_calls == 1
        assert lib.handle_calls == [0]
        assert lib.shutdown_calls == 1
        assert lib.is_balanced

    def test_failing_handle(self) -> None:
        lib = MockDeviceLibrary(num_gpus=2, failing_handles=[0])
        with pytest.raises(DeviceLibraryError):
            lib.handle(0)
        assert lib.handle(1).uuid == "GPU-0001"

    def test_out_of_range_handle(self) -> None:
        lib = MockDeviceLibrary(num_gpus=1)
        with pytest.raises(DeviceLibraryError):
            lib.handle(5)

    def test_failure_flags(self) -> None:
        lib = MockDeviceLibrary(fail_init=True, fail_count=True, fail_driver_version=True)
        with pytest.raises(DeviceLibraryError):
            lib.init()
        with pytest.raises(DeviceLibraryError):
            lib.count()
        with pytest.raises(DeviceLibraryError):
            lib.driver_version()
