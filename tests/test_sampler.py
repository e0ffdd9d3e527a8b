"""Tests for DeviceSampler — per-field extraction and failure isolation."""

from __future__ import annotations

import pytest

from nvcollect._errors import DeviceLibraryError, DeviceUnavailableError
from nvcollect._library import MockDevice
from nvcollect._sampler import DeviceSampler, FieldResult
from nvcollect._schema import build_schema
from nvcollect._types import Device, ProcessUsage, Sample

_ALL_FIELDS = (
    "memory_info",
    "power_usage",
    "temperature",
    "processes",
    "utilization",
    "average_utilization",
)


def _by_name(samples: list[Sample]) -> dict[str, list[Sample]]:
    result: dict[str, list[Sample]] = {}
    for s in samples:
        result.setdefault(s.name, []).append(s)
    return result


class TestIdentify:
    def test_identify(self) -> None:
        sampler = DeviceSampler()
        device = sampler.identify(MockDevice(minor_number=3, uuid="GPU-abc", name="A100"), 5)
        assert device == Device(index=5, minor_number=3, uuid="GPU-abc", name="A100")

    def test_identity_failure_is_device_unavailable(self) -> None:
        sampler = DeviceSampler()
        handle = MockDevice(failing=frozenset({"identity"}))
        with pytest.raises(DeviceUnavailableError) as exc_info:
            sampler.identify(handle, 2)
        assert exc_info.value.index == 2
        assert isinstance(exc_info.value.__cause__, DeviceLibraryError)

    def test_sample_raises_on_identity_failure(self) -> None:
        sampler = DeviceSampler()
        with pytest.raises(DeviceUnavailableError):
            sampler.sample(MockDevice(failing=frozenset({"identity"})), 0)


class TestHealthyDevice:
    def test_full_sample_set(self) -> None:
        sampler = DeviceSampler()
        result = sampler.sample(MockDevice(), 0, driver_version="550.54.15")
        names = {s.name for s in result.samples}
        assert names == {
            "nvidia_driver_info",
            "nvidia_memory_used",
            "nvidia_memory_total",
            "nvidia_power_usage",
            "nvidia_temperature",
            "nvidia_utilization_gpu",
            "nvidia_utilization_memory",
            "nvidia_utilization_gpu_average",
        }
        assert result.failures == []

    def test_values(self) -> None:
        handle = MockDevice(
            memory_total=16_000,
            memory_used=4_000,
            power_mw=70_123,
            temperature_c=55,
            utilization_gpu=99,
            utilization_memory=12,
            average_gpu=87.5,
        )
        samples = _by_name(DeviceSampler().sample(handle, 0).samples)
        assert samples["nvidia_memory_total"][0].value == 16_000.0
        assert samples["nvidia_memory_used"][0].value == 4_000.0
        assert samples["nvidia_power_usage"][0].value == 70_123.0
        assert samples["nvidia_temperature"][0].value == 55.0
        assert samples["nvidia_utilization_gpu"][0].value == 99.0
        assert samples["nvidia_utilization_memory"][0].value == 12.0
        assert samples["nvidia_utilization_gpu_average"][0].value == 87.5

    def test_device_labels_in_declared_order(self) -> None:
        handle = MockDevice(minor_number=7, uuid="GPU-7", name="L4")
        result = DeviceSampler().sample(handle, 0, driver_version="550")
        for sample in result.samples:
            labels = sample.labels
            assert labels["minor_number"] == "7"
            if "uuid" in labels:
                assert sample.label_values[:3] == ("7", "GPU-7", "L4")

    def test_driver_info(self) -> None:
        handle = MockDevice(minor_number=1, uuid="GPU-1", name="T4")
        result = DeviceSampler().sample(handle, 0, driver_version="535.104.05")
        info = _by_name(result.samples)["nvidia_driver_info"][0]
        assert info.value == 0.0
        assert info.label_values == ("1", "GPU-1", "T4", "535.104.05")

    def test_no_driver_info_without_version(self) -> None:
        result = DeviceSampler().sample(MockDevice(), 0)
        assert "nvidia_driver_info" not in _by_name(result.samples)
        assert result.failures == []

    def test_average_window_passed_to_library(self) -> None:
        handle = MockDevice()
        DeviceSampler(average_window_s=30.0).sample(handle, 0)
        assert handle.average_windows == [30.0]

    def test_default_average_window(self) -> None:
        handle = MockDevice()
        DeviceSampler().sample(handle, 0)
        assert handle.average_windows == [10.0]

    def test_custom_schema(self) -> None:
        result = DeviceSampler(build_schema("gpu")).sample(MockDevice(), 0)
        assert all(s.name.startswith("gpu_") for s in result.samples)


class TestProcesses:
    def test_one_sample_per_process(self) -> None:
        handle = MockDevice(
            minor_number=2,
            process_list=[
                ProcessUsage(pid=101, process_name="python", used_memory_bytes=1024),
                ProcessUsage(pid=202, process_name="/usr/bin/Xorg", used_memory_bytes=2048),
            ],
        )
        procs = _by_name(DeviceSampler().sample(handle, 0).samples)["nvidia_process_info"]
        assert [s.label_values for s in procs] == [
            ("2", "101", "python"),
            ("2", "202", "/usr/bin/Xorg"),
        ]
        assert [s.value for s in procs] == [1024.0, 2048.0]

    def test_no_processes_is_not_an_error(self) -> None:
        result = DeviceSampler().sample(MockDevice(process_list=[]), 0)
        assert "nvidia_process_info" not in _by_name(result.samples)
        assert result.failures == []


class TestFieldIsolation:
    @pytest.mark.parametrize("failing", _ALL_FIELDS)
    def test_single_failure_keeps_other_fields(self, failing: str) -> None:
        handle = MockDevice(
            failing=frozenset({failing}),
            process_list=[ProcessUsage(pid=1, process_name="p", used_memory_bytes=1)],
        )
        healthy = DeviceSampler().sample(
            MockDevice(process_list=[ProcessUsage(pid=1, process_name="p", used_memory_bytes=1)]), 0
        )
        result = DeviceSampler().sample(handle, 0)

        assert [f.field for f in result.failures] == [failing]
        assert len(result.samples) < len(healthy.samples)
        assert {s.name for s in result.samples} < {s.name for s in healthy.samples}

    def test_memory_failure_drops_both_memory_samples(self) -> None:
        result = DeviceSampler().sample(MockDevice(failing=frozenset({"memory_info"})), 0)
        names = {s.name for s in result.samples}
        assert "nvidia_memory_used" not in names
        assert "nvidia_memory_total" not in names
        assert "nvidia_power_usage" in names
        assert "nvidia_temperature" in names

    def test_utilization_failure_drops_both_rates(self) -> None:
        result = DeviceSampler().sample(MockDevice(failing=frozenset({"utilization"})), 0)
        names = {s.name for s in result.samples}
        assert "nvidia_utilization_gpu" not in names
        assert "nvidia_utilization_memory" not in names
        assert "nvidia_utilization_gpu_average" in names

    def test_all_fields_fail(self) -> None:
        result = DeviceSampler().sample(MockDevice(failing=frozenset(_ALL_FIELDS)), 0, "550")
        assert [s.name for s in result.samples] == ["nvidia_driver_info"]
        assert [f.field for f in result.failures] == list(_ALL_FIELDS)

    def test_failure_carries_device_and_cause(self) -> None:
        result = DeviceSampler().sample(MockDevice(uuid="GPU-x", failing=frozenset({"power_usage"})), 4)
        failure = result.failures[0]
        assert failure.device.uuid == "GPU-x"
        assert failure.device.index == 4
        assert isinstance(failure.__cause__, DeviceLibraryError)


class TestIterFields:
    def test_order(self) -> None:
        sampler = DeviceSampler()
        handle = MockDevice()
        device = sampler.identify(handle, 0)
        fields = [r.field for r in sampler.iter_fields(handle, device, "550")]
        assert fields == ["driver_info", *_ALL_FIELDS]

    def test_results_are_never_mixed(self) -> None:
        sampler = DeviceSampler()
        handle = MockDevice(failing=frozenset({"temperature"}))
        device = sampler.identify(handle, 0)
        results = list(sampler.iter_fields(handle, device))
        assert all(isinstance(r, FieldResult) for r in results)
        failed = [r for r in results if not r.ok]
        assert [r.field for r in failed] == ["temperature"]
        assert failed[0].samples == ()
