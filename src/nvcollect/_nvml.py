"""NVIDIA pynvml implementation of the device-library capability."""

from __future__ import annotations

import logging
import time
import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from nvcollect._errors import DeviceLibraryError
from nvcollect._types import MemoryInfo, ProcessUsage, UtilizationRates

logger = logging.getLogger("nvcollect.nvml")

# pynvml is optional — without it the session reports itself unavailable.
# Suppress deprecation warning from pynvml (recommends nvidia-ml-py).
warnings.filterwarnings("ignore", category=FutureWarning, message=".*pynvml.*deprecated.*")
try:
    import pynvml

    _HAS_PYNVML = True
except ImportError:
    pynvml = None  # type: ignore[assignment,unused-ignore]
    _HAS_PYNVML = False


@contextmanager
def _nvml_call(call: str) -> Iterator[None]:
    """Translate NVML errors raised inside the block into DeviceLibraryError."""
    assert pynvml is not None
    try:
        yield
    except pynvml.NVMLError as exc:
        raise DeviceLibraryError(f"{call}: {exc}") from exc


def _text(value: str | bytes) -> str:
    # Older bindings return bytes.
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class NvmlDevice:
    """DeviceHandle over a raw NVML device handle."""

    def __init__(self, handle: Any) -> None:
        self._handle = handle

    def identity(self) -> tuple[int, str, str]:
        assert pynvml is not None
        with _nvml_call("nvmlDeviceGetMinorNumber"):
            minor = int(pynvml.nvmlDeviceGetMinorNumber(self._handle))
        with _nvml_call("nvmlDeviceGetUUID"):
            uuid = _text(pynvml.nvmlDeviceGetUUID(self._handle))
        with _nvml_call("nvmlDeviceGetName"):
            name = _text(pynvml.nvmlDeviceGetName(self._handle))
        return minor, uuid, name

    def memory_info(self) -> MemoryInfo:
        assert pynvml is not None
        with _nvml_call("nvmlDeviceGetMemoryInfo"):
            mem = pynvml.nvmlDeviceGetMemoryInfo(self._handle)
        return MemoryInfo(total=int(mem.total), used=int(mem.used))

    def power_usage(self) -> int:
        assert pynvml is not None
        with _nvml_call("nvmlDeviceGetPowerUsage"):
            return int(pynvml.nvmlDeviceGetPowerUsage(self._handle))  # mW

    def temperature(self) -> int:
        assert pynvml is not None
        with _nvml_call("nvmlDeviceGetTemperature"):
            return int(pynvml.nvmlDeviceGetTemperature(self._handle, pynvml.NVML_TEMPERATURE_GPU))

    def processes(self) -> list[ProcessUsage]:
        assert pynvml is not None
        with _nvml_call("nvmlDeviceGetComputeRunningProcesses"):
            running = list(pynvml.nvmlDeviceGetComputeRunningProcesses(self._handle))
        try:
            running.extend(pynvml.nvmlDeviceGetGraphicsRunningProcesses(self._handle))
        except pynvml.NVMLError as exc:
            # Not supported on some devices and missing on older drivers.
            logger.debug("Graphics process list unavailable: %s", exc)

        result: list[ProcessUsage] = []
        seen: set[int] = set()
        for proc in running:
            pid = int(proc.pid)
            if pid in seen:
                continue
            seen.add(pid)
            if proc.usedGpuMemory is None:
                logger.debug("Used memory unavailable for pid %d", pid)
                continue
            try:
                name = _text(pynvml.nvmlSystemGetProcessName(pid))
            except pynvml.NVMLError:
                # The process exited between listing and lookup.
                logger.debug("Process name unavailable for pid %d", pid)
                continue
            result.append(ProcessUsage(
                pid=pid,
                process_name=name,
                used_memory_bytes=int(proc.usedGpuMemory),
            ))
        return result

    def utilization(self) -> UtilizationRates:
        assert pynvml is not None
        with _nvml_call("nvmlDeviceGetUtilizationRates"):
            util = pynvml.nvmlDeviceGetUtilizationRates(self._handle)
        return UtilizationRates(gpu=int(util.gpu), memory=int(util.memory))

    def average_utilization(self, window_s: float) -> float:
        """Mean of the GPU utilization samples NVML buffered during the window."""
        assert pynvml is not None
        since_us = int((time.time() - window_s) * 1_000_000)
        with _nvml_call("nvmlDeviceGetSamples"):
            _, samples = pynvml.nvmlDeviceGetSamples(
                self._handle, pynvml.NVML_GPU_UTILIZATION_SAMPLES, since_us
            )
        values = [int(s.sampleValue.uiVal) for s in samples if s.timeStamp >= since_us]
        if not values:
            raise DeviceLibraryError(f"no utilization samples in the last {window_s:g}s")
        return sum(values) / len(values)


class NvmlLibrary:
    """NVIDIA device library using pynvml."""

    vendor = "NVIDIA"

    def init(self) -> None:
        if not _HAS_PYNVML:
            raise DeviceLibraryError("pynvml is not installed")
        with _nvml_call("nvmlInit"):
            pynvml.nvmlInit()

    def shutdown(self) -> None:
        with _nvml_call("nvmlShutdown"):
            pynvml.nvmlShutdown()

    def count(self) -> int:
        with _nvml_call("nvmlDeviceGetCount"):
            return int(pynvml.nvmlDeviceGetCount())

    def handle(self, index: int) -> NvmlDevice:
        with _nvml_call("nvmlDeviceGetHandleByIndex"):
            return NvmlDevice(pynvml.nvmlDeviceGetHandleByIndex(index))

    def driver_version(self) -> str:
        with _nvml_call("nvmlSystemGetDriverVersion"):
            return _text(pynvml.nvmlSystemGetDriverVersion())
