"""Error taxonomy for the scan pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nvcollect._types import Device


class CollectorError(Exception):
    """Base class for every error raised by nvcollect."""


class DeviceLibraryError(CollectorError):
    """A call into the device-management library failed."""


class SessionUnavailableError(CollectorError):
    """The device library could not be initialized. No samples for this scan."""


class EnumerationError(CollectorError):
    """The device count could not be read. Raised after the session is closed."""


class DeviceUnavailableError(CollectorError):
    """One device could not be reached or identified. The scan skips it."""

    def __init__(self, index: int, reason: str) -> None:
        super().__init__(f"device {index}: {reason}")
        self.index = index
        self.reason = reason


class FieldExtractionError(CollectorError):
    """One telemetry field failed on one device. Recorded, never raised."""

    def __init__(self, field: str, device: Device, reason: str) -> None:
        super().__init__(f"{field} on device {device.index} ({device.uuid}): {reason}")
        self.field = field
        self.device = device
        self.reason = reason
