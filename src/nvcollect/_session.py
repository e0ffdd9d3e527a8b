"""Native session — scoped, process-exclusive bracket around the device library."""

from __future__ import annotations

import logging
import threading
from types import TracebackType

from nvcollect._errors import (
    DeviceLibraryError,
    DeviceUnavailableError,
    EnumerationError,
    SessionUnavailableError,
)
from nvcollect._library import DeviceHandle, DeviceLibrary

logger = logging.getLogger("nvcollect.session")

# Overlapping init/shutdown pairs on the native library are undefined, so one
# lock guards every session in the process for its whole open -> close span.
_SESSION_LOCK = threading.Lock()


class NativeSession:
    """One open/close bracket of the device library.

    Used as a context manager::

        with NativeSession(library) as session:
            for i in range(session.device_count()):
                handle = session.handle_at(i)
    """

    def __init__(
        self,
        library: DeviceLibrary,
        *,
        lock: threading.Lock | None = None,
    ) -> None:
        self._library = library
        self._lock = lock if lock is not None else _SESSION_LOCK
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """Acquire the session lock and initialize the library."""
        if self._open:
            raise RuntimeError("session is already open")
        self._lock.acquire()
        try:
            self._library.init()
        except DeviceLibraryError as exc:
            self._lock.release()
            raise SessionUnavailableError(
                f"device library failed to initialize: {exc}"
            ) from exc
        except BaseException:
            self._lock.release()
            raise
        self._open = True

    def close(self) -> None:
        """Shut the library down and release the lock. No-op when not open."""
        if not self._open:
            return
        self._open = False
        try:
            self._library.shutdown()
        except DeviceLibraryError:
            logger.warning("Device library shutdown failed", exc_info=True)
        finally:
            self._lock.release()

    def device_count(self) -> int:
        self._require_open()
        try:
            return self._library.count()
        except DeviceLibraryError as exc:
            raise EnumerationError(f"device count unavailable: {exc}") from exc

    def handle_at(self, index: int) -> DeviceHandle:
        self._require_open()
        try:
            return self._library.handle(index)
        except DeviceLibraryError as exc:
            raise DeviceUnavailableError(index, str(exc)) from exc

    def driver_version(self) -> str | None:
        """Return the driver version, or None when it cannot be read."""
        self._require_open()
        try:
            return self._library.driver_version()
        except DeviceLibraryError as exc:
            logger.debug("Driver version unavailable: %s", exc)
            return None

    def _require_open(self) -> None:
        if not self._open:
            raise RuntimeError("session is not open")

    def __enter__(self) -> NativeSession:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
