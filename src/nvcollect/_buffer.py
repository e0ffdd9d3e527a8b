"""Deque-backed sample buffer, usable directly as a scan sink."""

from __future__ import annotations

from collections import deque

from nvcollect._types import Sample


class SampleBuffer:
    """Thread-safe sample buffer backed by collections.deque.

    CPython's GIL guarantees that deque.append and deque.popleft are atomic,
    so no explicit locking is needed for single-producer/single-consumer usage.
    One scan's samples are bounded by the device count, so nothing is dropped.
    """

    def __init__(self) -> None:
        self._buffer: deque[Sample] = deque()

    def enqueue(self, sample: Sample) -> None:
        """Add a sample to the buffer."""
        self._buffer.append(sample)

    __call__ = enqueue

    def drain(self, max_items: int | None = None) -> list[Sample]:
        """Remove and return up to max_items samples (all when None)."""
        items: list[Sample] = []
        while max_items is None or len(items) < max_items:
            try:
                items.append(self._buffer.popleft())
            except IndexError:
                break
        return items

    def __len__(self) -> int:
        return len(self._buffer)
