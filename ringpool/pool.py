"""A self-calibrating pool of ring buffers."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .ring_buffer import RingBuffer

__all__ = [
    "MIN_BIT_SIZE",
    "STEPS",
    "MIN_SIZE",
    "CALIBRATE_CALLS_THRESHOLD",
    "MAX_PERCENTILE",
    "RingBufferPool",
    "size_index",
    "get",
    "put",
]

MIN_BIT_SIZE = 6  # 2**6 = 64, a CPU cache line
STEPS = 20
MIN_SIZE = 1 << MIN_BIT_SIZE
CALIBRATE_CALLS_THRESHOLD = 42000
MAX_PERCENTILE = 0.95


def size_index(n: int) -> int:
    """Return the size class of a buffer whose storage holds ``n`` bytes."""
    n = (n - 1) >> MIN_BIT_SIZE
    idx = 0
    while n > 0:
        n >>= 1
        idx += 1
    return min(idx, STEPS - 1)


@dataclass
class _CallSize:
    calls: int
    size: int


class RingBufferPool:
    """Keeps released ring buffers for reuse.

    The pool counts the sizes of the buffers handed back to it and, every
    so often, picks the most common size as the size of new buffers and a
    ceiling above which returned buffers are dropped instead of kept.
    """

    def __init__(self) -> None:
        self._calls = [0] * STEPS
        self._lock = threading.Lock()
        self._calibrating = False
        self.default_size = 0
        self.max_size = 0
        self._free: list[RingBuffer] = []

    def get(self) -> RingBuffer:
        """Return an empty ring buffer, reusing a pooled one when available."""
        with self._lock:
            if self._free:
                return self._free.pop()
            size = self.default_size
        return RingBuffer(size)

    def put(self, buffer: RingBuffer) -> None:
        """Hand ``buffer`` back; it must not be used afterwards."""
        idx = size_index(buffer.buffer_len())
        with self._lock:
            self._calls[idx] += 1
            needs_calibration = self._calls[idx] > CALIBRATE_CALLS_THRESHOLD
        if needs_calibration:
            self._calibrate()

        with self._lock:
            max_size = self.max_size
            if max_size == 0 or buffer.capacity() <= max_size:
                buffer.reset()
                self._free.append(buffer)

    def _calibrate(self) -> None:
        with self._lock:
            if self._calibrating:
                return
            self._calibrating = True
            counts = self._calls
            self._calls = [0] * STEPS

        try:
            stats = [_CallSize(calls, MIN_SIZE << i) for i, calls in enumerate(counts)]
            calls_sum = sum(counts)
            stats.sort(key=lambda cs: cs.calls, reverse=True)

            default_size = stats[0].size
            max_size = default_size
            max_sum = int(calls_sum * MAX_PERCENTILE)
            calls_sum = 0
            for cs in stats:
                if calls_sum > max_sum:
                    break
                calls_sum += cs.calls
                max_size = max(max_size, cs.size)

            with self._lock:
                self.default_size = default_size
                self.max_size = max_size
        finally:
            with self._lock:
                self._calibrating = False


_default_pool = RingBufferPool()


def get() -> RingBuffer:
    """Return an empty ring buffer from the shared pool."""
    return _default_pool.get()


def put(buffer: RingBuffer) -> None:
    """Return ``buffer`` to the shared pool."""
    _default_pool.put(buffer)