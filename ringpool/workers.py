"""A bounded pool of reusable worker threads."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

__all__ = [
    "DEFAULT_POOL_SIZE",
    "EXPIRY_DURATION",
    "NONBLOCKING",
    "PoolOverloaded",
    "WorkerPool",
    "default_pool",
]

DEFAULT_POOL_SIZE = 1 << 18
EXPIRY_DURATION = 10.0  # seconds an idle worker lives before exiting
NONBLOCKING = True

_log = logging.getLogger(__name__)

_Task = tuple[Callable[..., Any], tuple[Any, ...]]


class PoolOverloaded(Exception):
    """Raised by a non-blocking pool when every worker is busy."""

    def __init__(self, message: str = "too many goroutines blocked or pool is overloaded") -> None:
        super().__init__(message)


class WorkerPool:
    """Runs submitted callables on at most ``capacity`` worker threads.

    A capacity of zero or less means the pool is unbounded. Idle workers
    exit after ``expiry`` seconds. When the pool is full, a non-blocking
    pool raises PoolOverloaded and a blocking one waits for a free worker.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_POOL_SIZE,
        expiry: float = EXPIRY_DURATION,
        nonblocking: bool = NONBLOCKING,
    ) -> None:
        if expiry <= 0:
            raise ValueError("expiry must be positive")
        self.capacity = capacity
        self.expiry = expiry
        self.nonblocking = nonblocking
        self._limit = capacity if capacity > 0 else None
        self._tasks: queue.SimpleQueue[_Task | None] = queue.SimpleQueue()
        self._available = threading.Condition(threading.Lock())
        self._workers = 0
        self._idle = 0
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        """Schedule ``fn(*args)`` on a worker."""
        with self._available:
            while True:
                if self._closed:
                    raise RuntimeError("worker pool is closed")
                if self._idle:
                    self._idle -= 1
                    self._tasks.put((fn, args))
                    return
                if self._limit is None or self._workers < self._limit:
                    self._workers += 1
                    break
                if self.nonblocking:
                    raise PoolOverloaded()
                self._available.wait()
        threading.Thread(target=self._work, args=((fn, args),), daemon=True).start()

    def running(self) -> int:
        """Number of worker threads currently alive."""
        with self._available:
            return self._workers

    def release(self) -> None:
        """Close the pool; idle workers exit, busy ones exit after their task."""
        with self._available:
            if self._closed:
                return
            self._closed = True
            for _ in range(self._idle):
                self._tasks.put(None)
            self._idle = 0
            self._available.notify_all()

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()

    def _work(self, task: _Task | None) -> None:
        while task is not None:
            fn, args = task
            try:
                fn(*args)
            except Exception:
                _log.exception("worker task raised")
            task = self._next_task()

    def _retire(self) -> None:
        with self._available:
            self._workers -= 1
            self._available.notify()

    def _next_task(self) -> _Task | None:
        with self._available:
            if self._closed:
                self._workers -= 1
                self._available.notify()
                return None
            self._idle += 1
            self._available.notify()
        try:
            task = self._tasks.get(timeout=self.expiry)
        except queue.Empty:
            with self._available:
                try:
                    task = self._tasks.get_nowait()
                except queue.Empty:
                    self._idle -= 1
                    self._workers -= 1
                    self._available.notify()
                    return None
        if task is None:
            self._retire()
        return task


def default_pool() -> WorkerPool:
    """A non-blocking pool with the default capacity and expiry."""
    return WorkerPool(DEFAULT_POOL_SIZE, EXPIRY_DURATION, NONBLOCKING)