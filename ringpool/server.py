"""Runs a set of event loops on background threads and coordinates shutdown."""

from __future__ import annotations

import os
import sys
import threading
from typing import Iterable, Iterator, Sequence

from .reactor import Event, EventLoop, Filter, ServerShutdown

__all__ = [
    "TASK_BUFFER_CAP",
    "UnsupportedPlatform",
    "ShutdownSignal",
    "Server",
    "event_loop_count",
    "channel_buffer",
]

TASK_BUFFER_CAP = 256

_UNSUPPORTED_PLATFORMS = frozenset({"emscripten", "wasi"})

_Poll = Iterable[tuple[int, "Event | Filter"]]


class UnsupportedPlatform(Exception):
    """Raised when the server cannot run on the current platform."""

    def __init__(self, message: str = "unsupported platform in gnet") -> None:
        super().__init__(message)


def event_loop_count(multicore: bool, num_event_loop: int, cpu_count: int | None = None) -> int:
    """Decide how many event loops to run.

    One loop by default, one per CPU when ``multicore`` is set, and exactly
    ``num_event_loop`` whenever that is positive.
    """
    count = 1
    if multicore:
        count = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    if num_event_loop > 0:
        count = num_event_loop
    return count


def channel_buffer(n: int, parallelism: int | None = None) -> int:
    """Capacity for a loop's task queue: unbuffered when only one worker runs in parallel."""
    if parallelism is None:
        parallelism = os.cpu_count() or 1
    if parallelism == 1:
        return 0
    return n


class ShutdownSignal:
    """A one-shot shutdown notification that carries an optional error.

    Only the first signal counts; later ones are ignored.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: BaseException | None = None

    def signal(self, error: BaseException | None = None) -> bool:
        """Fire the signal; return True if this call was the one that fired it."""
        with self._lock:
            if self._event.is_set():
                return False
            self._error = error
            self._event.set()
            return True

    def wait(self, timeout: float | None = None) -> BaseException | None:
        """Block until signalled and return the error it carried.

        Raises TimeoutError if ``timeout`` seconds pass first.
        """
        if not self._event.wait(timeout):
            raise TimeoutError("no shutdown signal within the timeout")
        with self._lock:
            return self._error

    @property
    def is_set(self) -> bool:
        return self._event.is_set()


class Server:
    """Drives event loops, each fed by its own stream of readiness events.

    ``loops`` is a sequence of ``(EventLoop, poll)`` pairs. Each loop runs on
    its own thread. The server is signalled to shut down as soon as any loop
    ends, carrying the error that ended it, if any.
    """

    def __init__(self, loops: Sequence[tuple[EventLoop, _Poll]]) -> None:
        self.loops = list(loops)
        self._shutdown = ShutdownSignal()
        self._stopping = threading.Event()
        self._threads: list[threading.Thread] = []
        self._started = False
        self._in_shutdown = False
        self._state_lock = threading.Lock()

    def start(self) -> None:
        """Start every event loop on a background thread."""
        if sys.platform in _UNSUPPORTED_PLATFORMS:
            raise UnsupportedPlatform()
        with self._state_lock:
            if self._started:
                raise RuntimeError("server already started")
            self._started = True
        for loop, poll in self.loops:
            thread = threading.Thread(
                target=self._run_loop,
                args=(loop, poll),
                name=f"event-loop-{loop.index}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def stop(self) -> None:
        """Tell every loop to exit, wait for them, and mark the server shut down."""
        self.signal_shutdown(None)
        self._stopping.set()
        for thread in self._threads:
            thread.join()
        with self._state_lock:
            self._in_shutdown = True

    def signal_shutdown(self, error: BaseException | None = None) -> None:
        """Ask the server to shut down, recording ``error`` as the reason."""
        self._shutdown.signal(error)

    def wait_for_shutdown(self, timeout: float | None = None) -> BaseException | None:
        """Wait for a shutdown request and return the error that caused it."""
        return self._shutdown.wait(timeout)

    def is_in_shutdown(self) -> bool:
        with self._state_lock:
            return self._in_shutdown

    def _guard(self, poll: _Poll) -> Iterator[tuple[int, Event | Filter]]:
        for item in poll:
            if self._stopping.is_set():
                raise ServerShutdown()
            yield item

    def _run_loop(self, loop: EventLoop, poll: _Poll) -> None:
        try:
            loop.run(self._guard(poll))
        except Exception as exc:
            self.signal_shutdown(exc)
            return
        self.signal_shutdown(None)