"""Event dispatch for a single event loop."""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Iterable

from .ring_buffer import RingBuffer

__all__ = [
    "ServerShutdown",
    "Event",
    "Filter",
    "Connection",
    "EventLoop",
]

_log = logging.getLogger(__name__)


class ServerShutdown(Exception):
    """Raised to stop an event loop at the user's request."""

    def __init__(self, message: str = "server is going to be shutdown") -> None:
        super().__init__(message)


class Event(enum.IntFlag):
    """Readiness flags reported for a descriptor."""

    READ = 0x001
    PRIORITY = 0x002
    WRITE = 0x004
    ERROR = 0x008
    HANGUP = 0x010
    READ_HANGUP = 0x2000

    ERROR_EVENTS = ERROR | HANGUP | READ_HANGUP
    OUT_EVENTS = ERROR_EVENTS | WRITE
    IN_EVENTS = ERROR_EVENTS | READ | PRIORITY


class Filter(enum.Enum):
    """Single-kind readiness notification for a descriptor."""

    READ = "read"
    WRITE = "write"
    SOCK = "sock"


class Connection:
    """A connection known to an event loop, with its pending outbound data."""

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self.outbound = RingBuffer()

    def __repr__(self) -> str:
        return f"Connection(fd={self.fd}, pending={len(self.outbound)})"


ConnHandler = Callable[[Connection], Any]
AcceptHandler = Callable[[Any], Any]


class EventLoop:
    """Routes readiness notifications to connection handlers.

    Notifications for a known descriptor go to ``on_write``, ``on_read`` or
    ``on_close``; those for any other descriptor go to ``on_accept``. A loop
    without ``on_accept`` ignores unknown descriptors. A loop with no
    connections and only ``on_accept`` serves as an accepting reactor.
    """

    def __init__(
        self,
        index: int = 0,
        on_read: ConnHandler | None = None,
        on_write: ConnHandler | None = None,
        on_close: ConnHandler | None = None,
        on_accept: AcceptHandler | None = None,
    ) -> None:
        self.index = index
        self.on_read = on_read
        self.on_write = on_write
        self.on_close = on_close
        self.on_accept = on_accept
        self.connections: dict[int, Connection] = {}

    def add(self, conn: Connection) -> None:
        """Register ``conn`` under its descriptor."""
        self.connections[conn.fd] = conn

    def remove(self, fd: int) -> Connection:
        """Unregister and return the connection for ``fd``."""
        return self.connections.pop(fd)

    def dispatch_events(self, fd: int, events: Event) -> None:
        """Handle a set of readiness flags for ``fd``.

        Pending output is flushed before input is read, and input is left
        for later while output is still pending on a writable descriptor.
        """
        conn = self.connections.get(fd)
        if conn is None:
            self._accept(events)
            return
        writable = bool(events & Event.OUT_EVENTS)
        if writable and not conn.outbound.is_empty():
            self._call(self.on_write, conn)
        if events & Event.IN_EVENTS and (not writable or conn.outbound.is_empty()):
            self._call(self.on_read, conn)

    def dispatch_filter(self, fd: int, filt: Filter) -> None:
        """Handle a single-kind notification for ``fd``."""
        conn = self.connections.get(fd)
        if conn is None:
            self._accept(filt)
            return
        if filt is Filter.SOCK:
            self._call(self.on_close, conn)
        elif filt is Filter.WRITE:
            if not conn.outbound.is_empty():
                self._call(self.on_write, conn)
        elif filt is Filter.READ:
            self._call(self.on_read, conn)

    def close_all(self) -> None:
        """Close every registered connection and forget them all."""
        conns = list(self.connections.values())
        self.connections.clear()
        for conn in conns:
            try:
                self._call(self.on_close, conn)
            except Exception:
                _log.exception("event-loop(%d) failed to close fd %d", self.index, conn.fd)

    def run(self, poll: Iterable[tuple[int, Event | Filter]]) -> None:
        """Dispatch ``(fd, events)`` pairs from ``poll`` until it stops.

        The loop ends when ``poll`` is exhausted or a handler raises.
        ServerShutdown ends it quietly; any other exception propagates.
        All connections are closed on the way out.
        """
        try:
            for fd, events in poll:
                if isinstance(events, Filter):
                    self.dispatch_filter(fd, events)
                else:
                    self.dispatch_events(fd, Event(events))
        except ServerShutdown as exc:
            _log.debug("event-loop(%d) is exiting on user demand: %s", self.index, exc)
        except Exception as exc:
            _log.error("event-loop(%d) is exiting due to error: %s", self.index, exc)
            raise
        finally:
            self.close_all()

    def _accept(self, events: Any) -> None:
        if self.on_accept is not None:
            self.on_accept(events)

    @staticmethod
    def _call(handler: ConnHandler | None, conn: Connection) -> None:
        if handler is not None:
            handler(conn)