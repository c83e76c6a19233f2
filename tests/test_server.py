import itertools
import sys
import threading

import pytest

from ringpool.reactor import Connection, Event, EventLoop
from ringpool.server import (
    TASK_BUFFER_CAP,
    Server,
    ShutdownSignal,
    UnsupportedPlatform,
    channel_buffer,
    event_loop_count,
)


@pytest.mark.parametrize(
    "multicore, num, cpus, expected",
    [
        (False, 0, 8, 1),
        (True, 0, 8, 8),
        (True, 3, 8, 3),
        (False, 2, 8, 2),
        (True, -1, 4, 4),
    ],
)
def test_event_loop_count(multicore, num, cpus, expected):
    assert event_loop_count(multicore, num, cpus) == expected


def test_channel_buffer_unbuffered_with_single_worker():
    assert channel_buffer(TASK_BUFFER_CAP, 1) == 0


def test_channel_buffer_buffered_with_many_workers():
    assert channel_buffer(TASK_BUFFER_CAP, 4) == TASK_BUFFER_CAP


def test_shutdown_signal_first_error_wins():
    sig = ShutdownSignal()
    first = ValueError("first")
    assert sig.signal(first) is True
    assert sig.signal(KeyError("second")) is False
    assert sig.wait(0) is first


def test_shutdown_signal_wait_times_out():
    sig = ShutdownSignal()
    with pytest.raises(TimeoutError):
        sig.wait(0.01)


def test_shutdown_signal_across_threads():
    sig = ShutdownSignal()
    threading.Timer(0.01, sig.signal).start()
    assert sig.wait(5) is None
    assert sig.is_set


def _loop_with_conn(fd, **handlers):
    loop = EventLoop(0, **handlers)
    loop.add(Connection(fd))
    return loop


def test_finite_poll_runs_and_signals_shutdown():
    seen = []
    loop = _loop_with_conn(3, on_read=lambda c: seen.append(c.fd))
    server = Server([(loop, [(3, Event.READ), (3, Event.READ)])])
    server.start()
    assert server.wait_for_shutdown(5) is None
    server.stop()
    assert seen == [3, 3]
    assert server.is_in_shutdown()


def test_handler_error_is_reported():
    boom = ValueError("boom")

    def fail(conn):
        raise boom

    loop = _loop_with_conn(5, on_read=fail)
    server = Server([(loop, [(5, Event.READ)])])
    server.start()
    assert server.wait_for_shutdown(5) is boom
    server.stop()
    assert loop.connections == {}


def test_stop_ends_endless_poll_and_closes_connections():
    closed = []
    reads = itertools.count()
    loop = _loop_with_conn(
        7,
        on_read=lambda c: next(reads),
        on_close=lambda c: closed.append(c.fd),
    )
    server = Server([(loop, itertools.repeat((7, Event.READ)))])
    server.start()
    assert server.is_in_shutdown() is False
    server.stop()
    assert server.is_in_shutdown() is True
    assert closed == [7]
    assert server.wait_for_shutdown(0) is None


def test_multiple_loops_all_run():
    seen = []
    lock = threading.Lock()

    def record(conn):
        with lock:
            seen.append(conn.fd)

    loops = [
        (_loop_with_conn(fd, on_read=record), [(fd, Event.READ)])
        for fd in (10, 11, 12)
    ]
    server = Server(loops)
    server.start()
    assert server.wait_for_shutdown(5) is None
    server.stop()
    assert server.is_in_shutdown() is True
    assert sorted(seen) == [10, 11, 12]
    assert all(loop.connections == {} for loop, _ in loops)


def test_start_twice_raises():
    server = Server([])
    server.start()
    with pytest.raises(RuntimeError):
        server.start()
    server.stop()
    assert server.is_in_shutdown()


def test_explicit_signal_error_is_returned():
    server = Server([])
    err = RuntimeError("stop now")
    server.signal_shutdown(err)
    assert server.wait_for_shutdown(0) is err


def test_unsupported_platform(monkeypatch):
    monkeypatch.setattr(sys, "platform", "wasi")
    server = Server([])
    with pytest.raises(UnsupportedPlatform):
        server.start()