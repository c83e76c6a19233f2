import pytest

from ringpool.reactor import Connection, Event, EventLoop, Filter, ServerShutdown


class Recorder:
    def __init__(self):
        self.calls = []

    def read(self, conn):
        self.calls.append(("read", conn.fd))

    def write(self, conn):
        self.calls.append(("write", conn.fd))
        conn.outbound.reset()

    def close(self, conn):
        self.calls.append(("close", conn.fd))

    def accept(self, events):
        self.calls.append(("accept", events))

    def loop(self, with_accept=True):
        return EventLoop(
            0,
            on_read=self.read,
            on_write=self.write,
            on_close=self.close,
            on_accept=self.accept if with_accept else None,
        )


def make(fd, pending=b""):
    conn = Connection(fd)
    if pending:
        conn.outbound.write(pending)
    return conn


def test_read_event_calls_read():
    rec = Recorder()
    el = rec.loop()
    conn = make(3)
    el.add(conn)
    el.dispatch_events(3, Event.READ)
    assert rec.calls == [("read", 3)]
    assert el.connections == {3: conn}


def test_write_flushed_before_read():
    rec = Recorder()
    el = rec.loop()
    conn = make(3, b"pending")
    el.add(conn)
    el.dispatch_events(3, Event.READ | Event.WRITE)
    assert rec.calls == [("write", 3), ("read", 3)]
    assert len(conn.outbound) == 0


def test_read_skipped_while_output_still_pending():
    rec = Recorder()
    el = EventLoop(0, on_read=rec.read, on_write=lambda c: rec.calls.append(("write", c.fd)))
    conn = make(3, b"pending")
    el.add(conn)
    el.dispatch_events(3, Event.READ | Event.WRITE)
    assert rec.calls == [("write", 3)]
    assert len(conn.outbound) == 7


def test_write_event_with_empty_outbound_does_nothing():
    rec = Recorder()
    el = rec.loop()
    conn = make(3)
    el.add(conn)
    el.dispatch_events(3, Event.WRITE)
    assert rec.calls == []
    assert len(conn.outbound) == 0
    assert el.connections == {3: conn}


def test_error_event_flushes_and_reads():
    rec = Recorder()
    el = rec.loop()
    conn = make(3, b"x")
    el.add(conn)
    el.dispatch_events(3, Event.ERROR)
    assert rec.calls == [("write", 3), ("read", 3)]
    assert len(conn.outbound) == 0


def test_unknown_fd_goes_to_accept():
    accepted = []
    el = EventLoop(0, on_accept=accepted.append)
    el.dispatch_events(7, Event.READ)
    assert accepted == [Event.READ]
    assert el.connections == {}


def test_unknown_fd_ignored_without_accept():
    seen = []
    el = EventLoop(0, on_read=seen.append, on_close=seen.append)
    el.dispatch_events(7, Event.READ)
    el.dispatch_filter(7, Filter.READ)
    assert seen == []
    assert el.connections == {}


def test_filters_dispatch():
    rec = Recorder()
    el = rec.loop()
    conn = make(4, b"data")
    el.add(conn)
    el.dispatch_filter(4, Filter.WRITE)
    assert len(conn.outbound) == 0
    el.dispatch_filter(4, Filter.WRITE)
    el.dispatch_filter(4, Filter.READ)
    el.dispatch_filter(4, Filter.SOCK)
    el.dispatch_filter(9, Filter.READ)
    assert rec.calls == [
        ("write", 4),
        ("read", 4),
        ("close", 4),
        ("accept", Filter.READ),
    ]


def test_add_and_remove():
    el = EventLoop(0)
    conn = make(5)
    el.add(conn)
    assert el.remove(5) is conn
    assert el.connections == {}
    with pytest.raises(KeyError):
        el.remove(5)


def test_close_all_closes_everything():
    rec = Recorder()
    el = rec.loop()
    el.add(make(1))
    el.add(make(2))
    el.close_all()
    assert sorted(rec.calls) == [("close", 1), ("close", 2)]
    assert el.connections == {}


def test_run_dispatches_then_closes_all():
    rec = Recorder()
    el = rec.loop()
    el.add(make(1))
    el.run([(1, Event.READ), (1, Filter.READ), (8, Event.READ)])
    assert rec.calls == [
        ("read", 1),
        ("read", 1),
        ("accept", Event.READ),
        ("close", 1),
    ]
    assert el.connections == {}


def test_run_stops_quietly_on_shutdown():
    rec = Recorder()

    def shutdown(conn):
        raise ServerShutdown()

    el = EventLoop(0, on_read=shutdown, on_close=rec.close)
    el.add(make(1))
    el.run([(1, Event.READ), (1, Event.READ)])
    assert rec.calls == [("close", 1)]
    assert el.connections == {}


def test_run_propagates_other_errors_after_closing():
    rec = Recorder()

    def boom(conn):
        raise OSError("broken pipe")

    el = EventLoop(0, on_read=boom, on_close=rec.close)
    el.add(make(1))
    with pytest.raises(OSError, match="broken pipe"):
        el.run([(1, Event.READ)])
    assert rec.calls == [("close", 1)]