# ringpool

Building blocks for reactor-style network servers, in pure Python with no
third-party dependencies:

- `ringpool.ring_buffer` — `RingBuffer`, a circular byte buffer that grows on
  demand (power-of-two sizes, doubling while small, growing by a quarter once
  past 4 KiB), and `ceil_to_power_of_two`.
- `ringpool.bytebuffer` — a growable `ByteBuffer` with a small reuse pool
  behind `get()` and `put()`.
- `ringpool.pool` — `RingBufferPool`, a self-calibrating pool of ring buffers
  that learns which buffer sizes come back most often, plus module-level
  `get()` / `put()` on a shared pool and `size_index()`.
- `ringpool.workers` — `WorkerPool`, a bounded thread pool that either blocks
  or raises `PoolOverloaded` when full, and `default_pool()`.
- `ringpool.reactor` — `EventLoop`, which dispatches readiness events to
  `Connection` objects, flushing pending output before reading.
- `ringpool.server` — `Server`, which runs event loops on background threads
  and coordinates their shutdown through a `ShutdownSignal`.

## Installing

```
pip install ringpool
```

## Ring buffer

```python
from ringpool.ring_buffer import RingBuffer, RingBufferEmpty

rb = RingBuffer(64)
rb.write(b"abcd" * 4)
assert len(rb) == 16 and rb.free() == 48

head, tail = rb.peek(8)      # look without consuming
data = rb.read(5)            # b"abcda"
rb.discard(3)

rb.write(b"x" * 100)         # grows the buffer as needed
print(rb.capacity())         # 128

try:
    RingBuffer(8).read_byte()
except RingBufferEmpty:
    pass
```

`len(rb)` is the number of unread bytes, `free()` the room left before the
buffer must grow, `capacity()` the ring size and `buffer_len()` the length of
the underlying storage. `peek()` and `peek_all()` return a `(head, tail)` pair,
where `tail` holds the part that wrapped around. `byte_buffer()` returns a copy
of the unread bytes as a `ByteBuffer` (or `None` when empty) without moving the
read position; `with_byte_buffer(data)` appends `data` to that copy.
`write_byte()`, `read_byte()` and `write_string()` (UTF-8) are also available.

## Pools

```python
from ringpool import pool, bytebuffer

rb = pool.get()
rb.write(b"payload")
pool.put(rb)                 # reset and kept for reuse

bb = bytebuffer.get()
bb.write(b"hello")
bytes(bb)                    # b"hello"
bytebuffer.put(bb)
```

A `RingBufferPool` counts the sizes of the buffers handed back to it. After
enough returns of one size class it recalibrates: the most common size becomes
the size of newly created buffers (`default_size`), and buffers larger than the
size covering 95% of returns (`max_size`) are dropped instead of kept.

## Worker pool

```python
from ringpool.workers import WorkerPool, PoolOverloaded

with WorkerPool(capacity=4, expiry=10.0, nonblocking=True) as workers:
    try:
        workers.submit(print, "hello from a worker")
    except PoolOverloaded:
        ...
```

A capacity of zero or less makes the pool unbounded. Idle workers exit after
`expiry` seconds; `running()` reports how many are alive. Exceptions raised by
tasks are logged, not propagated. `release()` (or leaving the `with` block)
closes the pool; submitting afterwards raises `RuntimeError`.
`default_pool()` gives a non-blocking pool with a capacity of 262144 workers.

## Event loops

```python
from ringpool.reactor import Connection, Event, EventLoop, Filter

def on_read(conn):
    ...

def on_write(conn):
    ...

def on_close(conn):
    ...

loop = EventLoop(index=0, on_read=on_read, on_write=on_write, on_close=on_close)
loop.add(Connection(fd=5))
loop.run([(5, Event.READ), (5, Filter.WRITE)])
```

`run()` takes any iterable of `(fd, events)` pairs, where `events` is either a
set of `Event` flags or a single `Filter`. With flags, pending output in
`conn.outbound` is written before input is read, and a read is skipped while
the descriptor is writable and output is still pending. With filters, `SOCK`
closes, `WRITE` writes only if output is pending, and `READ` reads. Events for
unregistered descriptors go to `on_accept`, if given. Raising `ServerShutdown`
from a handler ends the loop quietly; any other exception propagates. Every
connection is passed to `on_close` when the loop ends.

## Server

```python
from ringpool.server import Server, event_loop_count

server = Server([(loop, events)])   # (EventLoop, iterable of events) pairs
server.start()
error = server.wait_for_shutdown(timeout=5.0)
server.stop()
assert server.is_in_shutdown()
```

Each loop runs on its own thread. The first loop to end signals shutdown,
carrying the exception that ended it, if any; `wait_for_shutdown()` returns it
or raises `TimeoutError`. `stop()` makes each loop stop at the next event it
receives, then waits for all of them. `start()` raises `UnsupportedPlatform` on
Emscripten and WASI.

`event_loop_count(multicore, num_event_loop, cpu_count)` picks how many loops
to run (one, one per CPU, or an explicit positive number), and
`channel_buffer(n, parallelism)` gives the queue capacity for a loop's tasks
(0 when only one worker runs in parallel).

## What this package does not do

There is no networking here: nothing opens listening sockets, accepts
connections or polls descriptors with epoll, kqueue or `selectors`. The event
loops and the server dispatch whatever events the caller supplies, and the
handlers decide what reading, writing, accepting and closing mean. There is no
frame codec and no command-line program.

## Running tests

```
pip install -e ".[test]"
pytest
```