"""A growable circular byte buffer."""

from __future__ import annotations

from .bytebuffer import ByteBuffer, get as _get_byte_buffer

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "BUFFER_GROW_THRESHOLD",
    "RingBufferEmpty",
    "RingBuffer",
    "ceil_to_power_of_two",
]

DEFAULT_BUFFER_SIZE = 1024  # first allocation for a zero-sized buffer
BUFFER_GROW_THRESHOLD = 4 * 1024  # above this, grow by a quarter instead of doubling


class RingBufferEmpty(Exception):
    """Raised when reading from an empty ring buffer."""

    def __init__(self, message: str = "ring-buffer is empty") -> None:
        super().__init__(message)


def ceil_to_power_of_two(n: int) -> int:
    """Return the smallest power of two not below ``n``, at least 2."""
    if n <= 2:
        return 2
    return 1 << (n - 1).bit_length()


class RingBuffer:
    """Circular byte buffer that grows when a write does not fit."""

    __slots__ = ("_buf", "_size", "_r", "_w", "_empty")

    def __init__(self, size: int = 0) -> None:
        if size < 0:
            raise ValueError("ring buffer size must not be negative")
        if size:
            size = ceil_to_power_of_two(size)
        self._buf = bytearray(size)
        self._size = size
        self._r = 0
        self._w = 0
        self._empty = True

    def peek(self, n: int) -> tuple[bytes, bytes]:
        """Return up to ``n`` readable bytes as (head, tail) without consuming them."""
        if self._empty or n <= 0:
            return b"", b""
        r, w, size = self._r, self._w, self._size
        if w > r:
            m = min(w - r, n)
            return bytes(self._buf[r : r + m]), b""
        m = min(size - r + w, n)
        if r + m <= size:
            return bytes(self._buf[r : r + m]), b""
        return bytes(self._buf[r:]), bytes(self._buf[: m - (size - r)])

    def peek_all(self) -> tuple[bytes, bytes]:
        """Return all readable bytes as (head, tail) without consuming them."""
        if self._empty:
            return b"", b""
        r, w = self._r, self._w
        if w > r:
            return bytes(self._buf[r:w]), b""
        return bytes(self._buf[r:]), bytes(self._buf[:w])

    def discard(self, n: int) -> None:
        """Skip the next ``n`` readable bytes."""
        if n <= 0:
            return
        if n < len(self):
            self._r = (self._r + n) % self._size
        else:
            self.reset()

    def read(self, n: int) -> bytes:
        """Consume and return up to ``n`` bytes."""
        if n <= 0:
            return b""
        if self._empty:
            raise RingBufferEmpty()
        head, tail = self.peek(n)
        data = head + tail
        self._r = (self._r + len(data)) % self._size
        if self._r == self._w:
            self.reset()
        return data

    def read_byte(self) -> int:
        """Consume and return the next byte."""
        if self._empty:
            raise RingBufferEmpty()
        b = self._buf[self._r]
        self._r += 1
        if self._r == self._size:
            self._r = 0
        if self._r == self._w:
            self.reset()
        return b

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Append ``data``, growing the buffer if needed; return bytes written."""
        chunk = bytes(data)
        n = len(chunk)
        if n == 0:
            return 0
        free = self.free()
        if n > free:
            self._grow(self._size + n - free)

        w, r, size = self._w, self._r, self._size
        if w >= r:
            room = size - w
            if room >= n:
                self._buf[w : w + n] = chunk
                w += n
            else:
                self._buf[w:] = chunk[:room]
                self._buf[: n - room] = chunk[room:]
                w = n - room
        else:
            self._buf[w : w + n] = chunk
            w += n

        self._w = 0 if w == size else w
        self._empty = False
        return n

    def write_byte(self, b: int) -> None:
        """Append a single byte."""
        if self.free() < 1:
            self._grow(1)
        self._buf[self._w] = b
        self._w += 1
        if self._w == self._size:
            self._w = 0
        self._empty = False

    def write_string(self, s: str) -> int:
        """Append the UTF-8 encoding of ``s``."""
        return self.write(s.encode("utf-8"))

    def __len__(self) -> int:
        """Number of readable bytes."""
        if self._r == self._w:
            return 0 if self._empty else self._size
        if self._w > self._r:
            return self._w - self._r
        return self._size - self._r + self._w

    def buffer_len(self) -> int:
        """Length of the underlying storage."""
        return len(self._buf)

    def capacity(self) -> int:
        """Size of the ring."""
        return self._size

    def free(self) -> int:
        """Number of bytes that can be written without growing."""
        if self._r == self._w:
            return self._size if self._empty else 0
        if self._w < self._r:
            return self._r - self._w
        return self._size - self._w + self._r

    def byte_buffer(self) -> ByteBuffer | None:
        """Copy all readable bytes into a pooled ByteBuffer, or None when empty."""
        if self._empty:
            return None
        bb = _get_byte_buffer()
        head, tail = self.peek_all()
        bb.write(head)
        bb.write(tail)
        return bb

    def with_byte_buffer(self, data: bytes | bytearray | memoryview) -> ByteBuffer:
        """Copy all readable bytes followed by ``data`` into a ByteBuffer."""
        if self._empty:
            return ByteBuffer(data)
        bb = _get_byte_buffer()
        head, tail = self.peek_all()
        bb.write(head)
        bb.write(tail)
        bb.write(data)
        return bb

    def is_full(self) -> bool:
        return self._r == self._w and not self._empty

    def is_empty(self) -> bool:
        return self._empty

    def reset(self) -> None:
        """Drop all contents, keeping the storage."""
        self._empty = True
        self._r = 0
        self._w = 0

    def _grow(self, new_cap: int) -> None:
        n = self._size
        if n == 0:
            if new_cap <= DEFAULT_BUFFER_SIZE:
                new_cap = DEFAULT_BUFFER_SIZE
            else:
                new_cap = ceil_to_power_of_two(new_cap)
        else:
            double_cap = n + n
            if new_cap <= double_cap:
                if n < BUFFER_GROW_THRESHOLD:
                    new_cap = double_cap
                else:
                    while n < new_cap:
                        n += n // 4
                    new_cap = n
        head, tail = self.peek_all()
        contents = head + tail
        new_buf = bytearray(new_cap)
        new_buf[: len(contents)] = contents
        self._buf = new_buf
        self._r = 0
        self._w = len(contents)
        self._size = new_cap

    def __repr__(self) -> str:
        return f"RingBuffer(length={len(self)}, capacity={self._size})"