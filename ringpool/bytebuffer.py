"""Growable byte buffers with a small reuse pool."""

from __future__ import annotations

import threading

__all__ = ["ByteBuffer", "get", "put"]

_MAX_POOLED = 1024


class ByteBuffer:
    """An append-only byte buffer that can be reset and reused."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes | bytearray | memoryview = b"") -> None:
        self._data = bytearray(data)

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Append ``data`` and return the number of bytes written."""
        chunk = bytes(data)
        self._data += chunk
        return len(chunk)

    def write_string(self, s: str) -> int:
        """Append the UTF-8 encoding of ``s``."""
        return self.write(s.encode("utf-8"))

    def reset(self) -> None:
        """Drop all contents."""
        self._data.clear()

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ByteBuffer({bytes(self._data)!r})"


_pool: list[ByteBuffer] = []
_pool_lock = threading.Lock()


def get() -> ByteBuffer:
    """Return an empty byte buffer, reusing a pooled one when available."""
    with _pool_lock:
        if _pool:
            return _pool.pop()
    return ByteBuffer()


def put(buffer: ByteBuffer | None) -> None:
    """Reset ``buffer`` and hand it back to the pool; ``None`` is ignored."""
    if buffer is None:
        return
    buffer.reset()
    with _pool_lock:
        if len(_pool) < _MAX_POOLED:
            _pool.append(buffer)