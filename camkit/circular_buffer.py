"""A fixed-size byte ring used to hold the most recent encoded frames."""

from __future__ import annotations


class CircularBuffer:
    """Byte ring buffer with separate read and write positions."""

    def __init__(self, size: int) -> None:
        self._size = size
        self._buf = bytearray(size)
        self._rptr = 0
        self._wptr = 0

    def empty(self) -> bool:
        return self._rptr == self._wptr

    def available(self) -> int:
        """Number of bytes that can be written without overtaking the reader."""
        if self._wptr == self._rptr:
            return self._size - 1
        return (self._size - self._wptr + self._rptr) % self._size - 1

    def skip(self, n: int) -> None:
        self._rptr = (self._rptr + n) % self._size

    def read(self, n: int) -> bytes:
        """Remove and return the next ``n`` bytes."""
        chunks = []
        if self._rptr + n >= self._size:
            tail = self._size - self._rptr
            chunks.append(bytes(self._buf[self._rptr:]))
            n -= tail
            self._rptr = 0
        chunks.append(bytes(self._buf[self._rptr:self._rptr + n]))
        self._rptr += n
        return b"".join(chunks)

    def pad(self, n: int) -> None:
        self._wptr = (self._wptr + n) % self._size

    def write(self, data) -> None:
        """Append the bytes of ``data`` at the write position."""
        view = memoryview(data).cast("B")
        if len(view) > self._size:
            raise ValueError("write larger than circular buffer")
        if self._wptr + len(view) >= self._size:
            tail = self._size - self._wptr
            self._buf[self._wptr:] = view[:tail]
            view = view[tail:]
            self._wptr = 0
        self._buf[self._wptr:self._wptr + len(view)] = view
        self._wptr += len(view)