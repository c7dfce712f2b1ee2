"""
Progress reporting for streamed request and response bodies.
"""

import io
from typing import BinaryIO, Callable, Optional

# Called with (bytes transferred so far, total expected bytes or -1 if unknown).
ProgressListener = Callable[[int, int], None]


class ProgressReportingStream(io.RawIOBase):
    """
    Pass-through stream that reports progress as bytes flow through it.

    Wraps a readable or writable binary stream. Every successful read or
    write notifies the listener with the cumulative byte count and the
    expected total. The listener runs on the thread doing the I/O.
    """

    def __init__(self, stream: BinaryIO, listener: ProgressListener, total: int = -1):
        super().__init__()
        self._stream = stream
        self._listener = listener
        self.total = total
        self.transferred = 0

    def readable(self) -> bool:
        return hasattr(self._stream, "read")

    def writable(self) -> bool:
        return hasattr(self._stream, "write")

    def read(self, size: int = -1) -> bytes:
        data = self._stream.read(size)
        if data:
            self._advance(len(data))
        return data

    def readinto(self, buffer) -> Optional[int]:
        data = self.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def write(self, data) -> int:
        written = self._stream.write(data)
        if written is None:
            written = len(data)
        if written:
            self._advance(written)
        return written

    def flush(self) -> None:
        flush = getattr(self._stream, "flush", None)
        if flush is not None and not getattr(self._stream, "closed", False):
            flush()

    def close(self) -> None:
        if self.closed:
            return
        try:
            super().close()
        finally:
            self._stream.close()

    def _advance(self, n: int) -> None:
        self.transferred += n
        self._listener(self.transferred, self.total)
