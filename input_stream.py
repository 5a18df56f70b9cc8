# input_stream.py
# Closable byte source backing a stream response.
from typing import Callable, Iterable, Optional

from config import BUFFER_SIZE


class InputConnection:
    """
    Buffered, forward-only byte source with an explicit open/closed state.

    The bytes come from a `next_chunk` callable returning b"" at end of
    stream. Use `of` for file-like objects (sockets, HTTP bodies, BytesIO)
    and `of_chunks` for iterators of byte chunks.
    `on_close` runs once, when the connection is first closed.
    """

    def __init__(self, next_chunk: Callable[[], bytes], on_close: Optional[Callable[[], None]] = None):
        self._next_chunk = next_chunk
        self._on_close = on_close
        self._buffer = bytearray()
        self._position = 0
        self._eof = False
        self._closed = False

    @classmethod
    def of(cls, raw, on_close=None, buffer_size: int = BUFFER_SIZE) -> "InputConnection":
        def _close():
            try:
                raw.close()
            finally:
                if on_close:
                    on_close()
        return cls(lambda: raw.read(buffer_size), _close)

    @classmethod
    def of_chunks(cls, chunks: Iterable[bytes], on_close=None) -> "InputConnection":
        it = iter(chunks)

        def _next():
            # empty chunks are not end of stream, only exhaustion is
            for chunk in it:
                if chunk:
                    return bytes(chunk)
            return b""
        return cls(_next, on_close)

    @property
    def closed(self) -> bool:
        return self._closed

    def is_closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def _ensure_open(self):
        if self._closed:
            raise OSError("input stream is closed")

    def _fill(self) -> bool:
        """Append the next chunk to the buffer; False once the source is exhausted."""
        if self._eof:
            return False
        chunk = self._next_chunk()
        if not chunk:
            self._eof = True
            return False
        if self._position:
            del self._buffer[:self._position]
            self._position = 0
        self._buffer += chunk
        return True

    def _available(self) -> int:
        return len(self._buffer) - self._position

    def _take(self, size: int) -> bytes:
        end = self._position + size
        data = bytes(self._buffer[self._position:end])
        self._position = end
        return data

    def read(self, size: int = -1) -> bytes:
        self._ensure_open()
        if size is None or size < 0:
            while self._fill():
                pass
            return self._take(self._available())
        while self._available() < size and self._fill():
            pass
        return self._take(min(size, self._available()))

    def readline(self) -> bytes:
        self._ensure_open()
        scanned = 0
        while True:
            idx = self._buffer.find(b"\n", self._position + scanned)
            if idx >= 0:
                return self._take(idx + 1 - self._position)
            # only search the new chunk next time
            scanned = self._available()
            if not self._fill():
                return self._take(self._available())

    def __iter__(self):
        while True:
            line = self.readline()
            if not line:
                return
            yield line

    def skip(self, n: int) -> int:
        """Discard up to n bytes (all remaining bytes when n < 0) and return how many were skipped."""
        self._ensure_open()
        skipped = 0
        while n < 0 or skipped < n:
            if not self._available() and not self._fill():
                break
            step = self._available() if n < 0 else min(self._available(), n - skipped)
            self._position += step
            skipped += step
        return skipped

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer = bytearray()
        self._position = 0
        if self._on_close:
            self._on_close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
