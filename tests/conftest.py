"""Shared fixtures and fake collaborators for the tests."""

import io
import logging

import pytest

from config import ClientConfig
from input_stream import InputConnection

logging.basicConfig(
    level=logging.DEBUG, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


class FakeConnection:
    """Byte source that records how it was drained and closed, and can be told to fail."""

    def __init__(self, data=b"", read_error=None, skip_error=None, close_error=None):
        self._buf = io.BytesIO(data)
        self.read_error = read_error
        self.skip_error = skip_error
        self.close_error = close_error
        self.closed = False
        self.skip_calls = 0
        self.close_calls = 0
        self.skipped = 0

    def read(self, size=-1):
        if self.read_error:
            raise self.read_error
        return self._buf.read(size)

    def readline(self):
        if self.read_error:
            raise self.read_error
        return self._buf.readline()

    def __iter__(self):
        return iter(self.readline, b"")

    def skip(self, n):
        self.skip_calls += 1
        if self.skip_error:
            raise self.skip_error
        data = self._buf.read() if n < 0 else self._buf.read(n)
        self.skipped += len(data)
        return len(data)

    def close(self):
        self.close_calls += 1
        if self.close_error:
            raise self.close_error
        self.closed = True


@pytest.fixture
def fake_connection():
    return FakeConnection


@pytest.fixture
def tsv_config():
    return ClientConfig("TabSeparated")


@pytest.fixture
def make_input():
    def _make(data: bytes, chunk_size=None):
        if chunk_size:
            chunks = [data[i:i + chunk_size] for i in range(0, len(data), chunk_size)]
            return InputConnection.of_chunks(chunks)
        return InputConnection.of(io.BytesIO(data))
    return _make
