import logging
import threading
from dataclasses import dataclass

import pytest

from config import ClientConfig
from errors import ResponseConstructionError, UnsupportedOperationError
from models import EMPTY_SUMMARY, Column, ResponseSummary
from stream_response import ResponseStream


def test_close_without_reading_drains_and_closes(fake_connection, tsv_config):
    conn = fake_connection(b"0123456789")
    response = ResponseStream(tsv_config, conn)

    response.close()

    assert response.is_closed()
    assert conn.closed
    assert conn.skip_calls == 1
    assert conn.skipped == 10


def test_close_real_connection_without_reading(make_input, tsv_config):
    conn = make_input(b"0123456789")
    response = ResponseStream(tsv_config, conn)
    assert not response.is_closed()

    response.close()

    assert response.is_closed()
    assert conn.closed


def test_close_is_idempotent(fake_connection, tsv_config):
    conn = fake_connection(b"a\nb\n")
    response = ResponseStream(tsv_config, conn)

    for _ in range(3):
        response.close()

    assert response.is_closed()
    assert conn.close_calls == 1
    assert conn.skip_calls == 1


def test_construction_failure_closes_connection(fake_connection):
    conn = fake_connection(read_error=OSError("connection reset"))

    with pytest.raises(ResponseConstructionError) as excinfo:
        ResponseStream(ClientConfig("TabSeparatedWithNames"), conn)

    assert conn.closed
    assert isinstance(excinfo.value.__cause__, OSError)


def test_construction_failure_ignores_close_error(fake_connection):
    conn = fake_connection(read_error=OSError("boom"), close_error=OSError("close failed"))

    with pytest.raises(ResponseConstructionError) as excinfo:
        ResponseStream(ClientConfig("TabSeparatedWithNames"), conn)

    assert conn.close_calls == 1
    assert "boom" in str(excinfo.value)


def test_unknown_format_closes_connection(fake_connection):
    conn = fake_connection(b"x\n")

    with pytest.raises(ResponseConstructionError):
        ResponseStream(ClientConfig("Parquet"), conn)

    assert conn.closed


def test_defaults_for_summary_and_query_id(fake_connection, tsv_config):
    response = ResponseStream(tsv_config, fake_connection(b""))

    assert response.get_summary() is EMPTY_SUMMARY
    assert response.get_query_id() == ""


def test_supplied_summary_and_query_id(fake_connection, tsv_config):
    summary = ResponseSummary(read_rows=3, read_bytes=30)
    response = ResponseStream(tsv_config, fake_connection(b""), summary=summary, query_id="q-1")

    assert response.get_summary() is summary
    assert response.get_query_id() == "q-1"


def test_drain_failure_still_closes(fake_connection, tsv_config):
    conn = fake_connection(b"abc\n", skip_error=TimeoutError("read timed out"))
    response = ResponseStream(tsv_config, conn)

    response.close()

    assert conn.closed
    assert response.is_closed()


def test_close_failure_is_logged_not_raised(fake_connection, tsv_config, caplog):
    conn = fake_connection(b"abc\n", close_error=OSError("socket gone"))
    response = ResponseStream(tsv_config, conn)

    with caplog.at_level(logging.WARNING, logger="stream_response"):
        response.close()
    response.close()

    assert response.is_closed()
    assert conn.close_calls == 1
    assert "Failed to close input stream" in caplog.text


def test_close_skips_already_closed_connection(fake_connection, tsv_config):
    conn = fake_connection(b"abc\n")
    response = ResponseStream(tsv_config, conn)
    conn.close()

    response.close()

    assert conn.skip_calls == 0
    assert conn.close_calls == 1


def test_records_are_single_pass(make_input, tsv_config):
    response = ResponseStream(tsv_config, make_input(b"a\nb\nc\n", chunk_size=2))

    first = [r[0] for r in response.records()]
    second = list(response.records())

    assert first == ["a", "b", "c"]
    assert second == []
    # exhausting records leaves closing to the caller
    assert not response.is_closed()
    response.close()
    assert response.is_closed()


def test_iterating_response_yields_records(make_input, tsv_config):
    with ResponseStream(tsv_config, make_input(b"x\ny\n")) as response:
        assert [r["results"] for r in response] == ["x", "y"]
    assert response.is_closed()


@dataclass
class Metric:
    id: int
    name: str


def test_records_mapped_to_target(make_input):
    data = b"id\tname\nUInt32\tString\n1\tmrr\n2\tchurn\n"
    response = ResponseStream(ClientConfig("TabSeparatedWithNamesAndTypes"), make_input(data))

    assert list(response.records(Metric)) == [Metric(1, "mrr"), Metric(2, "churn")]


def test_get_columns_keeps_declared_order(make_input, tsv_config):
    declared = [Column("b", "Int32"), Column("a", "String")]
    response = ResponseStream(tsv_config, make_input(b"1\tx\n"), columns=declared)

    assert response.get_columns() == declared
    assert list(response.records())[0].as_dict() == {"b": 1, "a": "x"}


def test_get_columns_from_header(make_input):
    response = ResponseStream(ClientConfig("TabSeparatedWithNames"),
                              make_input(b"region\tyear\neu\t2025\n"))

    assert [c.name for c in response.get_columns()] == ["region", "year"]


def test_default_column_without_header(make_input, tsv_config):
    response = ResponseStream(tsv_config, make_input(b""))

    assert response.get_columns() == [Column("results", "Nullable(String)")]


def test_raw_input_stream_access(make_input, tsv_config):
    conn = make_input(b"raw bytes")
    response = ResponseStream(tsv_config, conn)

    assert response.get_input_stream() is conn
    assert response.get_input_stream().read() == b"raw bytes"
    assert response.get_format() == "TabSeparated"


def test_records_without_processor(make_input, tsv_config):
    response = ResponseStream(tsv_config, make_input(b""))
    response.processor = None

    with pytest.raises(UnsupportedOperationError, match="get_input_stream"):
        response.records()
    with pytest.raises(UnsupportedOperationError):
        response.records(dict)


def test_concurrent_close(fake_connection, tsv_config):
    class SlowDrainConnection(fake_connection):
        def __init__(self, data):
            super().__init__(data)
            self.draining = threading.Event()
            self.release = threading.Event()

        def skip(self, n):
            self.draining.set()
            self.release.wait(5)
            return super().skip(n)

    conn = SlowDrainConnection(b"a\n" * 100)
    response = ResponseStream(tsv_config, conn)
    errors = []
    closed_on_return = []

    def _close():
        try:
            response.close()
            closed_on_return.append(response.is_closed())
        except Exception as e:  # pragma: no cover
            errors.append(e)

    first = threading.Thread(target=_close)
    second = threading.Thread(target=_close)
    first.start()
    assert conn.draining.wait(5)
    second.start()
    # the second closer waits for the drain in progress
    second.join(0.2)
    assert second.is_alive()
    conn.release.set()
    first.join(5)
    second.join(5)

    assert errors == []
    assert closed_on_return == [True, True]
    assert response.is_closed()
    assert conn.close_calls == 1
    assert conn.skip_calls == 1


def test_repeated_close_after_close_failure(fake_connection, tsv_config):
    conn = fake_connection(b"abc\n", close_error=OSError("socket gone"))
    response = ResponseStream(tsv_config, conn)

    response.close()
    response.close()

    # connection never reported closed, the latch still holds
    assert not conn.closed
    assert response.is_closed()


def test_close_without_processor_is_noop(make_input, tsv_config):
    conn = make_input(b"abc\n")
    response = ResponseStream(tsv_config, conn)
    response.processor = None

    response.close()

    assert not conn.closed
