# stream_response.py
"""
Streaming query response.

A ResponseStream owns the input connection of one query response for as long
as the caller needs it, and guarantees the connection is released exactly
once: drained, then closed. Release never raises.

Typical usage:

    with ResponseStream(ClientConfig("TabSeparatedWithNames"), conn) as resp:
        for record in resp.records():
            ...
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from errors import ResponseConstructionError, UnsupportedOperationError
from models import EMPTY_SUMMARY, Column, ResponseSummary
from processors import get_processor

LOG = logging.getLogger(__name__)

_NO_PROCESSOR = ("No data processor available for deserialization, "
                 "please consider to use get_input_stream instead")


class ResponseStream:

    def __init__(self, config, input, settings: Optional[Dict[str, Any]] = None,
                 columns: Optional[List[Column]] = None,
                 summary: Optional[ResponseSummary] = None,
                 query_id: Optional[str] = None):
        self.config = config
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._closing = False
        self.processor = None
        try:
            self.processor = get_processor(config, input, settings, columns)
        except Exception as e:
            # rude but safe: never leave the connection behind
            LOG.error("Failed to create stream response, closing input stream: %s", e)
            try:
                input.close()
            except Exception:
                pass
            self._closing = True
            self._closed.set()
            raise ResponseConstructionError(f"failed to attach processor: {e}") from e

        self.summary = summary if summary is not None else EMPTY_SUMMARY
        self.query_id = query_id if query_id is not None else ""

    def is_closed(self) -> bool:
        return self._closed.is_set()

    def get_query_id(self) -> str:
        return self.query_id

    def get_summary(self) -> ResponseSummary:
        return self.summary

    def get_format(self) -> str:
        return self.config.format

    def get_columns(self) -> List[Column]:
        return list(self.processor.columns)

    def get_input_stream(self):
        """Raw connection, for callers reading bytes instead of records."""
        return self.processor.input

    def records(self, target=None):
        """
        Lazy, single-pass iterator over the records of the response.
        With `target`, each record is mapped to `target(**record.as_dict())`.
        Exhausting it does not close the response.
        """
        if self.processor is None:
            raise UnsupportedOperationError(_NO_PROCESSOR)
        return self.processor.records(target)

    def close(self) -> None:
        if self.processor is None:
            return
        input = self.processor.input
        with self._close_lock:
            # first closer wins, later callers only wait for it to finish
            in_progress = self._closing
            if not in_progress:
                if input.closed:
                    return
                self._closing = True
        if in_progress:
            self._closed.wait()
            return

        try:
            skipped = input.skip(-1)
            if skipped > 0:
                LOG.debug("%d bytes skipped before closing input stream", skipped)
        except Exception as e:
            LOG.debug("Failed to skip reading input stream due to: %s", e)
        finally:
            # closing without draining won't help much when network is slow/unstable
            try:
                input.close()
            except Exception:
                LOG.warning("Failed to close input stream", exc_info=True)
            finally:
                self._closed.set()

    def __iter__(self):
        return self.records()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        state = "closed" if self.is_closed() else "open"
        return f"<ResponseStream format={self.get_format()} query_id={self.query_id!r} {state}>"
