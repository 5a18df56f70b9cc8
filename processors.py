# processors.py
# Format processors: turn the bytes of an input connection into typed records.
import csv
import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional

from errors import ProcessorError
from models import Column, Record

LOG = logging.getLogger(__name__)

# used when the caller declares nothing and the format carries no header
DEFAULT_COLUMNS = [Column("results", "Nullable(String)")]

TSV_NULL = "\\N"

_TSV_UNESCAPE = {
    "t": "\t", "n": "\n", "r": "\r", "b": "\b", "f": "\f",
    "0": "\0", "\\": "\\", "'": "'",
}
_TSV_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_TRUE_VALUES = ("1", "true", "True", "TRUE")
_FALSE_VALUES = ("0", "false", "False", "FALSE")


def unescape_tsv(text: str) -> str:
    return _TSV_ESCAPE_RE.sub(lambda m: _TSV_UNESCAPE.get(m.group(1), m.group(1)), text)


def escape_tsv(value) -> str:
    if value is None:
        return TSV_NULL
    if isinstance(value, bool):
        return "true" if value else "false"
    s = str(value)
    return (s.replace("\\", "\\\\").replace("\t", "\\t")
             .replace("\n", "\\n").replace("\r", "\\r"))


def encode_tsv_row(values) -> bytes:
    """Encode one row as a TabSeparated line (used by writers feeding a stream)."""
    return ("\t".join(escape_tsv(v) for v in values) + "\n").encode("utf-8")


def convert_value(column: Column, raw):
    """Convert a decoded field to the Python type matching the column type."""
    if raw is None:
        return None
    base = column.base_type
    try:
        if base.startswith("Int") or base.startswith("UInt"):
            return int(raw)
        if base.startswith("Float"):
            return float(raw)
        if base.startswith("Decimal"):
            return Decimal(str(raw))
    except (TypeError, ValueError, InvalidOperation):
        raise ProcessorError(f"cannot parse {raw!r} as {column.type} for column {column.name}")
    if base == "Bool":
        if isinstance(raw, bool):
            return raw
        text = str(raw)
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ProcessorError(f"cannot parse {raw!r} as {column.type} for column {column.name}")
    return raw


class Processor:
    """
    Binds a format to an input connection.

    Subclasses read any header in `read_columns` (so a bad stream fails
    while the response is still being built) and yield raw field lists
    from `read_rows`. Records are produced lazily and only once: iterating
    consumes the connection.
    """
    format_name = None

    def __init__(self, config, input, settings: Optional[Dict[str, Any]] = None,
                 columns: Optional[List[Column]] = None):
        if input is None:
            raise ProcessorError("input stream is required")
        self.config = config
        self.input = input
        self.settings = dict(settings or {})
        self.columns = list(self.read_columns(list(columns or [])))

    def read_columns(self, declared: List[Column]) -> List[Column]:
        return declared or list(DEFAULT_COLUMNS)

    def read_rows(self) -> Iterator[List[Any]]:
        raise NotImplementedError

    def _to_record(self, fields) -> Record:
        if len(fields) != len(self.columns):
            raise ProcessorError(
                f"expected {len(self.columns)} field(s) but got {len(fields)}")
        values = tuple(convert_value(c, f) for c, f in zip(self.columns, fields))
        return Record(tuple(self.columns), values)

    def records(self, target=None):
        for fields in self.read_rows():
            record = self._to_record(fields)
            if target is None:
                yield record
            elif target is dict:
                yield record.as_dict()
            else:
                yield target(**record.as_dict())


class TabSeparatedProcessor(Processor):
    format_name = "TabSeparated"
    header_lines = 0

    def _null(self) -> str:
        return self.settings.get("format_tsv_null_representation", TSV_NULL)

    def _next_line(self) -> Optional[str]:
        line = self.input.readline()
        if not line:
            return None
        text = line.decode("utf-8")
        if text.endswith("\n"):
            text = text[:-1]
        if text.endswith("\r"):
            text = text[:-1]
        return text

    def _split(self, line: str) -> List[Optional[str]]:
        null = self._null()
        return [None if f == null else unescape_tsv(f) for f in line.split("\t")]

    def read_columns(self, declared):
        if not self.header_lines:
            return super().read_columns(declared)
        names = self._next_line()
        if names is None:
            raise ProcessorError(f"missing header for {self.format_name}")
        types = None
        if self.header_lines > 1:
            types = self._next_line()
            if types is None:
                raise ProcessorError(f"missing type header for {self.format_name}")
        if declared:
            # declared columns take priority over the header
            return declared
        if not names:
            # result set without columns
            return []
        names = [unescape_tsv(n) for n in names.split("\t")]
        if types is None:
            return [Column.of(n, "Nullable(String)") for n in names]
        types = [unescape_tsv(t) for t in types.split("\t")]
        if len(types) != len(names):
            raise ProcessorError("column names and types do not match")
        return [Column.of(n, t) for n, t in zip(names, types)]

    def read_rows(self):
        while True:
            line = self._next_line()
            if line is None:
                return
            yield self._split(line)


class TabSeparatedWithNamesProcessor(TabSeparatedProcessor):
    format_name = "TabSeparatedWithNames"
    header_lines = 1


class TabSeparatedWithNamesAndTypesProcessor(TabSeparatedProcessor):
    format_name = "TabSeparatedWithNamesAndTypes"
    header_lines = 2


class CSVProcessor(Processor):
    format_name = "CSV"
    with_names = False

    def _text_lines(self):
        for line in self.input:
            yield line.decode("utf-8")

    def read_columns(self, declared):
        delimiter = self.settings.get("format_csv_delimiter", ",")
        self._reader = csv.reader(self._text_lines(), delimiter=delimiter)
        if not self.with_names:
            return super().read_columns(declared)
        try:
            names = next(self._reader)
        except StopIteration:
            raise ProcessorError(f"missing header for {self.format_name}")
        except csv.Error as e:
            raise ProcessorError(f"malformed header: {e}")
        return declared or [Column.of(n, "Nullable(String)") for n in names]

    def read_rows(self):
        try:
            for row in self._reader:
                yield [None if f == TSV_NULL else f for f in row]
        except csv.Error as e:
            raise ProcessorError(f"malformed CSV row: {e}")


class CSVWithNamesProcessor(CSVProcessor):
    format_name = "CSVWithNames"
    with_names = True


class JSONEachRowProcessor(Processor):
    format_name = "JSONEachRow"

    def _next_object(self):
        while True:
            line = self.input.readline()
            if not line:
                return None
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except ValueError as e:
                raise ProcessorError(f"malformed JSON row: {e}")
            if not isinstance(obj, dict):
                raise ProcessorError("JSONEachRow expects one object per line")
            return obj

    def read_columns(self, declared):
        # peek at the first row to infer columns, it is replayed by read_rows
        self._pending = self._next_object()
        if declared:
            return declared
        if self._pending is None:
            return []
        return [Column.of(k, "Nullable(String)") for k in self._pending]

    def read_rows(self):
        names = [c.name for c in self.columns]
        while True:
            obj, self._pending = self._pending, None
            if obj is None:
                obj = self._next_object()
            if obj is None:
                return
            yield [obj.get(n) for n in names]


_PROCESSORS = {}
for _cls in (TabSeparatedProcessor, TabSeparatedWithNamesProcessor,
             TabSeparatedWithNamesAndTypesProcessor, CSVProcessor,
             CSVWithNamesProcessor, JSONEachRowProcessor):
    _PROCESSORS[_cls.format_name.lower()] = _cls

# short names accepted by the server
_ALIASES = {
    "tsv": "tabseparated",
    "tsvwithnames": "tabseparatedwithnames",
    "tsvwithnamesandtypes": "tabseparatedwithnamesandtypes",
}


def supported_formats() -> List[str]:
    return sorted(c.format_name for c in _PROCESSORS.values())


def get_processor(config, input, settings=None, columns=None) -> Processor:
    """Build the processor for `config.format` bound to `input`."""
    fmt = (getattr(config, "format", None) or "").strip()
    key = _ALIASES.get(fmt.lower(), fmt.lower())
    cls = _PROCESSORS.get(key)
    if cls is None:
        raise ProcessorError(f"unsupported format: {fmt!r}")
    LOG.debug("Creating %s processor", cls.format_name)
    return cls(config, input, settings, columns)
