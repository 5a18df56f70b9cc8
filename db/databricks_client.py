# db/databricks_client.py
import logging

from databricks.sql import connect

from config import (DATABRICKS_HOST, DATABRICKS_HTTP_PATH, DATABRICKS_TOKEN, ClientConfig,
                    FETCH_BATCH_SIZE, QUERY_TIMEOUT)
from input_stream import InputConnection
from models import Column, QueryResult
from processors import encode_tsv_row
from stream_response import ResponseStream

LOG = logging.getLogger(__name__)

# warehouse type code -> column type understood by the processors
_TYPE_MAP = {
    "tinyint": "Int8",
    "smallint": "Int16",
    "int": "Int32",
    "bigint": "Int64",
    "float": "Float32",
    "double": "Float64",
    "decimal": "Decimal",
    "boolean": "Bool",
}


def _column_from_description(desc) -> Column:
    name, type_code = desc[0], str(desc[1] or "string").lower()
    return Column.of(name, f"Nullable({_TYPE_MAP.get(type_code, 'String')})")


def _encode_batches(cur, columns, batch_size):
    yield encode_tsv_row(c.name for c in columns)
    while True:
        rows = cur.fetchmany(batch_size)
        if not rows:
            return
        yield b"".join(encode_tsv_row(row) for row in rows)


def stream_query(sql, params=None, timeout=QUERY_TIMEOUT, batch_size=FETCH_BATCH_SIZE):
    """
    Execute `sql` and return an open ResponseStream over its result set.

    Rows are pulled from the warehouse in batches as the caller reads, encoded
    as TabSeparatedWithNames. Closing the response closes cursor and connection.
    """
    conn = connect(server_hostname=DATABRICKS_HOST, http_path=DATABRICKS_HTTP_PATH,
                   access_token=DATABRICKS_TOKEN, timeout=timeout)
    cur = conn.cursor()

    def _release():
        try:
            cur.close()
        finally:
            conn.close()

    # until the response owns the input, cursor and connection are ours to release
    try:
        if params:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
        columns = [_column_from_description(d) for d in (cur.description or [])]
        if columns:
            chunks = _encode_batches(cur, columns, batch_size)
        else:
            # statements without a result set still produce an (empty) header
            chunks = iter([b"\n"])
        input = InputConnection.of_chunks(chunks, on_close=_release)
        query_id = getattr(cur, "query_id", None)
    except Exception:
        _release()
        raise

    LOG.debug("Streaming query %s with %d column(s)", query_id, len(columns))
    # a failed attach closes the input, which releases cursor and connection
    return ResponseStream(ClientConfig("TabSeparatedWithNames"), input,
                          columns=columns or None, query_id=query_id)


def run_query(sql, params=None, timeout=QUERY_TIMEOUT) -> QueryResult:
    response = stream_query(sql, params, timeout)
    try:
        cols = [c.name for c in response.get_columns()]
        rows = [list(r) for r in response.records()]
        return QueryResult(cols, rows, response.get_query_id())
    finally:
        response.close()


def fetch_table_schema(table_fqn, sample_limit=1):
    """
    Return list of column names for table_fqn (e.g. 'gold.churn_rate').
    The result set is left unread; closing the response drains it.
    """
    sql = f"SELECT * FROM {table_fqn} LIMIT {sample_limit}"
    with stream_query(sql) as response:
        return [c.name for c in response.get_columns()]
