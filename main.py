# main.py
import json
import logging

from flask import Flask, Response, jsonify, request

import config
from db.databricks_client import stream_query
from sql_validator import is_safe_sql, with_row_cap

LOG = logging.getLogger(__name__)

app = Flask(__name__)


def _read_sql():
    body = request.get_json(force=True, silent=True) or {}
    sql = body.get("sql")
    if not sql:
        return None, (jsonify({"error": "sql required"}), 400)
    ok, msg = is_safe_sql(sql)
    if not ok:
        return None, (jsonify({"error": msg}), 403)
    return with_row_cap(sql, config.MAX_ROWS_RETURN), None


def _ndjson(response):
    for record in response.records(dict):
        yield json.dumps(record, default=str) + "\n"


@app.route("/query", methods=["POST"])
def query():
    sql, error = _read_sql()
    if error:
        return error
    try:
        response = stream_query(sql)
    except Exception as e:
        LOG.exception("Query failed")
        return jsonify({"error": str(e)}), 500

    out = Response(_ndjson(response), mimetype="application/x-ndjson")
    out.headers["X-Query-Id"] = response.get_query_id()
    # release the warehouse result even when the client disconnects early
    out.call_on_close(response.close)
    return out


@app.route("/query/columns", methods=["POST"])
def query_columns():
    sql, error = _read_sql()
    if error:
        return error
    try:
        with stream_query(sql) as response:
            cols = [{"name": c.name, "type": c.type} for c in response.get_columns()]
            return jsonify({"query_id": response.get_query_id(), "columns": cols})
    except Exception as e:
        LOG.exception("Column lookup failed")
        return jsonify({"error": str(e)}), 500


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL,
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    print("Registered routes:")
    for r in sorted([rule.rule for rule in app.url_map.iter_rules()]):
        print(" ", r)
    app.run(host="0.0.0.0", port=8000)
