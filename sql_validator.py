# sql_validator.py
# Read-only guard for queries submitted over HTTP
import re
from typing import Tuple

from config import ALLOWED_TABLES

# Block statements that write or export
BAD_KEYWORDS = [
    r"\b(insert|update|delete|drop|create|alter|truncate|merge|grant|revoke|replace|shutdown)\b",
    r";",                         # one statement per request
    r"\binto\s+|outfile\b",
]

READ_ONLY = re.compile(r"^\s*(select|with|show|describe)\s+", re.IGNORECASE)
ROW_QUERY = re.compile(r"^\s*(select|with)\s+", re.IGNORECASE)
FROM_TABLE_RE = re.compile(r"\b(?:from|join)\s+([a-z0-9_\.`]+)", re.IGNORECASE)


def is_safe_sql(sql: str, allowed_tables=None) -> Tuple[bool, str]:
    if not sql or not sql.strip():
        return False, "empty query"
    if not READ_ONLY.match(sql):
        return False, "only read-only queries are allowed"
    for pat in BAD_KEYWORDS:
        if re.search(pat, sql, re.IGNORECASE):
            return False, "disallowed pattern found in SQL"
    allowed = ALLOWED_TABLES if allowed_tables is None else allowed_tables
    if allowed:
        permitted = {t.lower() for t in allowed}
        for t in FROM_TABLE_RE.findall(sql):
            name = t.replace("`", "").lower()
            if name not in permitted:
                return False, f"table '{name}' is not permitted"
    return True, "ok"


def with_row_cap(sql: str, max_rows: int) -> str:
    # append a LIMIT to row-returning queries that have none; SHOW/DESCRIBE take no LIMIT
    if not ROW_QUERY.match(sql):
        return sql
    if re.search(r"\blimit\s+\d+", sql, re.IGNORECASE):
        return sql
    return sql.strip() + f" LIMIT {max_rows}"
