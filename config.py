# config.py
# Values come from the environment, with defaults suitable for local runs
import os
from dataclasses import dataclass

# Warehouse connection
DATABRICKS_HOST = os.getenv("DATABRICKS_HOST", "")
DATABRICKS_HTTP_PATH = os.getenv("DATABRICKS_HTTP_PATH", "")
DATABRICKS_TOKEN = os.getenv("DATABRICKS_TOKEN", "")  # PAT
QUERY_TIMEOUT = int(os.getenv("QUERY_TIMEOUT", "120"))   # seconds

# Stream defaults
DEFAULT_FORMAT = os.getenv("STREAM_FORMAT", "TabSeparatedWithNames")
BUFFER_SIZE = int(os.getenv("STREAM_BUFFER_SIZE", "8192"))
FETCH_BATCH_SIZE = int(os.getenv("FETCH_BATCH_SIZE", "500"))

# Allowed tables (canonical full names); empty means no restriction
ALLOWED_TABLES = [t.strip() for t in os.getenv("ALLOWED_TABLES", "").split(",") if t.strip()]

# Row cap appended to free queries without a LIMIT
MAX_ROWS_RETURN = int(os.getenv("MAX_ROWS_RETURN", "2000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class ClientConfig:
    format: str = DEFAULT_FORMAT
    buffer_size: int = BUFFER_SIZE
