# models.py
# Value objects shared by the processors, the stream response and the warehouse client
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Column:
    name: str
    type: str = "String"

    @property
    def nullable(self) -> bool:
        return self.type.startswith("Nullable(") and self.type.endswith(")")

    @property
    def base_type(self) -> str:
        # Nullable(Int32) -> Int32
        if self.nullable:
            return self.type[len("Nullable("):-1]
        return self.type

    @classmethod
    def of(cls, name: str, type_name: str) -> "Column":
        if not name:
            raise ValueError("empty column name")
        return cls(name, type_name or "String")


@dataclass(frozen=True)
class ResponseSummary:
    """
    Execution statistics returned alongside a query response.
    Never mutated once the response has been built.
    """
    read_rows: int = 0
    read_bytes: int = 0
    total_rows_to_read: int = 0
    written_rows: int = 0
    written_bytes: int = 0
    result_rows: int = 0
    elapsed_ms: int = 0


# shared instance handed out when no summary is supplied
EMPTY_SUMMARY = ResponseSummary()


@dataclass(frozen=True)
class Record:
    columns: Tuple[Column, ...]
    values: Tuple[Any, ...]

    def __len__(self):
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __getitem__(self, key):
        if isinstance(key, str):
            for i, c in enumerate(self.columns):
                if c.name == key:
                    return self.values[i]
            raise KeyError(key)
        return self.values[key]

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def as_dict(self) -> Dict[str, Any]:
        return {c.name: v for c, v in zip(self.columns, self.values)}


@dataclass
class QueryResult:
    columns: List[str]
    rows: List[Any] = field(default_factory=list)
    query_id: str = ""
