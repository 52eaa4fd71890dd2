from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from inspector.errors.codes import ErrorCode
from inspector.errors.mapper import map_error


# =====================
# Row cells
# =====================


class CellKind(str, Enum):
    NULL = "null"
    INTEGER = "integer"
    REAL = "real"
    TEXT = "text"
    BLOB = "blob"


BLOB_SUMMARY = "[BLOB: {size} bytes]"


@dataclass(frozen=True)
class Cell:
    """
    A single tagged row value.

    Blob cells never carry their bytes: ``value`` holds the summary text and
    ``size`` the byte length.
    """

    kind: CellKind
    value: Any = None
    size: Optional[int] = None

    @classmethod
    def from_sqlite(cls, raw: Any) -> "Cell":
        if raw is None:
            return cls(CellKind.NULL)
        # bool is an int subclass; the sqlite driver never returns one, callers might
        if isinstance(raw, bool):
            return cls(CellKind.INTEGER, int(raw))
        if isinstance(raw, int):
            return cls(CellKind.INTEGER, raw)
        if isinstance(raw, float):
            return cls(CellKind.REAL, raw)
        if isinstance(raw, (bytes, bytearray, memoryview)):
            size = len(bytes(raw))
            return cls(CellKind.BLOB, BLOB_SUMMARY.format(size=size), size)
        return cls(CellKind.TEXT, str(raw))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind.value, "value": self.value}
        if self.kind is CellKind.BLOB:
            out["size"] = self.size
        return out


def cells_to_lists(rows: List[List[Cell]]) -> List[List[Dict[str, Any]]]:
    return [[c.to_dict() for c in row] for row in rows]


# =====================
# Schema reflection
# =====================


@dataclass(frozen=True)
class DataSource:
    name: str
    path: str
    size: int
    orm_managed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ColumnDescriptor:
    cid: int
    name: str
    type: str
    not_null: bool
    default_value: Optional[str]
    pk: int = 0

    @property
    def is_primary_key(self) -> bool:
        return self.pk > 0


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: List[ColumnDescriptor]
    row_count: int

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def primary_key(self) -> List[str]:
        key_cols = sorted((c for c in self.columns if c.pk > 0), key=lambda c: c.pk)
        return [c.name for c in key_cols]

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ForeignKeyEdge:
    id: int
    seq: int
    table: str
    from_column: str
    to_column: str
    on_update: str = "NO ACTION"
    on_delete: str = "NO ACTION"


# =====================
# ERD
# =====================


class Cardinality(str, Enum):
    ONE_TO_ONE = "one-to-one"
    # inverse perspective of MANY_TO_ONE; never derived from a referencing column
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"


@dataclass(frozen=True)
class Relationship:
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    cardinality: Cardinality

    @property
    def is_self_reference(self) -> bool:
        return self.from_table == self.to_table

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_table": self.from_table,
            "from_column": self.from_column,
            "to_table": self.to_table,
            "to_column": self.to_column,
            "cardinality": self.cardinality.value,
            "self_reference": self.is_self_reference,
        }


@dataclass(frozen=True)
class ErdTable:
    name: str
    columns: List[ColumnDescriptor]
    foreign_keys: List[ForeignKeyEdge]


@dataclass(frozen=True)
class ErdGraph:
    source: str
    tables: List[ErdTable]
    relationships: List[Relationship]
    orm_managed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "tables": [asdict(t) for t in self.tables],
            "relationships": [r.to_dict() for r in self.relationships],
            "orm_managed": self.orm_managed,
        }


# =====================
# Query results
# =====================


@dataclass(frozen=True)
class PagedRowSet:
    source: str
    table: str
    columns: List[str]
    rows: List[List[Cell]]
    total_rows: int
    page: int
    page_size: int
    total_pages: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "table": self.table,
            "columns": list(self.columns),
            "rows": cells_to_lists(self.rows),
            "total_rows": self.total_rows,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class QueryResult:
    source: str
    query: str
    columns: List[str]
    rows: List[List[Cell]]
    row_count: int
    elapsed_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "query": self.query,
            "columns": list(self.columns),
            "rows": cells_to_lists(self.rows),
            "row_count": self.row_count,
            "elapsed_ms": self.elapsed_ms,
        }


# =====================
# Mutation envelope
# =====================


@dataclass(frozen=True)
class ResultEnvelope:
    """
    Uniform outcome of every mutation.
    Mutations never raise; failures are carried here with their code.
    """

    status: str
    message: str
    error_code: Optional[ErrorCode] = None
    affected_rows: Optional[int] = None
    details: Optional[List[str]] = field(default=None)

    @classmethod
    def success(
        cls, message: str, *, affected_rows: Optional[int] = None
    ) -> "ResultEnvelope":
        return cls(status="success", message=message, affected_rows=affected_rows)

    @classmethod
    def error(
        cls,
        message: str,
        code: ErrorCode,
        *,
        details: Optional[List[str]] = None,
        affected_rows: Optional[int] = None,
    ) -> "ResultEnvelope":
        return cls(
            status="error",
            message=message,
            error_code=code,
            details=details,
            affected_rows=affected_rows,
        )

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def retryable(self) -> bool:
        return map_error(self.error_code)[1] if self.error_code else False

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status, "message": self.message}
        if self.error_code is not None:
            out["error_code"] = self.error_code.value
        if self.affected_rows is not None:
            out["affected_rows"] = self.affected_rows
        if self.details:
            out["details"] = list(self.details)
        return out


# =====================
# Preferences
# =====================


@dataclass(frozen=True)
class PreferenceEntry:
    key: str
    type: str
    value: Optional[str]


@dataclass(frozen=True)
class PreferenceNamespace:
    name: str
    entries: List[PreferenceEntry]

    def entry(self, key: str) -> Optional[PreferenceEntry]:
        for e in self.entries:
            if e.key == key:
                return e
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
