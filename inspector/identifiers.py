"""Identifier quoting and value checks shared by the query engine and stores."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from inspector.errors.exceptions import ValidationError

# Engine side-files; never independent data sources
SIDE_FILE_SUFFIXES = ("-journal", "-wal", "-shm")

# Engine bookkeeping and framework marker tables
ORM_MARKER_TABLE = "room_master_table"
RESERVED_TABLES = frozenset({"android_metadata", "sqlite_sequence", ORM_MARKER_TABLE})

_BINDABLE = (str, int, float, bytes)


def quote_ident(name: str) -> str:
    """Quote an SQLite identifier, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def is_reserved_table(name: str) -> bool:
    return name in RESERVED_TABLES or name.lower().startswith("sqlite_")


def is_side_file(name: str) -> bool:
    return name.endswith(SIDE_FILE_SUFFIXES)


def is_plain_name(name: str) -> bool:
    """True for a bare file name: no separators, no parent references."""
    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name


def require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required field: {field_name}")
    return value


def require_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping) or not value:
        raise ValidationError(f"Missing required field: {field_name}")
    return value


def unknown_columns(names: Iterable[str], known: Iterable[str]) -> List[str]:
    known_set = set(known)
    return [n for n in names if n not in known_set]


def bind_value(value: Any, column: str) -> Any:
    """Normalize a JSON-ish scalar into an sqlite3 parameter."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, _BINDABLE):
        return value
    raise ValidationError(
        f"Unsupported value for column {column!r}: {type(value).__name__}"
    )
