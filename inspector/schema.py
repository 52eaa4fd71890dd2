from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Callable, List, Optional

from adapters.db.base import StoreAdapter
from adapters.db.sqlite_adapter import SQLiteAdapter
from inspector.errors.exceptions import AppError, NotFound, OpenFailure, ValidationError
from inspector.identifiers import (
    ORM_MARKER_TABLE,
    is_plain_name,
    is_reserved_table,
    is_side_file,
)
from inspector.types import ColumnDescriptor, DataSource, TableSchema

log = logging.getLogger(__name__)

AdapterFactory = Callable[[Path], StoreAdapter]


class SchemaIntrospector:
    """
    Discovers data sources in the databases directory and reflects their
    tables, columns and row counts.

    Every call opens its own read-only handle and closes it before returning;
    nothing is cached between calls.
    """

    def __init__(
        self,
        databases_dir: str | Path,
        *,
        busy_timeout: float = 3.0,
        adapter_factory: Optional[AdapterFactory] = None,
    ) -> None:
        self.databases_dir = Path(databases_dir)
        self.busy_timeout = busy_timeout
        self._adapter_factory = adapter_factory or (
            lambda p: SQLiteAdapter(str(p), timeout=self.busy_timeout)
        )

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def adapter_for(self, source: str) -> StoreAdapter:
        return self._adapter_factory(self.resolve_source(source))

    def resolve_source(self, source: str) -> Path:
        """Map a source id (bare file name) to its path inside the databases directory."""
        if not isinstance(source, str) or not source.strip():
            raise ValidationError("Missing required field: source")
        if not is_plain_name(source) or is_side_file(source):
            raise NotFound(f"Database not found: {source}")
        path = self.databases_dir / source
        if not path.is_file():
            raise NotFound(f"Database not found: {source}")
        return path

    def list_data_sources(self) -> List[DataSource]:
        if not self.databases_dir.is_dir():
            log.debug(
                "Databases directory does not exist",
                extra={"databases_dir": str(self.databases_dir)},
            )
            return []

        try:
            listing = sorted(self.databases_dir.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise OpenFailure(
                f"Cannot list databases: {self.databases_dir}", details=[str(e)]
            ) from e

        sources: List[DataSource] = []
        for entry in listing:
            if not entry.is_file() or is_side_file(entry.name):
                continue
            try:
                size = entry.stat().st_size
            except OSError as exc:
                log.warning(
                    "Could not stat database file",
                    extra={"path": str(entry)},
                    exc_info=exc,
                )
                size = 0
            sources.append(
                DataSource(
                    name=entry.name,
                    path=str(entry.resolve()),
                    size=size,
                    orm_managed=self._probe_orm_marker(entry),
                )
            )
        return sources

    def _probe_orm_marker(self, path: Path) -> bool:
        # One unreadable file must not abort the listing
        try:
            adapter = self._adapter_factory(path)
            with adapter.read_only() as conn:
                return adapter.has_table(conn, ORM_MARKER_TABLE)
        except (AppError, sqlite3.Error, OSError) as exc:
            log.warning(
                "Could not open database file; treating as unmanaged",
                extra={"path": str(path), "error": str(exc)},
            )
            return False

    def is_orm_managed(self, source: str) -> bool:
        adapter = self.adapter_for(source)
        with adapter.read_only() as conn:
            try:
                return adapter.has_table(conn, ORM_MARKER_TABLE)
            except sqlite3.Error as e:
                raise read_failure(source, e) from e

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def get_schema(self, source: str) -> List[TableSchema]:
        adapter = self.adapter_for(source)
        with adapter.read_only() as conn:
            try:
                tables = [
                    self._reflect_table(adapter, conn, name)
                    for name in self.visible_tables(adapter, conn)
                ]
            except sqlite3.Error as e:
                raise read_failure(source, e) from e
        log.debug(
            "Reflected schema", extra={"source": source, "table_count": len(tables)}
        )
        return tables

    def get_table(self, source: str, table: str) -> TableSchema:
        if not isinstance(table, str) or not table:
            raise ValidationError("Missing required field: table")
        adapter = self.adapter_for(source)
        with adapter.read_only() as conn:
            try:
                if table not in self.visible_tables(adapter, conn):
                    raise NotFound(f"Table not found: {table}")
                return self._reflect_table(adapter, conn, table)
            except sqlite3.Error as e:
                raise read_failure(source, e) from e

    def visible_tables(self, adapter: StoreAdapter, conn: sqlite3.Connection) -> List[str]:
        return [t for t in adapter.list_tables(conn) if not is_reserved_table(t)]

    def reflect_columns(
        self, adapter: StoreAdapter, conn: sqlite3.Connection, table: str
    ) -> List[ColumnDescriptor]:
        return [
            ColumnDescriptor(
                cid=int(cid),
                name=name,
                type=ctype or "",
                not_null=bool(notnull),
                default_value=None if default_val is None else str(default_val),
                pk=int(pk or 0),
            )
            for cid, name, ctype, notnull, default_val, pk in adapter.table_info(
                conn, table
            )
        ]

    def _reflect_table(
        self, adapter: StoreAdapter, conn: sqlite3.Connection, table: str
    ) -> TableSchema:
        return TableSchema(
            name=table,
            columns=self.reflect_columns(adapter, conn, table),
            row_count=adapter.count_rows(conn, table),
        )


def read_failure(source: str, exc: sqlite3.Error) -> OpenFailure:
    text = str(exc).lower()
    return OpenFailure(
        f"Cannot read database: {source}",
        retryable="locked" in text or "busy" in text,
        details=[str(exc)],
    )
