from __future__ import annotations

import logging
import math
import sqlite3
import time
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from adapters.db.base import StoreAdapter
from adapters.metrics.base import Metrics
from adapters.metrics.noop import NoOpMetrics
from inspector.errors.codes import ErrorCode
from inspector.errors.exceptions import (
    AppError,
    MutationFailure,
    NotFound,
    QueryFailure,
    ValidationError,
)
from inspector.identifiers import (
    bind_value,
    quote_ident,
    require_mapping,
    require_text,
    unknown_columns,
)
from inspector.safety import ReadOnlyPolicy
from inspector.schema import SchemaIntrospector, read_failure
from inspector.types import Cell, ColumnDescriptor, PagedRowSet, QueryResult, ResultEnvelope

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500

Statement = Tuple[str, List[Any]]
StatementBuilder = Callable[[List[ColumnDescriptor]], Statement]


def clamp_paging(
    page: Optional[int],
    page_size: Optional[int],
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> Tuple[int, int]:
    """Clamp page to >= 1 and page_size into [1, max_page_size]."""
    page = 1 if page is None else max(1, int(page))
    size = default_page_size if page_size is None else int(page_size)
    return page, min(max(1, size), max_page_size)


def total_pages(total_rows: int, page_size: int) -> int:
    return max(1, math.ceil(total_rows / page_size))


def _is_locked(exc: BaseException) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text


def _where_clause(primary_key: Mapping[str, Any]) -> Statement:
    clause = " AND ".join(f"{quote_ident(k)} = ?" for k in primary_key)
    args = [bind_value(v, k) for k, v in primary_key.items()]
    return clause, args


class QueryEngine:
    """
    Paginated row retrieval, allowlisted ad-hoc queries and parameterized
    row mutation on top of the schema introspector.

    Read operations raise classified AppErrors. Mutations never raise: every
    outcome is returned as a ResultEnvelope.
    """

    def __init__(
        self,
        introspector: SchemaIntrospector,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        policy: Optional[ReadOnlyPolicy] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.introspector = introspector
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.metrics = metrics or NoOpMetrics()
        self.policy = policy or ReadOnlyPolicy(metrics=self.metrics)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_rows(
        self,
        source: str,
        table: str,
        page: Optional[int] = 1,
        page_size: Optional[int] = None,
    ) -> PagedRowSet:
        require_text(table, "table")
        page, size = clamp_paging(
            page,
            page_size,
            default_page_size=self.default_page_size,
            max_page_size=self.max_page_size,
        )
        offset = (page - 1) * size

        adapter = self.introspector.adapter_for(source)
        with adapter.read_only() as conn:
            try:
                columns = self._reflect_target(adapter, conn, table)
                total = adapter.count_rows(conn, table)
                key = [c.name for c in sorted(columns, key=lambda c: c.pk) if c.pk > 0]
                order_by = ", ".join(quote_ident(k) for k in key) if key else "rowid"
                cur = conn.execute(
                    f"SELECT * FROM {quote_ident(table)} ORDER BY {order_by} LIMIT ? OFFSET ?",
                    (size, offset),
                )
                names = [d[0] for d in cur.description or []]
                rows = [[Cell.from_sqlite(v) for v in r] for r in cur.fetchall()]
            except sqlite3.Error as e:
                raise read_failure(source, e) from e

        log.debug(
            "Listed rows",
            extra={
                "source": source,
                "table": table,
                "page": page,
                "page_size": size,
                "row_count": len(rows),
            },
        )
        return PagedRowSet(
            source=source,
            table=table,
            columns=names,
            rows=rows,
            total_rows=total,
            page=page,
            page_size=size,
            total_pages=total_pages(total, size),
        )

    def run_read_only_query(self, source: str, query: str) -> QueryResult:
        require_text(query, "query")
        # policy runs before the store is touched
        sql = self.policy.enforce(query)

        t0 = time.perf_counter()
        adapter = self.introspector.adapter_for(source)
        with adapter.read_only() as conn:
            try:
                log.debug("Executing SQL: %s", sql.replace("\n", " "))
                cur = conn.execute(sql)
                columns = [d[0] for d in cur.description or []]
                rows = [[Cell.from_sqlite(v) for v in r] for r in cur.fetchall()]
            except sqlite3.Error as e:
                raise QueryFailure(
                    f"Failed to execute query: {e}",
                    retryable=_is_locked(e),
                    details=[str(e)],
                ) from e
        elapsed_ms = (time.perf_counter() - t0) * 1000

        log.info("Query executed successfully. Returned %d rows.", len(rows))
        return QueryResult(
            source=source,
            query=sql,
            columns=columns,
            rows=rows,
            row_count=len(rows),
            elapsed_ms=round(elapsed_ms, 3),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert_row(
        self, source: str, table: str, values: Mapping[str, Any]
    ) -> ResultEnvelope:
        def build(columns: List[ColumnDescriptor]) -> Statement:
            self._check_columns(columns, values, "values")
            names = ", ".join(quote_ident(c) for c in values)
            marks = ", ".join("?" for _ in values)
            args = [bind_value(v, k) for k, v in values.items()]
            return f"INSERT INTO {quote_ident(table)} ({names}) VALUES ({marks})", args

        try:
            require_text(table, "table")
            require_mapping(values, "values")
            affected = self._write(source, table, build)
        except AppError as e:
            return self._failed("insert", source, table, e)
        except Exception as e:
            return self._crashed("insert", source, table, e)

        log.info("Row inserted", extra={"source": source, "table": table})
        return ResultEnvelope.success("Row inserted successfully", affected_rows=affected)

    def update_row(
        self,
        source: str,
        table: str,
        primary_key: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> ResultEnvelope:
        def build(columns: List[ColumnDescriptor]) -> Statement:
            self._check_columns(columns, primary_key, "primary_key")
            self._check_columns(columns, values, "values")
            set_clause = ", ".join(f"{quote_ident(k)} = ?" for k in values)
            set_args = [bind_value(v, k) for k, v in values.items()]
            where, where_args = _where_clause(primary_key)
            return (
                f"UPDATE {quote_ident(table)} SET {set_clause} WHERE {where}",
                set_args + where_args,
            )

        try:
            require_text(table, "table")
            require_mapping(primary_key, "primary_key")
            require_mapping(values, "values")
            affected = self._write(source, table, build)
            if affected == 0:
                raise NotFound("No row matched the primary key")
        except AppError as e:
            return self._failed("update", source, table, e)
        except Exception as e:
            return self._crashed("update", source, table, e)

        log.info(
            "Row updated",
            extra={"source": source, "table": table, "affected_rows": affected},
        )
        return ResultEnvelope.success("Row updated successfully", affected_rows=affected)

    def delete_row(
        self, source: str, table: str, primary_key: Mapping[str, Any]
    ) -> ResultEnvelope:
        def build(columns: List[ColumnDescriptor]) -> Statement:
            self._check_columns(columns, primary_key, "primary_key")
            where, args = _where_clause(primary_key)
            return f"DELETE FROM {quote_ident(table)} WHERE {where}", args

        try:
            require_text(table, "table")
            require_mapping(primary_key, "primary_key")
            affected = self._write(source, table, build)
            if affected == 0:
                raise NotFound("No row matched the primary key")
        except AppError as e:
            return self._failed("delete", source, table, e)
        except Exception as e:
            return self._crashed("delete", source, table, e)

        log.info(
            "Row deleted",
            extra={"source": source, "table": table, "affected_rows": affected},
        )
        return ResultEnvelope.success("Row deleted successfully", affected_rows=affected)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reflect_target(
        self, adapter: StoreAdapter, conn: sqlite3.Connection, table: str
    ) -> List[ColumnDescriptor]:
        # identifiers used in SQL must come from the catalog, never straight from the caller
        if table not in self.introspector.visible_tables(adapter, conn):
            raise NotFound(f"Table not found: {table}")
        return self.introspector.reflect_columns(adapter, conn, table)

    def _check_columns(
        self,
        columns: Sequence[ColumnDescriptor],
        supplied: Mapping[str, Any],
        field_name: str,
    ) -> None:
        missing = unknown_columns(supplied, (c.name for c in columns))
        if missing:
            raise ValidationError(
                f"Unknown column(s) in {field_name}: {', '.join(map(str, missing))}",
                details=[str(m) for m in missing],
            )

    def _write(self, source: str, table: str, build: StatementBuilder) -> int:
        adapter = self.introspector.adapter_for(source)
        with adapter.writable() as conn:
            try:
                columns = self._reflect_target(adapter, conn, table)
                sql, args = build(columns)
                log.debug("Executing write: %s", sql)
                with conn:
                    cur = conn.execute(sql, args)
                    return cur.rowcount
            except sqlite3.Error as e:
                raise MutationFailure(
                    str(e), retryable=_is_locked(e), details=[str(e)]
                ) from e

    def _failed(
        self, action: str, source: str, table: str, exc: AppError
    ) -> ResultEnvelope:
        log.debug(
            "Mutation failed",
            extra={
                "action": action,
                "source": source,
                "table": table,
                "error_code": exc.code.value,
            },
        )
        if exc.code in (ErrorCode.MUTATION_FAILURE, ErrorCode.OPEN_FAILURE):
            message = f"Failed to {action} row: {exc.message}"
        else:
            message = exc.message
        return ResultEnvelope.error(message, exc.code, details=exc.details)

    def _crashed(
        self, action: str, source: str, table: str, exc: Exception
    ) -> ResultEnvelope:
        log.exception(
            "Unexpected mutation error",
            extra={"action": action, "source": source, "table": table},
        )
        return ResultEnvelope.error(
            f"Failed to {action} row: {exc}", ErrorCode.MUTATION_FAILURE
        )
