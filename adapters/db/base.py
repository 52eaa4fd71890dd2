import sqlite3
from typing import Any, ContextManager, List, Protocol, Tuple


class StoreAdapter(Protocol):
    """Scoped access to one relational store file."""

    name: str
    dialect: str

    def read_only(self) -> ContextManager[sqlite3.Connection]:
        """Open a read-only handle; closed when the context exits."""

    def writable(self) -> ContextManager[sqlite3.Connection]:
        """Open a read-write handle on an existing store; closed on exit."""

    def list_tables(self, conn: sqlite3.Connection) -> List[str]:
        """Catalog table names in listing order (reserved tables included)."""

    def has_table(self, conn: sqlite3.Connection, table: str) -> bool:
        """True when the catalog holds a table with this exact name."""

    def table_info(self, conn: sqlite3.Connection, table: str) -> List[Tuple[Any, ...]]:
        """Rows of (cid, name, type, notnull, dflt_value, pk)."""

    def foreign_key_list(
        self, conn: sqlite3.Connection, table: str
    ) -> List[Tuple[Any, ...]]:
        """Rows of (id, seq, table, from, to, on_update, on_delete, match)."""

    def count_rows(self, conn: sqlite3.Connection, table: str) -> int:
        """Full COUNT(*) of a table."""
