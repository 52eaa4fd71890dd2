import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Tuple
from urllib.parse import quote

from adapters.db.base import StoreAdapter
from inspector.errors.exceptions import OpenFailure
from inspector.identifiers import quote_ident

log = logging.getLogger(__name__)


def _decode_text(raw: bytes) -> str:
    # Stores written by other runtimes may hold invalid UTF-8 in TEXT cells
    return raw.decode("utf-8", errors="replace")


class SQLiteAdapter(StoreAdapter):
    name = "sqlite"
    dialect = "sqlite"

    def __init__(self, path: str, timeout: float = 3.0):
        # resolve absolute path for safety
        self.path = Path(path).resolve()
        self.timeout = timeout

    def _uri(self, mode: str) -> str:
        # sqlite URIs are percent-decoded; '?' or '#' in a path would otherwise break them
        return f"file:{quote(str(self.path))}?mode={mode}"

    def _open(self, mode: str) -> sqlite3.Connection:
        uri = self._uri(mode)
        log.debug("SQLiteAdapter opening connection", extra={"uri": uri})
        try:
            conn = sqlite3.connect(uri, uri=True, timeout=self.timeout)
        except sqlite3.Error as e:
            raise OpenFailure(
                f"Cannot open database: {self.path.name}",
                retryable=_is_locked(e),
                details=[str(e)],
            ) from e
        conn.text_factory = _decode_text
        try:
            # sqlite opens lazily; touch the catalog so corrupt files fail here
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as e:
            conn.close()
            raise OpenFailure(
                f"Cannot open database: {self.path.name}",
                retryable=_is_locked(e),
                details=[str(e)],
            ) from e
        return conn

    @contextmanager
    def read_only(self) -> Iterator[sqlite3.Connection]:
        conn = self._open("ro")
        try:
            # Extra safety: enforce query-only mode on top of the ro open
            conn.execute("PRAGMA query_only = ON;")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def writable(self) -> Iterator[sqlite3.Connection]:
        conn = self._open("rw")
        try:
            conn.execute("PRAGMA foreign_keys = ON;")
            yield conn
        finally:
            conn.close()

    def list_tables(self, conn: sqlite3.Connection) -> List[str]:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
        )
        return [t[0] for t in cur.fetchall() if t and t[0]]

    def has_table(self, conn: sqlite3.Connection, table: str) -> bool:
        cur = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name = ?;", (table,)
        )
        return cur.fetchone() is not None

    def table_info(self, conn: sqlite3.Connection, table: str) -> List[Tuple[Any, ...]]:
        return conn.execute(f"PRAGMA table_info({quote_ident(table)});").fetchall()

    def foreign_key_list(
        self, conn: sqlite3.Connection, table: str
    ) -> List[Tuple[Any, ...]]:
        return conn.execute(
            f"PRAGMA foreign_key_list({quote_ident(table)});"
        ).fetchall()

    def count_rows(self, conn: sqlite3.Connection, table: str) -> int:
        row = conn.execute(f"SELECT COUNT(*) FROM {quote_ident(table)};").fetchone()
        return int(row[0]) if row else 0


def _is_locked(exc: BaseException) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text
