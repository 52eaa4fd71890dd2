from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, cast

import sqlglot
from sqlglot import exp

from adapters.metrics.base import Metrics
from adapters.metrics.noop import NoOpMetrics
from inspector.errors.exceptions import PolicyViolation


# ------------------------- Zero-width & basic regexes -------------------------

_ZERO_WIDTH = [
    "\u200b",
    "\u200c",
    "\u200d",
    "\ufeff",
    "\u2060",
    "\u180e",
    "\u200e",
    "\u200f",
]
_ZERO_WIDTH_RE = re.compile("|".join(map(re.escape, _ZERO_WIDTH)))

# String / comment regexes
_STR_SINGLE_RE = re.compile(r"'([^'\\]|\\.)*'", re.DOTALL)
_STR_DOUBLE_RE = re.compile(r'"([^"\\]|\\.)*"', re.DOTALL)
# Comments outside quoted literals; group 1 is a literal kept as-is
_COMMENT_RE = re.compile(
    r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")|--[^\n]*|/\*.*?\*/", re.DOTALL
)
_LEADING_COMMENT_RE = re.compile(r"^\s*(--[^\n]*(\n|$)|/\*.*?\*/)", re.DOTALL)

# Markdown code fences: ```sql\n ... \n```
_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\n(?P<body>.*)\n```\s*$", re.DOTALL)

_HEAD_RE = re.compile(r"^([A-Za-z]+)")
_EXPLAIN_HEAD_RE = re.compile(r"^\s*explain(\s+query\s+plan)?\s+", re.IGNORECASE)

# Read-only statement kinds accepted for ad-hoc execution
ALLOWED_KEYWORDS = frozenset({"SELECT", "WITH", "EXPLAIN", "PRAGMA", "VALUES"})

_QUERY_ROOTS = {"select", "union", "intersect", "except", "values", "subquery"}

_FORBIDDEN_NODES = {
    "insert",
    "update",
    "delete",
    "drop",
    "create",
    "alter",
    "altertable",
    "truncatetable",
    "merge",
}
_FORBIDDEN_COMMAND_MARKERS = ("attach", "detach", "vacuum", "reindex", "pragma")

_MAX_SQL_LEN = 200_000  # defensive bound against catastrophic inputs


def _strip_fences(sql: str) -> str:
    m = _FENCE_RE.match(sql)
    return m.group("body") if m else sql


def _collapse_trailing_semicolons(body: str) -> str:
    """
    Keep at most one trailing semicolon. This makes 'SELECT 1;;' equivalent to 'SELECT 1;'.
    """
    body = body.rstrip()
    had_any = False
    while body.endswith(";"):
        had_any = True
        body = body[:-1].rstrip()
    return (body + ";") if had_any else body


def sanitize(sql: str) -> str:
    """
    Remove zero-width chars, strip markdown fences, trim, and normalize trailing semicolons.
    """
    if not sql:
        return ""
    sql = _ZERO_WIDTH_RE.sub("", sql)
    sql = _strip_fences(sql)
    sql = sql.strip()
    sql = _collapse_trailing_semicolons(sql)
    return sql


def _remove_comments(body: str) -> str:
    # a comment separates tokens like whitespace does
    return _COMMENT_RE.sub(lambda m: m.group(1) or " ", body)


def _strip_leading_comments(body: str) -> str:
    prev = None
    while prev != body:
        prev = body
        body = _LEADING_COMMENT_RE.sub("", body, count=1)
    return body.lstrip()


def _strip_strings(body: str) -> str:
    """
    Remove string literals (so keyword checks won't fire on quoted text).
    """
    body = _STR_SINGLE_RE.sub("''", body)
    body = _STR_DOUBLE_RE.sub('""', body)
    return body


def _count_statements_semicolon(body: str) -> int:
    """
    Count statements by semicolons after removing comments and masking strings.
    """
    masked_strings = _STR_SINGLE_RE.sub("'S'", body)
    masked_strings = _STR_DOUBLE_RE.sub('"S"', masked_strings)
    no_comments = _remove_comments(masked_strings)
    parts = [p.strip() for p in no_comments.split(";")]
    non_empty = [p for p in parts if p]
    return len(non_empty) if non_empty else 0


def _count_statements_sqlglot(body: str) -> int:
    """
    Count statements via sqlglot parser after removing comments.
    """
    try:
        trees = sqlglot.parse(_remove_comments(body), read="sqlite")
        return len([t for t in trees if t is not None])
    except Exception:
        # If parse fails, conservatively return 1 to avoid double blocking.
        return 1


def _contains_forbidden_ast(root: exp.Expression) -> tuple[bool, str]:
    """Return (blocked, reason) based on AST nodes/commands."""
    for node in root.walk():
        # older sqlglot releases yield (node, parent, key) tuples
        if isinstance(node, tuple):
            node = node[0]
        name = type(node).__name__.lower()
        if name in _FORBIDDEN_NODES:
            return True, name
        if name == "command":
            text = str(node).lower()
            for kw in _FORBIDDEN_COMMAND_MARKERS:
                if kw in text:
                    return True, f"command:{kw}"
    return False, ""


@dataclass(frozen=True)
class PolicyDecision:
    ok: bool
    sql: str
    keyword: Optional[str] = None
    reason: str = "ok"
    details: List[str] = field(default_factory=list)
    duration_ms: int = 0
    notes: Dict[str, Any] = field(default_factory=dict)


class ReadOnlyPolicy:
    """
    Allowlist gate for ad-hoc statements: a single SELECT / WITH / VALUES /
    EXPLAIN / read-form PRAGMA statement. Everything else is rejected before
    the store is touched.
    """

    name = "read_only_policy"

    def __init__(
        self,
        allowed: frozenset[str] = ALLOWED_KEYWORDS,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.allowed = frozenset(k.upper() for k in allowed)
        self.metrics = metrics or NoOpMetrics()

    def _block(
        self, t0: float, sql: str, reason: str, detail: str, **notes: Any
    ) -> PolicyDecision:
        self.metrics.inc_policy_block(reason=reason)
        self.metrics.inc_policy_check(ok=False)
        return PolicyDecision(
            ok=False,
            sql=sql,
            reason=reason,
            details=[detail],
            duration_ms=int((time.perf_counter() - t0) * 1000),
            notes=notes,
        )

    def check(self, sql: str) -> PolicyDecision:
        t0 = time.perf_counter()

        # 0) nil / size guard
        if not sql or not sql.strip():
            return self._block(t0, "", "empty_query", "Query is empty")
        if len(sql) > _MAX_SQL_LEN:
            return self._block(t0, "", "query_too_long", "Query is too long")

        # 1) sanitize
        body = sanitize(sql)

        # 2) single-statement check (semicolon + parser)
        semicolon_count = _count_statements_semicolon(body)
        glot_count = _count_statements_sqlglot(body)
        if semicolon_count != 1 or glot_count > 1:
            return self._block(
                t0,
                body,
                "multiple_statements",
                "Multiple statements detected",
                semicolon_count=semicolon_count,
                parser_count=glot_count,
            )

        decision = self._check_statement(t0, body)
        if decision.ok:
            self.metrics.inc_policy_check(ok=True)
        return decision

    def _check_statement(self, t0: float, body: str) -> PolicyDecision:
        stmt = _strip_leading_comments(body)
        m = _HEAD_RE.match(stmt)
        keyword = m.group(1).upper() if m else ""

        # 3) leading keyword allowlist
        if keyword not in self.allowed:
            allowed = ", ".join(sorted(self.allowed))
            return self._block(
                t0,
                body,
                "keyword_not_allowed",
                f"Only {allowed} statements are allowed (got {keyword or 'nothing'})",
            )

        # 4) per-kind checks
        if keyword == "PRAGMA":
            if "=" in _remove_comments(_strip_strings(stmt)):
                return self._block(
                    t0, body, "pragma_assignment", "PRAGMA assignments are not allowed"
                )
            return self._allow(t0, body, keyword)

        if keyword == "EXPLAIN":
            remainder = _EXPLAIN_HEAD_RE.sub("", stmt, count=1).strip()
            if not remainder or remainder == stmt:
                return self._block(
                    t0, body, "keyword_not_allowed", "EXPLAIN requires a statement"
                )
            inner = self._check_statement(t0, remainder)
            if not inner.ok:
                return inner
            return self._allow(t0, body, keyword)

        return self._check_query_ast(t0, body, keyword)

    def _check_query_ast(self, t0: float, body: str, keyword: str) -> PolicyDecision:
        try:
            root = cast(
                exp.Expression,
                sqlglot.parse_one(_remove_comments(body).rstrip("; \n\t"), read="sqlite"),
            )
        except Exception as e:
            if keyword == "WITH":
                return self._block(
                    t0, body, "parse_error", "Could not parse WITH statement", error=str(e)
                )
            # plain SELECT / VALUES the parser does not know still run on a read-only handle
            return self._allow(t0, body, keyword, parse_error=str(e))

        root_type = type(root).__name__.lower()
        if root_type not in _QUERY_ROOTS:
            return self._block(
                t0, body, "non_query_root", f"Non-query statement: {root_type}"
            )

        # AST-based forbidden nodes / commands (defense-in-depth)
        blocked, reason = _contains_forbidden_ast(root)
        if blocked:
            return self._block(
                t0, body, "forbidden_ast", f"Forbidden statement inside query: {reason}"
            )
        return self._allow(t0, body, keyword)

    def _allow(self, t0: float, body: str, keyword: str, **notes: Any) -> PolicyDecision:
        return PolicyDecision(
            ok=True,
            sql=body,
            keyword=keyword,
            duration_ms=int((time.perf_counter() - t0) * 1000),
            notes=notes,
        )

    def enforce(self, sql: str) -> str:
        """Return the sanitized statement or raise PolicyViolation."""
        decision = self.check(sql)
        if not decision.ok:
            raise PolicyViolation(
                decision.details[0] if decision.details else "Query not allowed",
                details=list(decision.details),
                extra={"reason": decision.reason},
            )
        return decision.sql
