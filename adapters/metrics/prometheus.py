from __future__ import annotations

from prometheus_client import Counter, Histogram
from inspector.prom import REGISTRY

from adapters.metrics.base import Metrics
from inspector.contracts import OPERATIONS
from inspector.errors.codes import ErrorCode

# -----------------------------------------------------------------------------
# Operation-level metrics
# -----------------------------------------------------------------------------
operation_duration_ms = Histogram(
    "inspector_operation_duration_ms",
    "Duration (ms) of each engine operation",
    ["operation"],
    buckets=(1, 2, 5, 10, 20, 50, 100, 200, 500, 1000, 2000, 5000, 10000, 60000),
    registry=REGISTRY,
)

operation_calls_total = Counter(
    "inspector_operation_calls_total",
    "Count of engine operation calls labeled by operation and ok",
    ["operation", "ok"],
    registry=REGISTRY,
)

operation_errors_total = Counter(
    "inspector_operation_errors_total",
    "Count of engine operation failures labeled by operation and error_code",
    ["operation", "error_code"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Read-only policy metrics
# -----------------------------------------------------------------------------
policy_blocks_total = Counter(
    "inspector_policy_blocks_total",
    "Count of ad-hoc statements blocked by the read-only policy",
    ["reason"],
    registry=REGISTRY,
)

policy_checks_total = Counter(
    "inspector_policy_checks_total",
    "Total ad-hoc statements checked by the read-only policy",
    ["ok"],
    registry=REGISTRY,
)


class PrometheusMetrics(Metrics):
    def observe_operation_ms(self, *, operation: str, dt_ms: float) -> None:
        operation_duration_ms.labels(operation=operation).observe(float(dt_ms))

    def inc_operation_call(self, *, operation: str, ok: bool) -> None:
        operation_calls_total.labels(
            operation=operation, ok=("true" if ok else "false")
        ).inc()

    def inc_operation_error(self, *, operation: str, error_code: str) -> None:
        operation_errors_total.labels(
            operation=operation, error_code=str(error_code)
        ).inc()

    def inc_policy_block(self, *, reason: str) -> None:
        policy_blocks_total.labels(reason=reason).inc()

    def inc_policy_check(self, *, ok: bool) -> None:
        policy_checks_total.labels(ok=("true" if ok else "false")).inc()


# -----------------------------------------------------------------------------
# Label priming to keep the exposition stable
# -----------------------------------------------------------------------------
for ok in ("true", "false"):
    policy_checks_total.labels(ok=ok).inc(0)

for operation in OPERATIONS:
    for ok in ("true", "false"):
        operation_calls_total.labels(operation=operation, ok=ok).inc(0)

for reason in (
    "empty_query",
    "query_too_long",
    "multiple_statements",
    "keyword_not_allowed",
    "pragma_assignment",
    "parse_error",
    "non_query_root",
    "forbidden_ast",
):
    policy_blocks_total.labels(reason=reason).inc(0)

for code in ErrorCode:
    operation_errors_total.labels(operation="run_query", error_code=code.value).inc(0)
