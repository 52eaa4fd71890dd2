from __future__ import annotations

from adapters.metrics.base import Metrics


class NoOpMetrics(Metrics):
    def observe_operation_ms(self, *, operation: str, dt_ms: float) -> None:
        return

    def inc_operation_call(self, *, operation: str, ok: bool) -> None:
        return

    def inc_operation_error(self, *, operation: str, error_code: str) -> None:
        return

    def inc_policy_block(self, *, reason: str) -> None:
        return

    def inc_policy_check(self, *, ok: bool) -> None:
        return
