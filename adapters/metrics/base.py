from __future__ import annotations

from abc import ABC, abstractmethod


class Metrics(ABC):
    @abstractmethod
    def observe_operation_ms(self, *, operation: str, dt_ms: float) -> None: ...

    @abstractmethod
    def inc_operation_call(self, *, operation: str, ok: bool) -> None: ...

    @abstractmethod
    def inc_operation_error(self, *, operation: str, error_code: str) -> None: ...

    @abstractmethod
    def inc_policy_block(self, *, reason: str) -> None: ...

    @abstractmethod
    def inc_policy_check(self, *, ok: bool) -> None: ...
