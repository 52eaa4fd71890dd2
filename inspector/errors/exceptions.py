from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, List

from inspector.errors.codes import ErrorCode


@dataclass
class AppError(Exception):
    """Base class for classified engine errors."""

    message: str
    code: ErrorCode = ErrorCode.QUERY_FAILURE
    retryable: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)
    details: Optional[List[str]] = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "extra": self.extra,
        }


@dataclass
class NotFound(AppError):
    code: ErrorCode = ErrorCode.NOT_FOUND


@dataclass
class OpenFailure(AppError):
    code: ErrorCode = ErrorCode.OPEN_FAILURE


@dataclass
class PolicyViolation(AppError):
    code: ErrorCode = ErrorCode.POLICY_VIOLATION


@dataclass
class ValidationError(AppError):
    code: ErrorCode = ErrorCode.VALIDATION_ERROR


@dataclass
class MutationFailure(AppError):
    code: ErrorCode = ErrorCode.MUTATION_FAILURE


@dataclass
class Unsupported(AppError):
    code: ErrorCode = ErrorCode.UNSUPPORTED


@dataclass
class QueryFailure(AppError):
    code: ErrorCode = ErrorCode.QUERY_FAILURE


class EngineNotRunning(RuntimeError):
    """Raised when a component is used on a stopped InspectorEngine."""
