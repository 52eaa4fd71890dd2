import pytest

from inspector.errors.codes import ErrorCode
from inspector.errors.exceptions import (
    AppError,
    MutationFailure,
    NotFound,
    OpenFailure,
    PolicyViolation,
    QueryFailure,
    Unsupported,
    ValidationError,
)
from inspector.errors.mapper import map_error
from inspector.types import ResultEnvelope


@pytest.mark.parametrize(
    "exc_cls, code, status",
    [
        (NotFound, ErrorCode.NOT_FOUND, 404),
        (OpenFailure, ErrorCode.OPEN_FAILURE, 503),
        (QueryFailure, ErrorCode.QUERY_FAILURE, 422),
        (MutationFailure, ErrorCode.MUTATION_FAILURE, 409),
        (PolicyViolation, ErrorCode.POLICY_VIOLATION, 422),
        (ValidationError, ErrorCode.VALIDATION_ERROR, 400),
        (Unsupported, ErrorCode.UNSUPPORTED, 400),
    ],
)
def test_exception_codes_and_status_hints(exc_cls, code, status):
    exc = exc_cls("boom")
    assert isinstance(exc, AppError)
    assert exc.code is code
    assert map_error(code) == (status, False)
    assert str(exc) == "boom"


def test_retryable_is_per_instance():
    exc = OpenFailure("locked", retryable=True, details=["database is locked"])
    assert exc.to_dict() == {
        "code": "OPEN_FAILURE",
        "message": "locked",
        "details": ["database is locked"],
        "retryable": True,
        "extra": {},
    }


def test_unknown_code_maps_to_500():
    assert map_error(None) == (500, False)


def test_envelopes():
    ok = ResultEnvelope.success("done", affected_rows=2)
    assert ok.ok and not ok.retryable
    assert ok.to_dict() == {"status": "success", "message": "done", "affected_rows": 2}

    err = ResultEnvelope.error("nope", ErrorCode.NOT_FOUND)
    assert not err.ok
    assert err.to_dict() == {"status": "error", "message": "nope", "error_code": "NOT_FOUND"}
