from inspector.errors.codes import ErrorCode

# code -> (status hint for the transport, retryable)
ERROR_MAP = {
    ErrorCode.NOT_FOUND: (404, False),
    ErrorCode.OPEN_FAILURE: (503, False),
    ErrorCode.QUERY_FAILURE: (422, False),
    ErrorCode.MUTATION_FAILURE: (409, False),
    ErrorCode.POLICY_VIOLATION: (422, False),
    ErrorCode.VALIDATION_ERROR: (400, False),
    ErrorCode.UNSUPPORTED: (400, False),
}


def map_error(code: ErrorCode | None) -> tuple[int, bool]:
    if code is None:
        return (500, False)
    return ERROR_MAP.get(code, (500, False))
