from enum import Enum


class ErrorCode(str, Enum):
    # --- Lookup ---
    NOT_FOUND = "NOT_FOUND"

    # --- Store access ---
    OPEN_FAILURE = "OPEN_FAILURE"
    QUERY_FAILURE = "QUERY_FAILURE"
    MUTATION_FAILURE = "MUTATION_FAILURE"

    # --- Input / policy ---
    POLICY_VIOLATION = "POLICY_VIOLATION"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED = "UNSUPPORTED"
