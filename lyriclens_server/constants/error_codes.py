"""Error codes dictionary for the export server.

Single source of truth for every error code and whether a caller may retry
it. The server itself never retries; the flag is advisory for clients.
Failures after a session exists destroy it, so repeating the same request
cannot succeed and those codes are not retryable.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


RESTART_FIX = (
    "The session was discarded. Re-upload from POST /api/export/init, "
    "or send the import request again"
)


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "MISSING_REQUIRED_FIELD": {
        "retryable": False,
    },
    "INVALID_SESSION_ID": {
        "retryable": False,
        "suggested_fix": "Session ids may only contain letters, digits, '_' and '-'",
    },
    "INVALID_URL": {
        "retryable": False,
        "suggested_fix": "Provide an absolute http(s) URL",
    },
    "MISSING_AUDIO": {
        "retryable": False,
        "suggested_fix": "Upload the audio track via POST /api/export/init first",
    },
    "FILE_TOO_LARGE": {
        "retryable": False,
    },
    "TOO_MANY_FILES": {
        "retryable": False,
    },
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "SESSION_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Start a new export session via POST /api/export/init",
    },
    # ==========================================================================
    # External tool errors (the session is destroyed before these are returned)
    # ==========================================================================
    "SPAWN_FAILED": {
        "retryable": False,
        "suggested_fix": "Check that the external tool is installed and on PATH",
    },
    "PROCESS_FAILED": {
        "retryable": False,
        "suggested_fix": RESTART_FIX,
    },
    "PROCESS_TIMEOUT": {
        "retryable": False,
        "suggested_fix": RESTART_FIX,
    },
    "CONSISTENCY_ERROR": {
        "retryable": False,
        "suggested_fix": RESTART_FIX,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "STREAM_ERROR": {
        "retryable": False,
        "suggested_fix": RESTART_FIX,
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Return the spec for an error code, or an empty spec if unknown."""
    return ERROR_CODES.get(code, {})
