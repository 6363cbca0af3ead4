"""Custom exceptions for the export server.

Every error carries a machine-readable code and an HTTP status so the
exception handlers in ``main`` can render a uniform error body.
"""

from typing import Any

from lyriclens_server.constants.error_codes import get_error_spec


class ExportServerError(Exception):
    """Base exception for all export server errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to the JSON error body."""
        spec = get_error_spec(self.code)
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
            "retryable": spec.get("retryable", False),
        }
        if "suggested_fix" in spec:
            body["suggested_fix"] = spec["suggested_fix"]
        return body


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(ExportServerError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"


class MissingRequiredFieldError(ValidationError):
    """Required field is missing."""

    code = "MISSING_REQUIRED_FIELD"
    message = "Required field is missing"

    def __init__(self, field: str | None = None):
        message = f"Missing {field}" if field else self.message
        self.field = field
        super().__init__(message)


class InvalidSessionIdError(ValidationError):
    """Session id is empty after sanitization."""

    code = "INVALID_SESSION_ID"
    message = "Invalid session id"

    def __init__(self, raw_id: str | None = None):
        message = f"Invalid session id: {raw_id!r}" if raw_id else self.message
        super().__init__(message)


class InvalidUrlError(ValidationError):
    """URL is not a well-formed absolute http(s) URL."""

    code = "INVALID_URL"
    message = "Invalid URL"


class MissingAudioError(ValidationError):
    """Session has no staged audio track."""

    code = "MISSING_AUDIO"
    message = "Audio file missing in session"

    def __init__(self, session_id: str | None = None):
        message = f"Audio file missing in session {session_id}" if session_id else self.message
        super().__init__(message)


class FileTooLargeError(ValidationError):
    """Uploaded file exceeds the per-file size quota."""

    code = "FILE_TOO_LARGE"
    message = "File too large"

    def __init__(self, filename: str | None = None, max_bytes: int | None = None):
        message = self.message
        if filename and max_bytes is not None:
            message = f"File {filename} exceeds maximum size of {max_bytes} bytes"
        super().__init__(message)


class TooManyFilesError(ValidationError):
    """Session already holds the maximum number of files."""

    code = "TOO_MANY_FILES"
    message = "Too many files in session"

    def __init__(self, count: int | None = None, max_count: int | None = None):
        message = self.message
        if count is not None and max_count is not None:
            message = f"Too many files ({count}) in session (max: {max_count})"
        super().__init__(message)


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class NotFoundError(ExportServerError):
    """Base class for not found errors."""

    code = "NOT_FOUND"
    status_code = 404
    message = "Not found"


class SessionNotFoundError(NotFoundError):
    """Session directory does not exist."""

    code = "SESSION_NOT_FOUND"
    message = "Session not found"

    def __init__(self, session_id: str | None = None):
        message = f"Session not found: {session_id}" if session_id else self.message
        super().__init__(message)


# =============================================================================
# External Process Errors (500)
# =============================================================================


class SpawnError(ExportServerError):
    """External tool could not be started at all."""

    code = "SPAWN_FAILED"
    status_code = 500
    message = "Failed to start external process"

    def __init__(self, command: str, reason: str | None = None):
        self.command = command
        self.reason = reason
        message = f"Failed to start {command}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ProcessError(ExportServerError):
    """External tool exited with a non-zero code."""

    code = "PROCESS_FAILED"
    status_code = 500
    message = "External process failed"

    def __init__(
        self,
        command: str,
        exit_code: int | None,
        stderr_tail: list[str] | None = None,
        *,
        message: str | None = None,
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail or []
        super().__init__(message or f"{command} exited with code {exit_code}")


class ProcessTimeoutError(ProcessError):
    """External tool exceeded the configured wait and was killed."""

    code = "PROCESS_TIMEOUT"

    def __init__(self, command: str, timeout_seconds: float, stderr_tail: list[str] | None = None):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            command,
            None,
            stderr_tail,
            message=f"{command} timed out after {timeout_seconds:g}s",
        )


class ConsistencyError(ExportServerError):
    """External tool reported success but its expected output is absent."""

    code = "CONSISTENCY_ERROR"
    status_code = 500
    message = "Expected output file not found"

    def __init__(self, command: str | None = None, expected_path: str | None = None):
        message = self.message
        if command and expected_path:
            message = f"{command} succeeded but {expected_path} was not produced"
        super().__init__(message)


# =============================================================================
# System Errors (500)
# =============================================================================


class StreamError(ExportServerError):
    """I/O failure while returning an artifact."""

    code = "STREAM_ERROR"
    status_code = 500
    message = "Failed to stream result"


class InternalError(ExportServerError):
    """Internal server error."""

    code = "INTERNAL_ERROR"
    status_code = 500
    message = "Internal server error"
