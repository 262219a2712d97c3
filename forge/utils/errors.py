"""Failure taxonomy for edit turns and the user-facing text for each kind."""

import httpx

RATE_LIMITED = "rate_limited"
UNAVAILABLE = "unavailable"
SERVER_ERROR = "server_error"
SESSION_EXPIRED = "session_expired"
VALIDATION = "validation"
TIMEOUT = "timeout"
MALFORMED = "malformed"
LOCKED = "locked"
GENERIC = "generic"

_STATUS_KINDS = {
    429: RATE_LIMITED,
    503: UNAVAILABLE,
    500: SERVER_ERROR,
    401: SESSION_EXPIRED,
    422: VALIDATION,
}

_MESSAGES = {
    RATE_LIMITED: "Request limit exceeded. Please wait a moment and try again.",
    UNAVAILABLE: "The AI is temporarily unavailable. Please wait 1-2 minutes.",
    SERVER_ERROR: "Server error. Please try again.",
    SESSION_EXPIRED: "Session expired. Please log in again.",
    VALIDATION: "Validation error: {detail}",
    TIMEOUT: "The request timed out. Please try again.",
    MALFORMED: "The AI reply could not be interpreted. The section was left unchanged.",
    GENERIC: "Error communicating with the AI.",
}


class StageLockedError(ValueError):
    """Raised when editing a stage whose record already has a downstream record."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


def status_of(exc: BaseException) -> int | None:
    """Extract an HTTP status code from httpx or provider SDK exceptions."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_failure(exc: BaseException) -> str:
    """Map an exception raised during an edit turn to a failure kind."""
    if isinstance(exc, StageLockedError):
        return LOCKED
    if isinstance(exc, httpx.TimeoutException):
        return TIMEOUT
    status = status_of(exc)
    if status is not None:
        return _STATUS_KINDS.get(status, GENERIC)
    return GENERIC


def error_detail(exc: BaseException) -> str:
    """Body text of an HTTP error response, falling back to str(exc)."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            return exc.response.text.strip() or str(exc)
        except httpx.ResponseNotRead:
            return str(exc)
    return str(exc)


def failure_message(kind: str, detail: str = "") -> str:
    if kind == LOCKED:
        return detail
    template = _MESSAGES.get(kind, _MESSAGES[GENERIC])
    return template.format(detail=detail or "invalid data")
