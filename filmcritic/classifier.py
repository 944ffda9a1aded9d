"""Map raw provider failure text to a small set of error kinds."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_CREDENTIAL = "invalid_credential"
    INVALID_RESPONSE_FORMAT = "invalid_response_format"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# Checked in order; "invalid" is broad so the credential bucket goes last.
_MARKERS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (
        ErrorKind.QUOTA_EXCEEDED,
        ("429", "quota", "rate limit", "ratelimit", "resource_exhausted", "too many requests"),
    ),
    (ErrorKind.TIMEOUT, ("timeout", "timed out", "deadline exceeded")),
    (
        ErrorKind.INVALID_RESPONSE_FORMAT,
        (
            "unexpected response",
            "invalid response",
            "invalid json",
            "malformed",
            "response format",
        ),
    ),
    (
        ErrorKind.INVALID_CREDENTIAL,
        (
            "api key",
            "api_key",
            "invalid",
            "unauthenticated",
            "permission denied",
            "authentication",
            "401",
            "403",
        ),
    ),
)


def _error_text(raw_error: str | BaseException) -> str:
    if isinstance(raw_error, BaseException):
        return f"{type(raw_error).__name__}: {raw_error}"
    return raw_error


def classify(raw_error: str | BaseException) -> ErrorKind:
    text = _error_text(raw_error).lower()
    for kind, markers in _MARKERS:
        if any(marker in text for marker in markers):
            return kind
    return ErrorKind.UNKNOWN


def user_message(
    kind: ErrorKind,
    raw_error: str | BaseException,
    *,
    operation: str | None = None,
) -> str:
    """Return the message shown to a person for a classified failure."""
    match kind:
        case ErrorKind.QUOTA_EXCEEDED:
            return "The AI service has reached its usage limit. Please try again later."
        case ErrorKind.INVALID_CREDENTIAL:
            return "Invalid API key. Please check your API key configuration."
        case ErrorKind.TIMEOUT:
            where = f" during {operation}" if operation else ""
            return f"The AI service did not answer in time{where}. Please try again."
        case _:
            where = f" in {operation}" if operation else ""
            return f"AI service error{where}: {_error_text(raw_error)}"


# Markers that point at the key itself rather than at one model's request.
_CREDENTIAL_REJECTION_MARKERS = ("api key", "api_key", "unauthenticated", "401")


def rejects_credential(raw_error: str | BaseException) -> bool:
    """Whether a failure says the API key is bad for every model, not just this one."""
    text = _error_text(raw_error).lower()
    return any(marker in text for marker in _CREDENTIAL_REJECTION_MARKERS)
