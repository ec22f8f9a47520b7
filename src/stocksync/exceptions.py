from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    reason: str


class ValidationError(ValueError):
    """Malformed caller input, rejected before anything reaches the network."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__(self._format_message())

    @property
    def message(self) -> str:
        return str(self)

    def _format_message(self) -> str:
        if not self.issues:
            return "Validation failed"
        issue = self.issues[0]
        return f"{issue.field}: {issue.reason}"


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None = None
    trace_id: str | None = None
    status_code: int = 0
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class NetworkError(ApiError):
    """Transport failure, timeout or 5xx from the record store."""


class AuthorizationError(ApiError):
    """Credentials or permissions rejected by the record store."""


class NotFoundError(ApiError):
    pass


class RemoteValidationError(ApiError):
    pass


class MutationTimeoutError(NetworkError):
    pass


def describe_error(error: BaseException, fallback: str = "Please try again or contact support.") -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    text = str(error).strip()
    return text or fallback
