from __future__ import annotations

from typing import Mapping

from .exceptions import (
    ApiError,
    AuthorizationError,
    NetworkError,
    NotFoundError,
    RemoteValidationError,
)

_ERRORS_BY_STATUS: dict[int, type[ApiError]] = {
    400: RemoteValidationError,
    401: AuthorizationError,
    403: AuthorizationError,
    404: NotFoundError,
    422: RemoteValidationError,
    429: NetworkError,
}


def error_type_for(status_code: int) -> type[ApiError]:
    if status_code >= 500:
        return NetworkError
    return _ERRORS_BY_STATUS.get(status_code, ApiError)


def is_retryable(error: BaseException) -> bool:
    """Whether a failed read may succeed if attempted again.

    Remote rejections (auth, bad request, not found) are final; transport
    failures, throttling, 5xx and errors raised outside the record store are not.
    """
    if isinstance(error, ApiError):
        return isinstance(error, NetworkError)
    return isinstance(error, Exception)


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    body = dict(payload or {})
    body_trace_id = body.get("trace_id")
    return error_type_for(status_code)(
        code=str(body.get("code") or "HTTP_ERROR"),
        message=str(body.get("message") or "Request failed"),
        details=body.get("details"),
        trace_id=trace_id if body_trace_id is None else str(body_trace_id),
        status_code=status_code,
        raw_payload=body,
    )
