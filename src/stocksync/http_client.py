from __future__ import annotations

import json
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import NetworkError
from .logger import get_logger

TRACE_HEADER = "X-Trace-ID"
TRACE_HEADER_ALIASES = (TRACE_HEADER, "X-Trace-Id", "x-trace-id")

_log = get_logger(__name__)

Payload = dict[str, Any] | list[Any] | None


def new_trace_id() -> str:
    return str(uuid.uuid4())


def trace_id_from_headers(headers: Any) -> str | None:
    for key in TRACE_HEADER_ALIASES:
        trace_id = headers.get(key)
        if trace_id:
            return trace_id
    return None


@dataclass
class HttpClient:
    config: ClientConfig
    session: requests.Session | None = None
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.max_connections,
                pool_maxsize=self.config.max_connections,
            )
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    def _build_url(self, path: str) -> str:
        base = self.config.api_base_url.rstrip("/") + "/"
        return urljoin(base, path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry_mutation: bool = False,
    ) -> Payload:
        if self.session is None:
            raise RuntimeError("HTTP session not initialized")
        trace_id = new_trace_id()
        request_headers = {"Accept": "application/json", TRACE_HEADER: trace_id}
        if self.config.api_token:
            request_headers["Authorization"] = f"Bearer {self.config.api_token}"
        if headers:
            request_headers.update(headers)

        normalized_method = method.upper()
        url = self._build_url(path)
        can_retry = normalized_method in {"GET", "HEAD"} or retry_mutation
        attempts = self.config.retries + 1 if can_retry else 1

        response: requests.Response | None = None
        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method=normalized_method,
                    url=url,
                    headers=request_headers,
                    json=json_body,
                    params=params,
                    timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                    verify=self.config.verify_ssl,
                )
            except requests.RequestException as exc:
                if attempt >= attempts - 1:
                    raise NetworkError(
                        code="TIMEOUT_ERROR" if isinstance(exc, requests.Timeout) else "TRANSPORT_ERROR",
                        message=str(exc) or "Could not reach the record store",
                        details={"type": type(exc).__name__},
                        trace_id=trace_id,
                        status_code=0,
                    ) from exc
            else:
                if response.status_code < 500 or attempt >= attempts - 1:
                    break
            _log.debug("retrying %s %s after attempt %s", normalized_method, path, attempt + 1)
            self.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError("HTTP request failed without response")

        trace_id = trace_id_from_headers(response.headers) or trace_id
        if response.ok:
            if not response.content:
                return None
            return response.json()

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError):
            payload = {"message": response.text}
        raise map_error(response.status_code, payload if isinstance(payload, dict) else {"message": response.text}, trace_id)
