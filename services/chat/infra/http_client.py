"""HTTP client collaborator for api nodes."""

import asyncio
import logging
from typing import Any, Dict, Optional
import requests
from pydantic import BaseModel
from requests.exceptions import (
    ConnectionError,
    InvalidSchema,
    InvalidURL,
    MissingSchema,
    RequestException,
    Timeout,
)
from shared.constants import (
    ALLOWED_API_METHODS,
    DEFAULT_API_TIMEOUT_MS,
    MAX_API_TIMEOUT_MS,
    MIN_API_TIMEOUT_MS,
)
from shared.exceptions import ApiCallError, ApiCallFailure, FatalApiCallError


class ApiResponse(BaseModel):
    status: int
    data: Any = None


def resolve_timeout_seconds(timeout_ms: Optional[int]) -> float:
    """Milliseconds from the node config, clamped, as seconds for requests"""
    if timeout_ms is None:
        timeout_ms = DEFAULT_API_TIMEOUT_MS
    timeout_ms = min(max(timeout_ms, MIN_API_TIMEOUT_MS), MAX_API_TIMEOUT_MS)
    return timeout_ms / 1000


class HttpClient:
    """At-most-once HTTP calls; nothing is retried.

    requests is blocking, so each call runs in a worker thread and other
    sessions keep progressing on the event loop.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()

    async def call(
        self,
        method: Optional[str],
        url: Optional[str],
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: Optional[int] = None
    ) -> ApiResponse:
        return await asyncio.to_thread(self._request, method, url, headers, body, timeout)

    def _request(
        self,
        method: Optional[str],
        url: Optional[str],
        headers: Optional[Dict[str, str]],
        body: Any,
        timeout: Optional[int]
    ) -> ApiResponse:
        if not url:
            raise ApiCallError(ApiCallFailure(error_type="CONFIG_ERROR", error_message="URL required"))

        method = (method or "GET").upper()
        if method not in ALLOWED_API_METHODS:
            raise ApiCallError(ApiCallFailure(
                error_type="CONFIG_ERROR",
                error_message=f"Unsupported HTTP method: {method}",
                context={"url": url}
            ))

        logging.info("Calling external API", extra={"url": url, "method": method})

        try:
            response = self.session.request(
                method,
                url,
                headers=headers or {},
                json=body,
                timeout=resolve_timeout_seconds(timeout)
            )
        except (MissingSchema, InvalidSchema, InvalidURL) as e:
            # Same failure for every session, the flow itself is broken
            raise FatalApiCallError(ApiCallFailure(
                error_type="INVALID_URL",
                error_message=f"Invalid URL: {str(e)}",
                is_fatal=True,
                context={"url": url}
            ))
        except (Timeout, ConnectionError) as e:
            raise ApiCallError(ApiCallFailure(
                error_type="NETWORK_ERROR",
                error_message=f"Network error: {str(e)}",
                context={"url": url, "error_class": type(e).__name__}
            ))
        except RequestException as e:
            raise ApiCallError(ApiCallFailure(
                error_type="REQUEST_ERROR",
                error_message=f"Request failed: {str(e)}",
                context={"url": url}
            ))

        if response.status_code >= 400:
            raise ApiCallError(ApiCallFailure(
                error_type="HTTP_ERROR",
                error_message=f"HTTP {response.status_code}: {response.reason}",
                http_status_code=response.status_code,
                context={"url": url, "method": method}
            ))

        return ApiResponse(status=response.status_code, data=self._parse_body(response))

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        if "application/json" in response.headers.get("content-type", ""):
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text
