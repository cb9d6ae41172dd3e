"""Requester object to make HTTP requests to the workflow service's HTTP API."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, Optional, Tuple, Type

import aiohttp
import structlog
import tenacity
from temporalio.service import RPCStatusCode

from tctl.core import __version__
from tctl.core.configuration import TctlConfig
from tctl.core.exceptions import (
    ErrorKind,
    InvalidRequest,
    InvalidResponse,
    ServiceError,
)

logger = structlog.get_logger(__name__)

CLIENT_NAME = "tctl"

# Status codes carried in the body of an error response.
_STATUS_CODE_KINDS: Dict[int, ErrorKind] = {
    RPCStatusCode.CANCELLED: ErrorKind.UNKNOWN,
    RPCStatusCode.UNKNOWN: ErrorKind.UNKNOWN,
    RPCStatusCode.INVALID_ARGUMENT: ErrorKind.INVALID_ARGUMENT,
    RPCStatusCode.DEADLINE_EXCEEDED: ErrorKind.DEADLINE_EXCEEDED,
    RPCStatusCode.NOT_FOUND: ErrorKind.NOT_FOUND,
    RPCStatusCode.ALREADY_EXISTS: ErrorKind.ALREADY_EXISTS,
    RPCStatusCode.PERMISSION_DENIED: ErrorKind.PERMISSION_DENIED,
    RPCStatusCode.RESOURCE_EXHAUSTED: ErrorKind.RESOURCE_EXHAUSTED,
    RPCStatusCode.FAILED_PRECONDITION: ErrorKind.FAILED_PRECONDITION,
    RPCStatusCode.ABORTED: ErrorKind.UNAVAILABLE,
    RPCStatusCode.OUT_OF_RANGE: ErrorKind.INVALID_ARGUMENT,
    RPCStatusCode.UNIMPLEMENTED: ErrorKind.FAILED_PRECONDITION,
    RPCStatusCode.INTERNAL: ErrorKind.INTERNAL,
    RPCStatusCode.UNAVAILABLE: ErrorKind.UNAVAILABLE,
    RPCStatusCode.DATA_LOSS: ErrorKind.INTERNAL,
    RPCStatusCode.UNAUTHENTICATED: ErrorKind.UNAUTHENTICATED,
}

_HTTP_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.INVALID_ARGUMENT,
    401: ErrorKind.UNAUTHENTICATED,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.ALREADY_EXISTS,
    412: ErrorKind.FAILED_PRECONDITION,
    423: ErrorKind.UNAVAILABLE,
    429: ErrorKind.RESOURCE_EXHAUSTED,
    501: ErrorKind.FAILED_PRECONDITION,
    502: ErrorKind.UNAVAILABLE,
    503: ErrorKind.UNAVAILABLE,
    504: ErrorKind.DEADLINE_EXCEEDED,
}


def http_request_ok(status_code: int) -> bool:
    """Return True if HTTP return codes that are deemed ok."""
    return 200 <= status_code < 300


def classify_error_response(status_code: int, content: Any) -> ErrorKind:
    """Map a failed response to an ErrorKind.

    The status code in the body of the response wins over the HTTP status.
    """
    if isinstance(content, dict):
        code = content.get("code")
        if isinstance(code, int) and code in _STATUS_CODE_KINDS:
            return _STATUS_CODE_KINDS[code]
    if status_code in _HTTP_STATUS_KINDS:
        return _HTTP_STATUS_KINDS[status_code]
    if 400 <= status_code < 500:
        return ErrorKind.INVALID_ARGUMENT
    if 500 <= status_code < 600:
        return ErrorKind.INTERNAL
    return ErrorKind.UNKNOWN


def _error_message(content: Any) -> Any:
    if isinstance(content, dict) and "message" in content:
        return content["message"]
    return content


class Requester:
    """Handles HTTP requests to the workflow service."""

    def __init__(
        self,
        service_url: str,
        retries_timeout: int = 60,
        retries_attempts: int = 5,
        request_timeout: float = 10,
    ) -> None:
        """Initialize requester.

        Args:
            service_url: The service URL, including the API route prefix
            retries_timeout: Total timeout for retries in seconds
            retries_attempts: Number of retry attempts
            request_timeout: Individual request timeout in seconds
        """
        self.service_url = service_url.rstrip("/")
        self.retries_timeout = retries_timeout
        self.retries_attempts = retries_attempts
        self.request_timeout = request_timeout

    @classmethod
    def from_defaults(
        cls: Type[Requester], config: Optional[TctlConfig] = None
    ) -> Requester:
        """Instantiate a requester from config values."""
        if config is None:
            config = TctlConfig()

        service_url = config.get("http", "service_url")
        route_prefix = config.get("http", "route_prefix")
        if route_prefix:
            service_url = f"{service_url.rstrip('/')}/{route_prefix.strip('/')}"

        return cls(
            service_url=service_url,
            retries_timeout=config.get_int("http", "retries_timeout"),
            retries_attempts=config.get_int("http", "retries_attempts"),
            request_timeout=config.get_float("http", "request_timeout"),
        )

    def _should_retry_exception(self, exception: BaseException) -> bool:
        """Determine if an exception should trigger a retry."""
        logger.warning("Exception occurred", error=str(exception))
        if isinstance(exception, ServiceError):
            return exception.kind.retryable
        return False

    def _maybe_retry_async(self, func: Callable, tenacious: bool) -> Any:
        if not tenacious:
            return func

        retrying = tenacity.retry(
            stop=(
                tenacity.stop_after_attempt(self.retries_attempts)
                | tenacity.stop_after_delay(self.retries_timeout)
            ),
            wait=tenacity.wait_exponential_jitter(initial=1, exp_base=2, jitter=1),
            retry=tenacity.retry_if_exception(self._should_retry_exception),
            reraise=True,
        )(func)

        return retrying

    async def _send_request_async(
        self,
        session: aiohttp.ClientSession,
        app_route: str,
        message: dict,
        request_type: str,
    ) -> Tuple[int, Any]:
        route = self.service_url + app_route
        logger.debug("Sending request", route=route, request_type=request_type)

        headers = {
            "Content-Type": "application/json",
            "client-name": CLIENT_NAME,
            "client-version": __version__,
        }

        method_map = {
            "post": session.post,
            "get": session.get,
        }
        if request_type not in method_map:
            raise ValueError(
                f"request_type must be one of 'get' or 'post'. Got {request_type}"
            )
        method = method_map[request_type]

        kwargs: Dict[str, Any] = {
            "headers": headers,
            "timeout": aiohttp.ClientTimeout(total=self.request_timeout),
        }
        if request_type == "post":
            kwargs["json"] = message
        else:
            kwargs["params"] = {
                key: str(value) for key, value in message.items() if value is not None
            }

        try:
            async with method(route, **kwargs) as response:
                status_code, content = await self._get_content_async(response)
        except asyncio.TimeoutError as exc:
            raise InvalidResponse(
                ErrorKind.DEADLINE_EXCEEDED,
                f"{request_type.upper()} request through route {app_route} timed out "
                f"after {self.request_timeout}s",
            ) from exc
        except aiohttp.ClientError as exc:
            raise InvalidResponse(
                ErrorKind.UNAVAILABLE,
                f"{request_type.upper()} request through route {app_route} failed: {exc}",
            ) from exc

        if http_request_ok(status_code):
            return status_code, content

        kind = classify_error_response(status_code, content)
        error_class = InvalidResponse if kind.retryable else InvalidRequest
        raise error_class(
            kind,
            f"status code {status_code} from {request_type.upper()} request through "
            f"route {app_route}. Response content: {_error_message(content)}",
            status_code=status_code,
        )

    async def _get_content_async(
        self, response: aiohttp.ClientResponse
    ) -> Tuple[int, Any]:
        """Parse an aiohttp response, handling JSON and non-JSON content gracefully.

        Args:
            response: The aiohttp ClientResponse object to parse.

        Returns:
            Tuple of (status_code, content) where content is parsed JSON or raw text.
        """
        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                content = await response.json()
            except (json.decoder.JSONDecodeError, ValueError, aiohttp.ContentTypeError):
                # For cases where the response body is empty or malformed JSON
                content = await response.text()
        else:
            content = await response.text()
        return response.status, content

    async def send_request_async(
        self,
        session: aiohttp.ClientSession,
        app_route: str,
        message: dict,
        request_type: str,
        tenacious: bool = True,
    ) -> Tuple[int, Any]:
        """Send an async request to the workflow service.

        Args:
            session: An active aiohttp ClientSession for making requests.
            app_route: The API route to request (will be appended to base URL).
            message: Query parameters for 'get', JSON body for 'post'.
            request_type: HTTP method - 'get' or 'post'.
            tenacious: Whether to retry retryable failures with exponential backoff.

        Returns:
            Tuple of (status_code, response_content).

        Raises:
            InvalidRequest: For failures whose ErrorKind is not retryable.
            InvalidResponse: For retryable failures, after exhausting retries.
        """

        async def send_fn(
            session: aiohttp.ClientSession,
            app_route: str,
            message: dict,
            request_type: str,
        ) -> Tuple[int, Any]:
            return await self._send_request_async(
                session, app_route, message, request_type
            )

        send_method = self._maybe_retry_async(send_fn, tenacious)
        return await send_method(
            session=session,
            app_route=app_route,
            message=message,
            request_type=request_type,
        )
