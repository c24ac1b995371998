"""Shared HTTP plumbing: rate limiting, retries and status code mapping."""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple, Type

import httpx
import structlog
from asyncio_throttle import Throttler
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tfe_sync.clients.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ClientError,
    ConflictError,
    NetworkError,
    RateLimitError,
    ResourceNotFoundError,
    ServerError,
)

logger = structlog.get_logger(__name__)

_STATUS_ERRORS: Dict[int, Tuple[Type[APIError], str]] = {
    401: (AuthenticationError, "Authentication failed"),
    403: (AuthorizationError, "Authorization failed"),
    404: (ResourceNotFoundError, "Resource not found"),
    409: (ConflictError, "Conflict with current state"),
}


class BaseAPIClient(ABC):
    """Async HTTP client base shared by the API clients.

    Subclasses provide authentication headers and a health check; requests
    go through a per-minute throttle and failures are mapped onto the
    ``APIError`` hierarchy.
    """

    content_type = "application/json"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int = 30,
        rate_limit_per_minute: int = 600,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API root, e.g. ``https://app.terraform.io/api/v2``
            timeout_seconds: Per-request timeout
            rate_limit_per_minute: Request budget per rolling minute
            max_retries: Retries after the first attempt for retryable errors
            retry_delay_seconds: Base delay for exponential backoff
            user_agent: Overrides the default ``User-Agent`` header
            transport: Custom httpx transport, e.g. ``httpx.MockTransport``
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.rate_limit_per_minute = rate_limit_per_minute
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "User-Agent": user_agent or self._default_user_agent(),
                "Accept": self.content_type,
                "Content-Type": self.content_type,
            },
            follow_redirects=True,
            transport=transport,
        )
        self._throttler = Throttler(rate_limit=rate_limit_per_minute, period=60)

        self._request_count = 0
        self._error_count = 0
        self._last_request_time: Optional[float] = None

        self._logger = logger.bind(client_type=type(self).__name__, base_url=self.base_url)

    async def __aenter__(self) -> "BaseAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the underlying connection pool."""
        await self._client.aclose()

    @abstractmethod
    def _get_auth_headers(self) -> Dict[str, str]:
        """Headers that authenticate a single request."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the API answers an authenticated request."""

    @staticmethod
    def _default_user_agent() -> str:
        from tfe_sync.version import __version__
        return f"tfe-workspace-sync/{__version__}"

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send one throttled request and return the successful response.

        Raises:
            NetworkError: If no response was received
            APIError: The subclass matching a non-2xx status code
        """
        async with self._throttler:
            self._request_count += 1
            self._last_request_time = time.time()
            request_id = f"req_{self._request_count}"
            log = self._logger.bind(request_id=request_id, method=method, path=path)

            log.debug("Sending API request", params=params, has_body=json_data is not None)
            try:
                response = await self._client.request(
                    method,
                    f"{self.base_url}/{path.lstrip('/')}",
                    params=params,
                    json=json_data,
                    headers=self._get_auth_headers(),
                )
            except httpx.RequestError as e:
                self._error_count += 1
                log.error("Network error during API request", error=str(e))
                raise NetworkError(f"Network error: {e}") from e

            log.debug("API request completed", status_code=response.status_code)
            if response.is_success:
                return response

            self._error_count += 1
            raise self._error_for_response(response)

    async def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Like ``_request`` but decodes the JSON body."""
        response = await self._request(method, path, params=params, json_data=json_data)
        try:
            return response.json()
        except ValueError as e:
            raise APIError(f"Failed to parse JSON response: {e}") from e

    @staticmethod
    def _error_for_response(response: httpx.Response) -> APIError:
        status = response.status_code
        if status in _STATUS_ERRORS:
            error_class, message = _STATUS_ERRORS[status]
            return error_class(message, status_code=status, response_text=response.text)
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            return RateLimitError(
                "Rate limit exceeded",
                status_code=status,
                response_text=response.text,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if 400 <= status < 500:
            return ClientError(
                f"Client error: {status}", status_code=status, response_text=response.text
            )
        if 500 <= status < 600:
            return ServerError(
                f"Server error: {status}", status_code=status, response_text=response.text
            )
        return APIError(
            f"Unexpected status code: {status}", status_code=status, response_text=response.text
        )

    async def with_retry(
        self,
        operation_name: str,
        operation: Callable[[], Any],
        retry_on_rate_limit: bool = True,
    ) -> Any:
        """Run ``operation`` with exponential backoff.

        Server, network and (optionally) rate limit errors are retried up to
        ``max_retries`` times. Everything else, including not-found, is
        raised from the first attempt. A 429 with a ``Retry-After`` header
        waits that many seconds instead of the backoff delay.

        Args:
            operation_name: Label used in log events
            operation: Zero-argument callable returning a value or awaitable
            retry_on_rate_limit: Whether 429 responses are retried
        """
        retryable: Tuple[Type[APIError], ...] = (ServerError, NetworkError)
        if retry_on_rate_limit:
            retryable += (RateLimitError,)

        backoff = wait_exponential(
            multiplier=self.retry_delay_seconds,
            min=self.retry_delay_seconds,
            max=60,
        )

        def wait(retry_state: RetryCallState) -> float:
            # A 429 may tell us how long to back off for
            error = retry_state.outcome.exception()
            if isinstance(error, RateLimitError) and error.retry_after:
                self._logger.info(
                    "Rate limited, waiting before retry",
                    operation=operation_name,
                    retry_after=error.retry_after,
                )
                return float(error.retry_after)
            return backoff(retry_state)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait,
                retry=retry_if_exception_type(retryable),
                sleep=asyncio.sleep,
                reraise=True,
            ):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    if attempt_number > 1:
                        self._logger.debug(
                            "Retrying operation", operation=operation_name, attempt=attempt_number
                        )

                    result = operation()
                    if inspect.isawaitable(result):
                        result = await result
                    return result

        except ResourceNotFoundError:
            raise
        except APIError as e:
            self._logger.error(
                "Operation failed",
                operation=operation_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    def get_stats(self) -> Dict[str, Any]:
        """Request counters for debug logging."""
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": self._error_count / max(self._request_count, 1),
            "last_request_time": self._last_request_time,
            "rate_limit_per_minute": self.rate_limit_per_minute,
        }
