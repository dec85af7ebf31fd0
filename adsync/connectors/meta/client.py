"""AdSync - Meta API Client.

Handles transport, retry/backoff, error classification, and pagination.
One instance is built at process start and shared by every account; the
access token is supplied per request by the caller that owns it.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from adsync.config import settings
from adsync.core.logging import get_logger

logger = get_logger("meta.client")

AUTH_ERROR_CODES = {102, 190}
RATE_LIMIT_ERROR_CODES = {4, 17, 32, 613, 80004}


class MetaAPIError(Exception):
    """Raised when Meta API returns an error."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_code: int = 0,
        endpoint: str = "",
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.endpoint = endpoint
        super().__init__(message)


class MetaAuthError(MetaAPIError):
    """Credential rejected. Retrying cannot heal it; the user must reconnect."""

    retryable = False


class MetaRateLimitError(MetaAPIError):
    """Platform throttling (error codes 4/17/32/613 or HTTP 429)."""


class MetaTransientError(MetaAPIError):
    """Server-side or network failure."""


class MetaTimeoutError(MetaTransientError):
    """The platform never responded within the request timeout."""


class MetaRequestFailed(MetaAPIError):
    """All attempts failed. Carries the last underlying error."""

    retryable = False

    def __init__(self, endpoint: str, attempts: int, last_error: MetaAPIError):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{endpoint} failed after {attempts} attempts: {last_error}",
            status_code=last_error.status_code,
            error_code=last_error.error_code,
            endpoint=endpoint,
        )


def classify_error(
    status_code: int, body: Dict[str, Any], endpoint: str
) -> MetaAPIError:
    """Map an error response onto the error taxonomy."""
    error = body.get("error") or {}
    message = error.get("message") or f"HTTP {status_code}"
    try:
        code = int(error.get("code") or 0)
    except (TypeError, ValueError):
        code = 0

    if code in AUTH_ERROR_CODES or status_code == 401:
        return MetaAuthError(message, status_code, code, endpoint)
    if code in RATE_LIMIT_ERROR_CODES or status_code == 429:
        return MetaRateLimitError(message, status_code, code, endpoint)
    if status_code >= 500:
        return MetaTransientError(message, status_code, code, endpoint)
    return MetaAPIError(message, status_code, code, endpoint)


class MetaClient:
    """Async HTTP client for Meta Marketing API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        rate_limit_base_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        self.base_url = (base_url or settings.meta_graph_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.meta_request_timeout
        self.max_retries = max_retries or settings.meta_max_retries
        self.retry_base_delay = (
            retry_base_delay
            if retry_base_delay is not None
            else settings.meta_retry_base_delay
        )
        self.rate_limit_base_delay = (
            rate_limit_base_delay
            if rate_limit_base_delay is not None
            else settings.meta_rate_limit_base_delay
        )
        self._transport = transport
        self.sleep = sleep or asyncio.sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _backoff(self, error: MetaAPIError, attempt: int) -> float:
        base = (
            self.rate_limit_base_delay
            if isinstance(error, MetaRateLimitError)
            else self.retry_base_delay
        )
        return base * (2 ** (attempt - 1))

    # ── Core Request Method ──

    async def _send_once(
        self,
        method: str,
        url: str,
        access_token: str,
        params: Dict[str, Any] | None,
        endpoint: str,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            resp = await client.request(method, url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise MetaTimeoutError(
                f"No response within {self.timeout}s", endpoint=endpoint
            ) from e
        except httpx.RequestError as e:
            raise MetaTransientError(
                f"Request error: {type(e).__name__}", endpoint=endpoint
            ) from e

        try:
            body = resp.json()
        except ValueError:
            if resp.status_code < 400:
                # Proxy or gateway pages come back as 200 HTML
                raise MetaTransientError(
                    "Invalid JSON response", resp.status_code, endpoint=endpoint
                )
            body = {}

        if resp.status_code >= 400 or (isinstance(body, dict) and "error" in body):
            raise classify_error(resp.status_code, body if isinstance(body, dict) else {}, endpoint)
        if not isinstance(body, dict):
            raise MetaAPIError(
                "Unexpected response payload", resp.status_code, endpoint=endpoint
            )
        return body

    async def request(
        self,
        method: str,
        path_or_url: str,
        access_token: str,
        params: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling.

        Every error except an authentication failure is retried up to
        `max_retries` attempts, sleeping base * 2^(attempt-1) in between.
        Nothing is slept after the last attempt.
        """
        url = (
            path_or_url
            if path_or_url.startswith("http")
            else self.url(path_or_url)
        )
        endpoint = httpx.URL(url).path
        last_error = MetaAPIError("No attempt made", endpoint=endpoint)

        for attempt in range(1, self.max_retries + 1):
            started = time.monotonic()
            try:
                body = await self._send_once(method, url, access_token, params, endpoint)
                logger.debug(
                    f"{method} {endpoint} ok",
                    extra={
                        "endpoint": endpoint,
                        "attempt": attempt,
                        "duration_ms": round((time.monotonic() - started) * 1000),
                    },
                )
                return body
            except MetaAPIError as e:
                last_error = e
                if not e.retryable:
                    logger.error(
                        f"{type(e).__name__} on {endpoint}: {e}. Not retrying",
                        extra={"endpoint": endpoint, "status_code": e.status_code},
                    )
                    raise
                if attempt >= self.max_retries:
                    break
                wait = self._backoff(e, attempt)
                logger.warning(
                    f"{type(e).__name__} on {endpoint}: {e}. "
                    f"Retrying in {wait}s (attempt {attempt}/{self.max_retries})",
                    extra={"endpoint": endpoint, "attempt": attempt},
                )
                await self.sleep(wait)

        logger.error(
            f"Giving up on {endpoint} after {self.max_retries} attempts: {last_error}",
            extra={"endpoint": endpoint},
        )
        raise MetaRequestFailed(endpoint, self.max_retries, last_error) from last_error

    # ── Pagination ──

    async def paginated_get(
        self,
        path: str,
        access_token: str,
        params: Dict[str, Any] | None = None,
        max_pages: int | None = None,
    ) -> List[Dict[str, Any]]:
        """Fetch all pages of a paginated endpoint."""
        all_data: List[Dict[str, Any]] = []
        max_pages = max_pages or settings.meta_max_pages
        current = path

        for page in range(max_pages):
            result = await self.request(
                "GET", current, access_token, params if page == 0 else None
            )
            all_data.extend(result.get("data") or [])

            # Check for next page
            next_url = (result.get("paging") or {}).get("next")
            if not next_url:
                break
            current = next_url
        else:
            logger.warning(f"Stopped paging {path} after {max_pages} pages")

        logger.info(f"Fetched {len(all_data)} records from {path}")
        return all_data
