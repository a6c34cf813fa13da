"""Rate-limited dispatcher for OpenSubtitles API requests."""

import asyncio
import logging
from typing import Any
from urllib.parse import quote_plus, urlencode

from .errors import ConfigurationError
from .models import HttpResponse
from .rate_limiter import RateLimiter
from .settings import BASE_API_URL
from .transport import RequestHelper

logger = logging.getLogger(__name__)

# Defaults, overridable through Settings
RATE_LIMIT_MAX_ATTEMPTS = 5
BAD_GATEWAY_MAX_ATTEMPTS = 4
BAD_GATEWAY_DELAY = 0.5
CLIENT_ERROR_DELAY = 1.0


def add_query_string(path: str, params: dict[str, Any]) -> str:
    """Append params to path, sorted by key and form-encoded."""
    if not params:
        return path
    query = urlencode(sorted((str(k), str(v)) for k, v in params.items()), quote_via=quote_plus)
    return f"{path}?{query}"


class RequestHandler:
    """Sends requests through the transport helper under the API rate limits.

    Requests to the API host get the ``Api-Key`` header and count against the
    rate limiter; anything else (e.g. pre-signed download links) is sent as-is.
    429 and 502 responses are retried a bounded number of times and the last
    response is always returned.
    """

    def __init__(
        self,
        helper: RequestHelper,
        api_key: str | None,
        rate_limiter: RateLimiter | None = None,
        base_url: str = BASE_API_URL,
        rate_limit_max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS,
        bad_gateway_max_attempts: int = BAD_GATEWAY_MAX_ATTEMPTS,
        client_error_delay: float = CLIENT_ERROR_DELAY,
    ):
        self.helper = helper
        self.api_key = api_key
        self.rate_limiter = rate_limiter or RateLimiter()
        self.base_url = base_url.rstrip("/")
        self.rate_limit_max_attempts = rate_limit_max_attempts
        self.bad_gateway_max_attempts = bad_gateway_max_attempts
        self.client_error_delay = client_error_delay

    def _resolve(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        ep = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        return f"{self.base_url}{ep}"

    async def send_request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        """Send a request, waiting for and retrying on the API's rate limits.

        Args:
            endpoint: API path such as "/subtitles?languages=en", or an absolute URL
            method: HTTP method
            body: JSON-serializable request body (ignored for GET)
            headers: Extra request headers; "Authorization" is sent as a bearer token

        Returns:
            The last HttpResponse received, with ``reason`` set from ``x-reason``.

        Raises:
            ConfigurationError: The request targets the API and no API key is set.
        """
        url = self._resolve(endpoint)
        is_api = url.startswith(self.base_url)
        headers = dict(headers or {})

        if is_api:
            if not self.api_key or not self.api_key.strip():
                raise ConfigurationError("Provided API key is blank")
            if not any(k.lower() == "api-key" for k in headers):
                headers["Api-Key"] = self.api_key

        attempt = 1
        while True:
            if is_api:
                await self.rate_limiter.acquire()

            response = await self.helper.send(url, method, body, headers)

            if not is_api:
                return response

            self.rate_limiter.update(response.headers)
            status = response.status_code

            if status == 429 and attempt < self.rate_limit_max_attempts:
                delay = self.rate_limiter.retry_delay(response.header("retry-after"))
                logger.warning(
                    "Rate limited on %s %s, retrying in %ss (%d/%d)",
                    method, endpoint, delay, attempt, self.rate_limit_max_attempts,
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            if status == 502 and attempt < self.bad_gateway_max_attempts:
                logger.debug(
                    "Bad gateway on %s %s, retrying (%d/%d)",
                    method, endpoint, attempt, self.bad_gateway_max_attempts,
                )
                await asyncio.sleep(BAD_GATEWAY_DELAY)
                attempt += 1
                continue

            if 400 <= status <= 499 and self.client_error_delay > 0:
                await asyncio.sleep(self.client_error_delay)

            response.reason = response.header("x-reason") or ""
            return response
