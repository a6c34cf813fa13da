"""HTTP transport for the OpenSubtitles client using httpx."""

from importlib.metadata import PackageNotFoundError, version
from typing import Any

import httpx

from .models import HttpResponse

PRODUCT_NAME = "opensubtitles-fetcher"

try:
    __version__ = version(PRODUCT_NAME)
except PackageNotFoundError:
    __version__ = "0.0.0"


class RequestHelper:
    """Performs a single HTTP request.

    Attaches the default ``User-Agent`` and ``Accept`` headers, turns an
    ``Authorization`` header into a bearer credential and returns the body,
    lower-cased headers and status code. Status codes are not interpreted and
    nothing is retried; transport errors propagate as raised by httpx.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        user_agent: str | None = None,
        timeout: float = 30.0,
    ):
        self.user_agent = user_agent or f"{PRODUCT_NAME}/{__version__}"
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def _build_headers(self, headers: dict[str, str] | None) -> httpx.Headers:
        request_headers = httpx.Headers()
        for key, value in (headers or {}).items():
            if key.lower() == "authorization":
                request_headers["Authorization"] = f"Bearer {value}"
            else:
                request_headers[key] = value

        if "user-agent" not in request_headers:
            request_headers["User-Agent"] = self.user_agent
        if "accept" not in request_headers:
            request_headers["Accept"] = "*/*"
        return request_headers

    async def send(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        method = method.upper()
        json_body = body if method != "GET" and body is not None else None

        resp = await self._client.request(
            method,
            url,
            json=json_body,
            headers=self._build_headers(headers),
        )

        response_headers: dict[str, str] = {}
        for key, value in resp.headers.multi_items():
            response_headers.setdefault(key.lower(), value)

        return HttpResponse(body=resp.text, status_code=resp.status_code, headers=response_headers)

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "RequestHelper":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
