"""OpenSubtitles REST endpoints on top of the rate-limited dispatcher."""

import logging
from typing import Any

from .errors import ConfigurationError
from .models import (
    DEFAULT_OK_STATUS_CEILING,
    ApiResponse,
    EncapsulatedLanguageList,
    EncapsulatedUserInfo,
    HttpResponse,
    LoginInfo,
    ResponseData,
    SearchResult,
    SubtitleDownloadInfo,
)
from .rate_limiter import RateLimiter
from .request_handler import RequestHandler, add_query_string
from .settings import Settings, get_settings
from .transport import RequestHelper

logger = logging.getLogger(__name__)


def _auth_headers(login: LoginInfo) -> dict[str, str]:
    if not login.token:
        raise ConfigurationError("Login token is missing")
    return {"Authorization": login.token}


class OpenSubtitlesApi:
    """One coroutine per OpenSubtitles endpoint."""

    def __init__(
        self,
        handler: RequestHandler,
        ok_status_ceiling: int = DEFAULT_OK_STATUS_CEILING,
        keep_partial_search_results: bool = False,
    ):
        self.handler = handler
        self.ok_status_ceiling = ok_status_ceiling
        self.keep_partial_search_results = keep_partial_search_results

    def _wrap(self, response: HttpResponse, model: Any = None, *context: str) -> ApiResponse:
        return ApiResponse(response, model, *context, ok_status_ceiling=self.ok_status_ceiling)

    async def log_in(self, username: str, password: str) -> ApiResponse[LoginInfo]:
        body = {"username": username, "password": password}
        response = await self.handler.send_request("/login", "POST", body)
        return self._wrap(response, LoginInfo)

    async def log_out(self, login: LoginInfo) -> bool:
        response = await self.handler.send_request("/logout", "DELETE", headers=_auth_headers(login))
        return self._wrap(response).ok

    async def get_user_info(self, login: LoginInfo) -> ApiResponse[EncapsulatedUserInfo]:
        response = await self.handler.send_request("/infos/user", "GET", headers=_auth_headers(login))
        return self._wrap(response, EncapsulatedUserInfo)

    async def get_subtitle_link(
        self, file_id: int, sub_format: str | None, login: LoginInfo
    ) -> ApiResponse[SubtitleDownloadInfo]:
        body: dict[str, Any] = {"file_id": file_id}
        if sub_format:
            body["sub_format"] = sub_format
        response = await self.handler.send_request("/download", "POST", body, _auth_headers(login))
        return self._wrap(response, SubtitleDownloadInfo, f"file id: {file_id}")

    async def download_subtitle(self, url: str) -> HttpResponse:
        """Fetch a pre-signed download link; no API key, no rate tracking."""
        return await self.handler.send_request(url, "GET")

    async def get_language_list(self) -> ApiResponse[EncapsulatedLanguageList]:
        response = await self.handler.send_request("/infos/languages", "GET")
        return self._wrap(response, EncapsulatedLanguageList)

    async def search_subtitles(self, options: dict[str, Any]) -> ApiResponse[list[ResponseData]]:
        """Run a search and collect every page into one list.

        Stops on a failed page, on ``total_pages == 0``, on an empty page, or
        once the next page would exceed the total reported by the first page.
        When a page fails the returned response carries that page's status,
        and the items gathered so far are dropped unless
        ``keep_partial_search_results`` is set.
        """
        max_pages = -1
        current = 1
        collected: list[ResponseData] = []
        failed = False

        while True:
            params = dict(options)
            if current > 1:
                params["page"] = current

            url = add_query_string("/subtitles", params)
            response = await self.handler.send_request(url, "GET")
            page = self._wrap(response, SearchResult, f"url: {url}", f"page: {current}")

            if not page.ok or page.data is None:
                failed = True
                logger.debug("Search page %d failed: %s", current, page.code)
                break

            result = page.data
            if result.total_pages == 0 or not result.data:
                break

            if max_pages == -1:
                max_pages = result.total_pages

            collected.extend(result.data)
            current = max(current, result.page) + 1
            if current > max_pages:
                break

        if failed and collected and not self.keep_partial_search_results:
            logger.warning("Discarding %d results after a failed search page", len(collected))
            collected = []

        return ApiResponse(
            response, data=collected, ok_status_ceiling=self.ok_status_ceiling
        )

    async def aclose(self):
        await self.handler.helper.aclose()

    async def __aenter__(self) -> "OpenSubtitlesApi":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


def create_api(
    settings: Settings | None = None,
    api_key: str | None = None,
    rate_limiter: RateLimiter | None = None,
    helper: RequestHelper | None = None,
) -> OpenSubtitlesApi:
    """Assemble transport, rate limiter, dispatcher and endpoints from settings."""
    settings = settings or get_settings()
    handler = RequestHandler(
        helper or RequestHelper(timeout=settings.timeout),
        api_key or settings.api_key,
        rate_limiter=rate_limiter,
        base_url=settings.base_url,
        rate_limit_max_attempts=settings.rate_limit_max_attempts,
        bad_gateway_max_attempts=settings.bad_gateway_max_attempts,
        client_error_delay=settings.client_error_delay,
    )
    return OpenSubtitlesApi(
        handler,
        ok_status_ceiling=settings.ok_status_ceiling,
        keep_partial_search_results=settings.keep_partial_search_results,
    )
