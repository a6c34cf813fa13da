"""Subtitle provider: session handling, search and download on top of the API."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .api import OpenSubtitlesApi, create_api
from .cache import Cache
from .errors import (
    AuthenticationError,
    DownloadLimitExceededError,
    RequestFailedError,
    SubtitleNotFoundError,
    UnsupportedLanguageError,
    truncate_body,
)
from .models import ApiResponse, ErrorResponse, LoginInfo, ResponseData, SubtitleDownloadInfo
from .movie_hash import compute_file_hash
from .settings import Settings, get_settings
from .subtitle_id import build_subtitle_id, parse_subtitle_id

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Open Subtitles"
SUBTITLE_FORMAT = "srt"
LANGUAGE_ALIASES = {"zh": "zh-CN", "pt": "pt-PT"}
LIMIT_LOG_INTERVAL = 60  # seconds between "limit reached" log lines for automated searches
INVALID_API_KEY_MESSAGE = "You cannot consume this service"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_imdb_id(value: str | None) -> int:
    """'tt0133093' -> 133093; anything unparseable -> 0."""
    if not value:
        return 0
    try:
        return int(value.strip().lstrip("t"))
    except ValueError:
        return 0


@dataclass
class SubtitleSearchRequest:
    """What the media library knows about the item that needs subtitles."""

    language: str
    media_path: str
    content_type: str = "movie"  # "movie" or "episode"
    three_letter_language: str | None = None
    imdb_id: str | None = None
    series_name: str | None = None
    season_number: int | None = None
    episode_number: int | None = None
    is_perfect_match: bool = False
    is_automated: bool = False

    @property
    def is_episode(self) -> bool:
        return self.content_type == "episode"


@dataclass
class RemoteSubtitleInfo:
    id: str
    name: str | None
    format: str
    language: str
    provider_name: str = PROVIDER_NAME
    author: str | None = None
    comment: str | None = None
    community_rating: float | None = None
    download_count: int | None = None
    date_created: datetime | None = None
    is_hash_match: bool | None = None
    hearing_impaired: bool | None = None
    forced: bool | None = None
    machine_translated: bool | None = None
    ai_translated: bool | None = None
    frame_rate: float | None = None


@dataclass
class SubtitleResponse:
    format: str
    language: str
    content: str
    is_forced: bool = False
    is_hearing_impaired: bool = False


class OpenSubtitlesProvider:
    """Searches and downloads subtitles for one OpenSubtitles account.

    Keeps the login session until its token expires, tracks the account's
    daily download quota, and remembers file ids that came back empty so
    automated searches stop offering them.
    """

    name = PROVIDER_NAME

    def __init__(
        self,
        api: OpenSubtitlesApi,
        username: str | None = None,
        password: str | None = None,
        cache: Cache | None = None,
    ):
        self.api = api
        self.username = username
        self.password = password
        self.cache = cache
        self.credentials_invalid = False
        self._login: LoginInfo | None = None
        self._limit_reset: datetime | None = None
        self._last_limit_log: float | None = None
        self._languages: list[str] | None = None
        self._bad_file_ids: set[int] = set()

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, api: OpenSubtitlesApi | None = None
    ) -> "OpenSubtitlesProvider":
        settings = settings or get_settings()
        return cls(
            api or create_api(settings),
            settings.username,
            settings.password,
            cache=Cache(settings.cache_dir, skip_cache=settings.skip_cache),
        )

    @property
    def login_info(self) -> LoginInfo | None:
        return self._login

    def configuration_changed(self, username: str | None, password: str | None) -> None:
        """Swap credentials; the next request logs in again."""
        self.username = username
        self.password = password
        self.credentials_invalid = False
        self._login = None

    async def login(self) -> None:
        if self._login is not None and _utcnow() < self._login.expiration_date:
            return

        if not self.username or not self.password:
            raise AuthenticationError("Account username and/or password are not set up")

        if self.credentials_invalid:
            logger.debug("Skipping login due to credentials being invalid")
            return

        response = await self.api.log_in(self.username, self.password)
        if not response.ok:
            # 400 = logged in with an email address, 401 = wrong credentials
            invalid = (response.code == 400 and "@" in self.username) or response.code == 401
            if invalid:
                logger.error(
                    "Login failed due to invalid credentials, invalidating them (%s - %s)",
                    response.code, truncate_body(response.body),
                )
                self.credentials_invalid = True
            else:
                logger.error("Login failed: %s - %s", response.code, truncate_body(response.body))
            raise AuthenticationError(
                "Authentication to OpenSubtitles failed.",
                status_code=response.code,
                body=response.body,
                credentials_invalid=invalid,
            )

        self._login = response.data
        await self.update_user_info()
        logger.debug(
            "Logged in, download limit reset at %s, token expiration at %s",
            self._limit_reset, self._login.expiration_date if self._login else None,
        )

    async def update_user_info(self) -> None:
        if self._login is None:
            return
        response = await self.api.get_user_info(self._login)
        if response.ok:
            self._login.user = response.data.data if response.data else None
            if self._login.user is not None:
                self._limit_reset = _as_utc(self._login.user.reset_time_utc)

    def _remaining_downloads(self) -> int | None:
        if self._login is None or self._login.user is None:
            return None
        return self._login.user.remaining_downloads

    async def _check_download_quota(self) -> None:
        remaining = self._remaining_downloads()
        if remaining is None or remaining > 0:
            return

        if self._limit_reset is not None and self._limit_reset < _utcnow():
            logger.debug("Reset time passed, updating user info")
            await self.update_user_info()
            remaining = self._remaining_downloads()
            if remaining is None or remaining > 0:
                return

        logger.error("OpenSubtitles download limit reached")
        raise DownloadLimitExceededError("OpenSubtitles download limit reached", self._limit_reset)

    async def _fetch_language_codes(self, endpoint: str, params: dict | None = None) -> list[str]:
        response = await self.api.get_language_list()
        if not response.ok or response.data is None or response.data.data is None:
            raise RequestFailedError(
                endpoint,
                response.code,
                response.body,
                message=f"Failed to get language list: {response.code}",
            )
        return [x.language_code for x in response.data.data if x.language_code and x.language_code.strip()]

    async def get_language_codes(self) -> list[str]:
        if not self._languages:
            fetch = self.cache(self._fetch_language_codes) if self.cache else self._fetch_language_codes
            self._languages = await fetch("/infos/languages", {})
        return self._languages

    async def get_language(self, language: str, media_path: str = "") -> str:
        """Map a library language code to the one OpenSubtitles expects.

        Tries the code itself, then its base language (``pt-AO`` -> ``pt``),
        applying ``LANGUAGE_ALIASES`` to each.
        """
        candidates = [LANGUAGE_ALIASES.get(language, language)]
        if "-" in language:
            base = language.split("-")[0]
            candidates += [base, LANGUAGE_ALIASES.get(base, base)]

        codes = await self.get_language_codes()
        by_lower = {code.lower(): code for code in codes}
        for candidate in candidates:
            found = by_lower.get(candidate.lower())
            if found is not None:
                return found

        raise UnsupportedLanguageError(f"Language '{language}' is not supported ({media_path})")

    async def _movie_hash(self, media_path: str) -> str | None:
        if Path(media_path).suffix.lower() == ".strm":
            return None
        try:
            return await asyncio.to_thread(compute_file_hash, media_path)
        except OSError as e:
            raise OSError(f"Failed to compute hash for {media_path}") from e

    def _build_options(
        self, request: SubtitleSearchRequest, language: str, movie_hash: str | None, imdb_id: int
    ) -> dict[str, str]:
        options = {"languages": language}
        if request.is_perfect_match and movie_hash:
            options["moviehash"] = movie_hash
            return options

        options["type"] = "episode" if request.is_episode else "movie"
        if movie_hash:
            options["moviehash"] = movie_hash

        # Prefer the IMDb id, fall back to the file name
        if imdb_id:
            options["imdb_id"] = str(imdb_id)
        else:
            options["query"] = Path(request.media_path).name
            if request.is_episode:
                if request.season_number is not None:
                    options["season_number"] = str(request.season_number)
                if request.episode_number is not None:
                    options["episode_number"] = str(request.episode_number)
        return options

    def _keep(self, item: ResponseData, request: SubtitleSearchRequest, imdb_id: int) -> bool:
        attrs = item.attributes
        if attrs is None or not attrs.files or attrs.files[0].file_id is None:
            return False
        if request.is_automated and attrs.files[0].file_id in self._bad_file_ids:
            return False

        details = attrs.feature_details
        if details is None:
            return False
        if details.feature_type != ("Episode" if request.is_episode else "Movie"):
            return False
        if request.is_episode:
            if details.season_number != request.season_number or details.episode_number != request.episode_number:
                return False
        elif imdb_id and details.imdb_id != imdb_id:
            return False

        return not request.is_perfect_match or bool(attrs.moviehash_match)

    async def search(self, request: SubtitleSearchRequest) -> list[RemoteSubtitleInfo]:
        await self.login()

        if request.is_automated and self._login is None:
            logger.debug("Returning empty results because login failed")
            return []

        remaining = self._remaining_downloads()
        if request.is_automated and remaining is not None and remaining <= 0:
            now = time.monotonic()
            if self._last_limit_log is None or now - self._last_limit_log > LIMIT_LOG_INTERVAL:
                logger.info("Daily download limit reached, returning no results for automated task")
                self._last_limit_log = now
            return []

        if request.is_episode and (
            request.season_number is None or request.episode_number is None or not request.series_name
        ):
            logger.debug("Episode information missing")
            return []

        if not request.media_path:
            logger.debug("Path missing")
            return []

        imdb_id = _parse_imdb_id(request.imdb_id)
        language = await self.get_language(request.language, request.media_path)
        movie_hash = await self._movie_hash(request.media_path)
        options = self._build_options(request, language, movie_hash, imdb_id)

        logger.debug("Search query: %s", options)
        response: ApiResponse[list[ResponseData]] = await self.api.search_subtitles(options)
        if not response.ok:
            logger.error("Invalid response: %s - %s", response.code, truncate_body(response.body))
            return []

        id_language = request.three_letter_language or request.language
        results = []
        for item in response.data or []:
            if not self._keep(item, request, imdb_id):
                continue
            attrs = item.attributes
            results.append(
                RemoteSubtitleInfo(
                    id=build_subtitle_id(
                        SUBTITLE_FORMAT,
                        id_language,
                        attrs.files[0].file_id,
                        bool(attrs.hearing_impaired),
                        bool(attrs.foreign_parts_only),
                    ),
                    name=attrs.release,
                    format=SUBTITLE_FORMAT,
                    language=id_language,
                    author=attrs.uploader.name if attrs.uploader else None,
                    comment=attrs.comments,
                    community_rating=attrs.ratings,
                    download_count=attrs.download_count,
                    date_created=attrs.upload_date,
                    is_hash_match=attrs.moviehash_match,
                    hearing_impaired=attrs.hearing_impaired,
                    forced=attrs.foreign_parts_only,
                    machine_translated=attrs.machine_translated,
                    ai_translated=attrs.ai_translated,
                    frame_rate=attrs.fps,
                )
            )
        return results

    async def get_subtitles(self, sub_id: str) -> SubtitleResponse:
        """Download the subtitle behind an identifier built by ``search``."""
        return await self._get_subtitles(sub_id, reauthenticated=False)

    async def _get_subtitles(self, sub_id: str, reauthenticated: bool) -> SubtitleResponse:
        parsed = parse_subtitle_id(sub_id)

        await self._check_download_quota()
        await self.login()
        if self._login is None:
            raise AuthenticationError("Unable to login")

        info = await self.api.get_subtitle_link(parsed.file_id, parsed.format, self._login)

        if not info.ok:
            if info.code == 406:
                details = _parse_download_info(info.body)
                if details is not None and details.remaining <= 0:
                    if details.reset_time_utc is not None:
                        self._limit_reset = _as_utc(details.reset_time_utc)
                    if self._login.user is not None:
                        self._login.user.remaining_downloads = 0
                    logger.error("OpenSubtitles download limit reached")
                    raise DownloadLimitExceededError(
                        "OpenSubtitles download limit reached", self._limit_reset
                    )

            if info.code == 401 and not reauthenticated:
                # Token expired early; log in again once
                self._login = None
                return await self._get_subtitles(sub_id, reauthenticated=True)

            raise RequestFailedError(
                "/download",
                info.code,
                info.body,
                message=(
                    f"Invalid response for file {parsed.file_id}: {info.code}\n\n"
                    f"{truncate_body(info.body)}"
                ),
            )

        data = info.data
        if data is not None and data.reset_time_utc is not None:
            self._limit_reset = _as_utc(data.reset_time_utc)
            logger.debug("Updated expiration time to %s", self._limit_reset)

        if self._login.user is not None and data is not None:
            self._login.user.remaining_downloads = data.remaining
            logger.info("Remaining subtitle downloads: %s", data.remaining)

        if data is None or not data.link or not data.link.strip():
            raise SubtitleNotFoundError(
                f"Failed to obtain download link for file {parsed.file_id}: {info.code} (empty response)"
            )

        res = await self.api.download_subtitle(data.link)
        if res.status_code == 200 and not res.body.strip():
            self._bad_file_ids.add(parsed.file_id)
            raise SubtitleNotFoundError(
                f"Subtitle with Id {parsed.file_id} could not be downloaded: {res.status_code}"
                " - this is most likely a broken subtitle"
            )
        if res.status_code != 200:
            raise RequestFailedError(
                data.link,
                res.status_code,
                res.body,
                message=f"Subtitle with Id {parsed.file_id} could not be downloaded: {res.status_code}",
            )

        return SubtitleResponse(
            format=parsed.format,
            language=parsed.language,
            content=res.body,
            is_forced=parsed.forced,
            is_hearing_impaired=parsed.hearing_impaired,
        )


def _parse_download_info(body: str) -> SubtitleDownloadInfo | None:
    try:
        return SubtitleDownloadInfo.model_validate_json(body)
    except ValidationError:
        return None


def _login_error_message(code: int, body: str) -> str:
    msg = f"{code} - {body}" if len(body) < 150 else str(code)
    if '"message":' in body:
        try:
            err = ErrorResponse.model_validate_json(body)
        except ValidationError:
            return msg
        if err.message == INVALID_API_KEY_MESSAGE:
            return "Invalid API key provided"
        if err.message:
            return err.message
    return msg


async def validate_login_info(api: OpenSubtitlesApi, username: str, password: str) -> int:
    """Check credentials by logging in and out; returns the allowed daily downloads."""
    if not username or not password:
        raise AuthenticationError("Username and password are required")

    response = await api.log_in(username, password)
    if not response.ok:
        raise AuthenticationError(
            _login_error_message(response.code, response.body),
            status_code=response.code,
            body=response.body,
        )

    login = response.data
    if login is not None and login.token:
        await api.log_out(login)

    if login is None or login.user is None:
        return 0
    return login.user.allowed_downloads
