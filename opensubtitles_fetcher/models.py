"""Data models and constants for the OpenSubtitles client."""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import ResponseParseError

DEFAULT_OK_STATUS_CEILING = 299
EXPIRED = datetime.min.replace(tzinfo=timezone.utc)

T = TypeVar("T")


@dataclass
class HttpResponse:
    """Raw response returned by the transport helper and the dispatcher."""

    body: str
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    reason: str = ""

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


_UNSET: Any = object()


class ApiResponse(Generic[T]):
    """Response from the API with its body parsed into ``model`` on demand.

    The body is only parsed when the status is ok. A failed response with an
    empty body carries the server's ``x-reason`` as its body instead.
    """

    def __init__(
        self,
        response: HttpResponse,
        model: Any = None,
        *context: str,
        data: Any = _UNSET,
        ok_status_ceiling: int = DEFAULT_OK_STATUS_CEILING,
    ):
        self.code = response.status_code
        self.body = response.body
        self.context = context
        self._model = model
        self._ok_status_ceiling = ok_status_ceiling
        self._data = data
        if not self.ok and not (self.body or "").strip() and response.reason.strip():
            self.body = response.reason

    @property
    def ok(self) -> bool:
        return 200 <= self.code <= self._ok_status_ceiling

    @property
    def data(self) -> T | None:
        if self._data is _UNSET:
            self._data = self._parse()
        return self._data

    def _parse(self) -> T | None:
        if not self.ok or self._model is None:
            return None
        try:
            return TypeAdapter(self._model).validate_json(self.body)
        except ValidationError as e:
            raise ResponseParseError(self.code, self.body, self.context) from e

    def __repr__(self) -> str:
        return f"ApiResponse(code={self.code}, ok={self.ok})"


class ErrorResponse(BaseModel):
    message: str | None = None


class UserInfo(BaseModel):
    allowed_downloads: int = 0
    remaining_downloads: int | None = None
    reset_time_utc: datetime | None = None


class EncapsulatedUserInfo(BaseModel):
    data: UserInfo | None = None


class LoginInfo(BaseModel):
    user: UserInfo | None = None
    token: str | None = None

    @property
    def expiration_date(self) -> datetime:
        """Expiry read from the ``exp`` claim of the JWT token."""
        if not self.token or not self.token.strip():
            return EXPIRED
        parts = self.token.split(".")
        if len(parts) < 2:
            return EXPIRED
        payload = parts[1] + "=" * (-len(parts[1]) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(payload))
            return datetime.fromtimestamp(int(claims.get("exp", 0)), tz=timezone.utc)
        except (binascii.Error, ValueError, TypeError, AttributeError, OverflowError):
            return EXPIRED


class Uploader(BaseModel):
    name: str | None = None


class FeatureDetails(BaseModel):
    feature_type: str | None = None
    title: str | None = None
    year: int | None = None
    imdb_id: int | None = None
    season_number: int | None = None
    episode_number: int | None = None


class SubFile(BaseModel):
    file_id: int | None = None
    file_name: str | None = None


class Attributes(BaseModel):
    language: str | None = None
    release: str | None = None
    comments: str | None = None
    download_count: int = 0
    ratings: float = 0.0
    from_trusted: bool | None = None
    upload_date: datetime | None = None
    hearing_impaired: bool | None = None
    foreign_parts_only: bool | None = None
    machine_translated: bool | None = None
    ai_translated: bool | None = None
    fps: float | None = None
    moviehash_match: bool | None = None
    uploader: Uploader | None = None
    feature_details: FeatureDetails | None = None
    files: list[SubFile] = Field(default_factory=list)


class ResponseData(BaseModel):
    id: str | None = None
    type: str | None = None
    attributes: Attributes | None = None


class SearchResult(BaseModel):
    total_pages: int = 0
    total_count: int = 0
    page: int = 0
    data: list[ResponseData] = Field(default_factory=list)


class SubtitleDownloadInfo(BaseModel):
    link: str | None = None
    file_name: str | None = None
    remaining: int = 0
    reset_time_utc: datetime | None = None


class LanguageInfo(BaseModel):
    language_code: str | None = None
    language_name: str | None = None


class EncapsulatedLanguageList(BaseModel):
    data: list[LanguageInfo] | None = None
