"""Typed errors raised by the OpenSubtitles client."""

from datetime import datetime

MAX_BODY_LENGTH = 500


def truncate_body(body: str | None, max_len: int = MAX_BODY_LENGTH) -> str:
    """Shorten a response body for error messages and logs."""
    if not body:
        return '""'
    if "<html" in body.lower():
        return "[html]"
    if len(body) <= max_len:
        return body
    return body[:max_len] + "..."


class OpenSubtitlesError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(OpenSubtitlesError):
    """Required configuration (API key, token) is missing."""


class AuthenticationError(OpenSubtitlesError):
    """Login failed or credentials are not set up.

    ``credentials_invalid`` is true when the server rejected the credentials
    themselves, so retrying the same login is pointless.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        credentials_invalid: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.credentials_invalid = credentials_invalid


class DownloadLimitExceededError(OpenSubtitlesError):
    """The account's daily download quota is used up."""

    def __init__(self, message: str, reset_time: datetime | None = None):
        super().__init__(message)
        self.reset_time = reset_time


class RequestFailedError(OpenSubtitlesError):
    """The API answered with a status code the caller cannot use."""

    def __init__(self, endpoint: str, status_code: int, body: str = "", message: str | None = None):
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = truncate_body(body)
        super().__init__(message or f"Request to {endpoint} failed: {status_code} - {self.body}")


class SubtitleNotFoundError(OpenSubtitlesError):
    """The subtitle link or file came back empty."""


class ResponseParseError(OpenSubtitlesError):
    """A successful response body could not be parsed."""

    def __init__(self, status_code: int, body: str, context: tuple[str, ...] = ()):
        self.status_code = status_code
        self.body = truncate_body(body)
        self.context = context
        super().__init__(
            f"Failed to parse response, code: {status_code}, "
            f"context: {', '.join(context)}, body: \n{self.body}"
        )


class UnsupportedLanguageError(OpenSubtitlesError):
    """The requested language is not offered by OpenSubtitles."""


class InvalidSubtitleIdError(OpenSubtitlesError, ValueError):
    """A subtitle identifier does not follow ``format-language-fileid[-sdh][-forced]``."""
