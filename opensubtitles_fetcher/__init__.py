"""Fetch subtitles from the OpenSubtitles REST API.

Outbound calls go through a rate-limited dispatcher that tracks the API's
per-second and per-10-second limits and retries throttled requests.
"""

from .api import OpenSubtitlesApi, create_api
from .cli import main
from .models import ApiResponse, HttpResponse
from .movie_hash import compute_file_hash, compute_hash
from .provider import OpenSubtitlesProvider, SubtitleSearchRequest
from .rate_limiter import RateLimiter
from .request_handler import RequestHandler, add_query_string

__all__ = [
    "main",
    "create_api",
    "OpenSubtitlesApi",
    "OpenSubtitlesProvider",
    "SubtitleSearchRequest",
    "ApiResponse",
    "HttpResponse",
    "RateLimiter",
    "RequestHandler",
    "add_query_string",
    "compute_hash",
    "compute_file_hash",
]

if __name__ == "__main__":
    main()
