"""Cachetta-backed disk cache for API lookups that rarely change."""

import hashlib
import json
from datetime import timedelta
from pathlib import Path

from cachetta import Cachetta

DEFAULT_DURATION = timedelta(days=7)


def cache_key(endpoint: str, params: dict | None = None) -> str:
    """Generate cache key for an API call."""
    params = params or {}
    raw = f"{endpoint}|{json.dumps(params, sort_keys=True)}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


class Cache:
    """Wraps ``fetch(endpoint, params)`` coroutines with a JSON file cache.

    Entries live in ``cache_dir`` and expire after ``duration``. With
    ``skip_cache`` the cache is not read but fresh results are still written.
    Exceptions propagate and are never cached.
    """

    def __init__(self, cache_dir: Path, skip_cache: bool = False, duration: timedelta = DEFAULT_DURATION):
        self.cache_dir = Path(cache_dir)
        self.skip_cache = skip_cache

        def _path(endpoint, params=None):
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            return self.path(endpoint, params)

        self._cache = Cachetta(path=_path, duration=duration)
        self._cache_skip_read = self._cache.copy(read=False)

    def path(self, endpoint: str, params: dict | None = None) -> Path:
        return self.cache_dir / f"{cache_key(endpoint, params)}.json"

    def __call__(self, fetch):
        cache = self._cache_skip_read if self.skip_cache else self._cache
        return cache(fetch)
