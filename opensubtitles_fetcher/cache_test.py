"""Unit tests for the file cache."""

import asyncio
import json
from pathlib import Path

import pytest

from .cache import Cache, cache_key


class Fetcher:
    """Counts calls to an async fetch that returns ``result`` or raises ``error``."""

    def __init__(self, result=None, error: Exception | None = None):
        self.calls = 0
        self.result = result if result is not None else ["en", "fr"]
        self.error = error

    async def fetch(self, endpoint, params=None):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def _fetch(cache: Cache, fetcher: Fetcher, endpoint="/infos/languages", params=None):
    return asyncio.run(cache(fetcher.fetch)(endpoint, params or {}))


def describe_cache_key():
    def it_generates_same_key_regardless_of_param_order():
        assert cache_key("subtitles", {"a": 1, "b": 2}) == cache_key("subtitles", {"b": 2, "a": 1})

    def it_generates_different_keys_for_different_params():
        assert cache_key("subtitles", {"q": "foo"}) != cache_key("subtitles", {"q": "bar"})

    def it_treats_missing_params_as_empty():
        assert cache_key("subtitles") == cache_key("subtitles", {})


def describe_Cache():
    @pytest.fixture
    def cache_dir(tmp_path: Path):
        return tmp_path / ".cache"

    def it_caches_async_results(cache_dir: Path):
        fetcher = Fetcher()

        assert _fetch(Cache(cache_dir), fetcher) == ["en", "fr"]
        assert _fetch(Cache(cache_dir), fetcher) == ["en", "fr"]

        assert fetcher.calls == 1

    def it_creates_cache_dir_if_missing(cache_dir: Path):
        assert not cache_dir.exists()

        _fetch(Cache(cache_dir), Fetcher())

        assert Cache(cache_dir).path("/infos/languages", {}).exists()

    def it_reads_existing_json_files(cache_dir: Path):
        cache = Cache(cache_dir)
        cache_dir.mkdir(parents=True)
        with open(cache.path("/infos/languages", {}), "w") as f:
            json.dump(["de"], f)
        fetcher = Fetcher()

        assert _fetch(cache, fetcher) == ["de"]
        assert fetcher.calls == 0

    def it_keys_entries_by_params(cache_dir: Path):
        cache = Cache(cache_dir)
        fetcher = Fetcher()

        _fetch(cache, fetcher, params={"q": "foo"})
        _fetch(cache, fetcher, params={"q": "bar"})

        assert fetcher.calls == 2

    def it_skips_reads_but_still_writes(cache_dir: Path):
        _fetch(Cache(cache_dir), Fetcher(["en"]))
        fresh = Fetcher(["en", "fr"])

        assert _fetch(Cache(cache_dir, skip_cache=True), fresh) == ["en", "fr"]
        assert fresh.calls == 1

        untouched = Fetcher(["xx"])
        assert _fetch(Cache(cache_dir), untouched) == ["en", "fr"]
        assert untouched.calls == 0

    def it_does_not_cache_errors(cache_dir: Path):
        cache = Cache(cache_dir)

        with pytest.raises(RuntimeError):
            _fetch(cache, Fetcher(error=RuntimeError("boom")))

        fetcher = Fetcher()
        assert _fetch(cache, fetcher) == ["en", "fr"]
        assert fetcher.calls == 1
