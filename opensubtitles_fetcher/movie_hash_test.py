"""Unit tests for the movie hash."""

import io
from pathlib import Path

import pytest

from .movie_hash import HASH_WINDOW, compute_file_hash, compute_hash

# Sample file from the OpenSubtitles hash documentation
REFERENCE_VIDEO = Path(__file__).resolve().parent.parent / "tests" / "data" / "breakdance.avi"


def describe_compute_hash():
    def it_adds_file_size_to_word_sum():
        # One zero word, read once per window
        assert compute_hash(io.BytesIO(b"\0" * 8)) == "0000000000000008"

    def it_counts_overlapping_windows_twice():
        data = b"\x01" + b"\0" * 7 + b"\x02" + b"\0" * 7
        # (1 + 2) from each window + 16 bytes
        assert compute_hash(io.BytesIO(data)) == "0000000000000016"

    def it_zero_pads_a_trailing_partial_word():
        # 0xffffffffffffffff + 0xffff wraps to 0xfffe per window, plus size 10
        assert compute_hash(io.BytesIO(b"\xff" * 10)) == "0000000000020006"

    def it_wraps_sum_at_64_bits():
        data = b"\x01" * (2 * HASH_WINDOW)
        assert compute_hash(io.BytesIO(data)) == "4040404040424000"

    def it_reads_only_first_and_last_window():
        size = 200_000
        data = bytearray(size)
        data[0] = 0x01
        data[-1] = 0x80
        data[100_000] = 0xFF  # outside both windows
        assert compute_hash(io.BytesIO(bytes(data))) == "8000000000030d41"

    def it_reads_words_little_endian_and_writes_big_endian():
        # "01234567" is 0x3736353433323130 and "89abcdef" is 0x6665646362613938
        assert compute_hash(io.BytesIO(b"0123456789abcdef")) == "3b37332f2b26d4e0"

    def it_is_deterministic():
        data = bytes(range(256)) * 1000
        assert compute_hash(io.BytesIO(data)) == compute_hash(io.BytesIO(data))

    def it_returns_16_lowercase_hex_digits():
        result = compute_hash(io.BytesIO(b"\xab" * 70_000))
        assert len(result) == 16
        assert result == result.lower()
        int(result, 16)


def describe_compute_file_hash():
    def it_hashes_file_on_disk(tmp_path: Path):
        path = tmp_path / "movie.avi"
        path.write_bytes(b"\0" * 8)
        assert compute_file_hash(path) == "0000000000000008"

    @pytest.mark.skipif(not REFERENCE_VIDEO.exists(), reason="breakdance.avi not downloaded")
    def it_matches_published_hash_of_reference_video():
        assert compute_file_hash(REFERENCE_VIDEO) == "8e245d9679d31e12"
