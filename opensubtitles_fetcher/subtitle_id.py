"""Composite subtitle identifiers: ``<format>-<language>-<file_id>[-sdh][-forced]``."""

from dataclasses import dataclass

from .errors import InvalidSubtitleIdError

HEARING_IMPAIRED_SUFFIX = "sdh"
FORCED_SUFFIX = "forced"


@dataclass(frozen=True)
class SubtitleId:
    format: str
    language: str
    file_id: int
    hearing_impaired: bool = False
    forced: bool = False

    def __str__(self) -> str:
        return build_subtitle_id(
            self.format, self.language, self.file_id, self.hearing_impaired, self.forced
        )


def build_subtitle_id(
    fmt: str,
    language: str,
    file_id: int,
    hearing_impaired: bool = False,
    forced: bool = False,
) -> str:
    sub_id = f"{fmt}-{language}-{file_id}"
    if hearing_impaired:
        sub_id += f"-{HEARING_IMPAIRED_SUFFIX}"
    if forced:
        sub_id += f"-{FORCED_SUFFIX}"
    return sub_id


def parse_subtitle_id(sub_id: str) -> SubtitleId:
    """Split an identifier into its parts.

    The language may itself contain dashes (``pt-BR``); the file id is the
    last numeric part before the optional flags.
    """
    if not sub_id or not sub_id.strip():
        raise InvalidSubtitleIdError("Missing subtitle id")

    parts = sub_id.strip().split("-")
    forced = False
    hearing_impaired = False
    if len(parts) > 3 and parts[-1].lower() == FORCED_SUFFIX:
        forced = True
        parts.pop()
    if len(parts) > 3 and parts[-1].lower() == HEARING_IMPAIRED_SUFFIX:
        hearing_impaired = True
        parts.pop()

    if len(parts) < 3:
        raise InvalidSubtitleIdError(f"Invalid subtitle id format: {sub_id}")

    fmt, *language, raw_file_id = parts
    try:
        file_id = int(raw_file_id)
    except ValueError:
        raise InvalidSubtitleIdError(f"Invalid file id in subtitle id: {sub_id}") from None

    return SubtitleId(fmt, "-".join(language), file_id, hearing_impaired, forced)
