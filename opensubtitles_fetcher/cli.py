"""CLI commands for fetching subtitles from OpenSubtitles."""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from .errors import OpenSubtitlesError


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _dump(data):
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


async def _languages(args):
    from .provider import OpenSubtitlesProvider

    provider = OpenSubtitlesProvider.from_settings()
    try:
        _dump(await provider.get_language_codes())
    finally:
        await provider.api.aclose()


async def _search(args):
    from .provider import OpenSubtitlesProvider, SubtitleSearchRequest

    request = SubtitleSearchRequest(
        language=args.language,
        media_path=str(args.path),
        content_type="episode" if args.series else "movie",
        imdb_id=args.imdb_id,
        series_name=args.series,
        season_number=args.season,
        episode_number=args.episode,
        is_perfect_match=args.perfect_match,
    )
    provider = OpenSubtitlesProvider.from_settings()
    try:
        results = await provider.search(request)
    finally:
        await provider.api.aclose()
    _dump([asdict(r) for r in results])


async def _download(args):
    from .provider import OpenSubtitlesProvider

    provider = OpenSubtitlesProvider.from_settings()
    try:
        subtitle = await provider.get_subtitles(args.subtitle_id)
    finally:
        await provider.api.aclose()

    if args.output:
        args.output.write_text(subtitle.content, encoding="utf-8")
        print(f"Saved {subtitle.language} subtitle to {args.output}")
    else:
        sys.stdout.write(subtitle.content)


async def _validate_login(args):
    from .api import create_api
    from .provider import validate_login_info
    from .settings import get_settings

    settings = get_settings()
    api = create_api(settings, api_key=args.api_key)
    try:
        downloads = await validate_login_info(
            api,
            args.username or settings.username or "",
            args.password or settings.password or "",
        )
    finally:
        await api.aclose()
    _dump({"Downloads": downloads})


async def _api(args):
    from .api import create_api
    from .request_handler import add_query_string

    params = {}
    for p in args.param:
        k, _, v = p.partition("=")
        params[k] = v

    api = create_api()
    try:
        body = json.loads(args.body) if args.body else None
        resp = await api.handler.send_request(
            add_query_string(args.endpoint, params), method=args.method, body=body
        )
    finally:
        await api.aclose()

    try:
        _dump(json.loads(resp.body))
    except ValueError:
        sys.stdout.write(resp.body + "\n")
    if resp.status_code >= 400:
        print(f"HTTP {resp.status_code} {resp.reason}".rstrip(), file=sys.stderr)


def main():
    parser = argparse.ArgumentParser(
        description="Fetch subtitles from OpenSubtitles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # hash subcommand
    hash_parser = subparsers.add_parser(
        "hash",
        help="Compute the OpenSubtitles movie hash of a file",
    )
    hash_parser.add_argument("path", type=Path, help="Video file")

    # languages subcommand
    subparsers.add_parser(
        "languages",
        help="List language codes supported by OpenSubtitles",
    )

    # search subcommand
    search_parser = subparsers.add_parser(
        "search",
        help="Search subtitles for a video file",
    )
    search_parser.add_argument("path", type=Path, help="Video file")
    search_parser.add_argument(
        "-l",
        "--language",
        default="en",
        help="Language code (default: en)",
    )
    search_parser.add_argument(
        "--imdb-id",
        default=None,
        help="IMDb id, e.g. tt0133093",
    )
    search_parser.add_argument(
        "--series",
        default=None,
        help="Series name; searches for an episode (requires --season and --episode)",
    )
    search_parser.add_argument("--season", type=int, default=None, help="Season number")
    search_parser.add_argument("--episode", type=int, default=None, help="Episode number")
    search_parser.add_argument(
        "--perfect-match",
        action="store_true",
        help="Only return movie hash matches",
    )

    # download subcommand
    download_parser = subparsers.add_parser(
        "download",
        help="Download a subtitle by the id returned from search",
    )
    download_parser.add_argument(
        "subtitle_id",
        help="Subtitle id (e.g., srt-eng-123456-sdh)",
    )
    download_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output file (default: stdout)",
    )

    # validate-login subcommand
    login_parser = subparsers.add_parser(
        "validate-login",
        help="Check account credentials and show the daily download allowance",
    )
    login_parser.add_argument("--username", default=None, help="Account username (default: from settings)")
    login_parser.add_argument("--password", default=None, help="Account password (default: from settings)")
    login_parser.add_argument(
        "--api-key",
        default=None,
        help="Custom API key (default: OPENSUBTITLES_API_KEY)",
    )

    # api subcommand
    api_parser = subparsers.add_parser(
        "api",
        help="Make a raw rate-limited API call",
    )
    api_parser.add_argument(
        "endpoint",
        help="API endpoint path (e.g., /infos/formats)",
    )
    api_parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (repeatable, e.g., --param languages=en)",
    )
    api_parser.add_argument(
        "--method",
        default="GET",
        help="HTTP method (default: GET)",
    )
    api_parser.add_argument(
        "--body",
        default=None,
        help="JSON request body",
    )

    args = parser.parse_args()
    _configure_logging(args.verbose)

    commands = {
        "languages": _languages,
        "search": _search,
        "download": _download,
        "validate-login": _validate_login,
        "api": _api,
    }

    if args.command == "hash":
        from .movie_hash import compute_file_hash

        print(compute_file_hash(args.path))
    elif args.command in commands:
        try:
            asyncio.run(commands[args.command](args))
        except OpenSubtitlesError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
