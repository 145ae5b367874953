#!/usr/bin/env python3
# mediapreview/cli.py
"""
Command-line preview tool.

Usage:
    # Preview a URL, writing the response body to ./output
    mediapreview preview https://example.com/photo.jpg

    # Choose the output file
    mediapreview preview https://example.com/clip.mp4 -o frame.webp

    # Print the signed preview path for a URL
    SECRET_KEY_BASE=... mediapreview sign https://example.com/photo.jpg

Exit codes:
    0  success (any pipeline outcome, including 4xx/5xx statuses)
    1  missing argument / usage error
    2  failure (fault or I/O error)
"""
from __future__ import annotations

import argparse
import asyncio
import sys
import tempfile
from pathlib import Path

from mediapreview.config import settings
from mediapreview.core.pipeline import build_pipeline
from mediapreview.infra.logging_config import get_logger, setup_logging
from mediapreview.infra.scratch import scratch_directory
from mediapreview.transport.responses import PreviewResponse, build_response
from mediapreview.transport.security import signed_path

logger = get_logger(__name__)

EXIT_USAGE = 1
EXIT_FAILURE = 2


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        print(f"{self.prog}: error: {message}", file=sys.stderr)
        sys.exit(EXIT_USAGE)


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="mediapreview",
        description="Generate image/video previews for URLs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", parser_class=_Parser)

    p_preview = sub.add_parser("preview", help="Fetch a URL and write its preview")
    p_preview.add_argument("url", help="Origin URL (http/https)")
    p_preview.add_argument("--output", "-o", default="output", help="Output file (default: ./output)")

    p_sign = sub.add_parser("sign", help="Print the signed preview path for a URL")
    p_sign.add_argument("url", help="Origin URL")
    p_sign.add_argument("--filename", "-f", help="Optional trailing filename")
    p_sign.add_argument("--secret", "-s", help="Signing secret (or SECRET_KEY_BASE env var)")

    return parser


async def run_preview(url: str) -> PreviewResponse:
    pipeline = build_pipeline(settings)
    async with scratch_directory(tempfile.gettempdir()) as scratch_dir:
        outcome = await pipeline.run(url, scratch_dir)
    return build_response(outcome)


def _cmd_preview(args) -> int:
    try:
        response = asyncio.run(run_preview(args.url))
        Path(args.output).write_bytes(response.body)
    except Exception as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"status: {response.status_code}")
    for name, value in response.headers.items():
        print(f"{name}: {value}")
    print(f"body: {len(response.body)} bytes -> {args.output}")
    return 0


def _cmd_sign(args) -> int:
    secret = args.secret or settings.secret_key_base
    if not secret:
        print("Error: SECRET_KEY_BASE environment variable not set", file=sys.stderr)
        return EXIT_USAGE
    print(signed_path(secret, args.url, args.filename))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_usage(sys.stderr)
        print("No argument", file=sys.stderr)
        return EXIT_USAGE

    if args.command == "preview":
        setup_logging(level=settings.log_level, use_json=False)
        return _cmd_preview(args)
    return _cmd_sign(args)


if __name__ == "__main__":
    sys.exit(main())
