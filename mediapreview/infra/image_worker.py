# mediapreview/infra/image_worker.py
"""
External-process image binding.

SubprocessImageTransform runs the Pillow operations from image_processor
in a child interpreter (``python -m mediapreview.infra.image_worker``) so
that an encode overrunning its deadline can be killed outright.

Worker protocol:
    probe  PATH [--content-type CT]        -> metadata JSON on stdout
    encode PATH --metadata JSON --width W --height H --scale S [--pin-width]
                                           -> WebP bytes on stdout

Exit codes: 0 ok, 3 unreadable metadata, 4 encode failure, 2 usage error.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from mediapreview.core.domain import (
    ImageEncodeError,
    ImageMetadata,
    ImageMetadataError,
)
from mediapreview.core.geometry import ResizePlan
from mediapreview.infra.logging_config import get_logger
from mediapreview.infra.process_runner import run_process

logger = get_logger(__name__)

EXIT_METADATA_ERROR = 3
EXIT_ENCODE_ERROR = 4

WORKER_MODULE = "mediapreview.infra.image_worker"


class SubprocessImageTransform:
    """ImageTransform running each operation in a killable child process."""

    def __init__(
        self,
        timeout: float = 5.0,
        quality: int = 80,
        max_pixels: int | None = None,
        python: str | None = None,
    ):
        self.timeout = timeout
        self.quality = quality
        self.max_pixels = max_pixels
        self.python = python or sys.executable

    def _base_args(self, command: str, path: Path) -> list[str]:
        args = [self.python, "-m", WORKER_MODULE, command, str(path)]
        if self.max_pixels:
            args += ["--max-pixels", str(self.max_pixels)]
        return args

    async def read_metadata(self, path: Path, content_type: str | None = None) -> ImageMetadata:
        args = self._base_args("probe", path)
        if content_type:
            args += ["--content-type", content_type]

        result = await run_process(args, self.timeout, "image probe")
        if not result.ok:
            raise ImageMetadataError(f"Image probe failed ({result.returncode}): {result.stderr_tail()}")

        try:
            return ImageMetadata.from_dict(json.loads(result.stdout))
        except (ValueError, KeyError, TypeError) as e:
            raise ImageMetadataError(f"Image probe returned malformed output: {e}") from e

    async def encode(self, path: Path, metadata: ImageMetadata, plan: ResizePlan) -> bytes:
        args = self._base_args("encode", path) + [
            "--metadata", json.dumps(metadata.to_dict()),
            "--width", str(plan.width),
            "--height", str(plan.height),
            "--scale", repr(plan.scale),
            "--quality", str(self.quality),
        ]
        if plan.pin_width:
            args.append("--pin-width")

        result = await run_process(args, self.timeout, "image encode")
        if not result.ok:
            raise ImageEncodeError(f"Image encode failed ({result.returncode}): {result.stderr_tail()}")
        if not result.stdout:
            raise ImageEncodeError("Image encode produced no output")
        return result.stdout


# ============================================================================
# WORKER ENTRY POINT
# ============================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=WORKER_MODULE, description="Isolated image worker")
    sub = parser.add_subparsers(dest="command", required=True)

    probe = sub.add_parser("probe", help="Print image metadata as JSON")
    probe.add_argument("path", type=Path)
    probe.add_argument("--content-type", default=None)
    probe.add_argument("--max-pixels", type=int, default=None)

    encode = sub.add_parser("encode", help="Write the WebP preview to stdout")
    encode.add_argument("path", type=Path)
    encode.add_argument("--metadata", required=True)
    encode.add_argument("--width", type=int, required=True)
    encode.add_argument("--height", type=int, required=True)
    encode.add_argument("--scale", type=float, required=True)
    encode.add_argument("--pin-width", action="store_true")
    encode.add_argument("--quality", type=int, default=80)
    encode.add_argument("--max-pixels", type=int, default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    from mediapreview.infra.image_processor import (
        configure_decoder_limits,
        encode_webp,
        read_image_metadata,
    )

    args = _build_parser().parse_args(argv)
    if args.max_pixels:
        configure_decoder_limits(args.max_pixels)

    if args.command == "probe":
        try:
            metadata = read_image_metadata(args.path, args.content_type)
        except ImageMetadataError as e:
            print(str(e), file=sys.stderr)
            return EXIT_METADATA_ERROR
        sys.stdout.write(json.dumps(metadata.to_dict()))
        sys.stdout.flush()
        return 0

    metadata = ImageMetadata.from_dict(json.loads(args.metadata))
    plan = ResizePlan(
        width=args.width,
        height=args.height,
        scale=args.scale,
        pin_width=args.pin_width,
    )
    try:
        data = encode_webp(args.path, metadata, plan, args.quality)
    except ImageEncodeError as e:
        print(str(e), file=sys.stderr)
        return EXIT_ENCODE_ERROR

    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
