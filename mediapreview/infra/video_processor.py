# mediapreview/infra/video_processor.py
"""
First-frame extraction with ffmpeg.

The frame is written as a single baseline JPEG (MJPEG) and then goes
through the regular image preview path.
"""
from __future__ import annotations

from pathlib import Path

from mediapreview.core.cancellation import CancellationToken
from mediapreview.core.domain import FrameExtractionError
from mediapreview.infra.logging_config import get_logger
from mediapreview.infra.process_runner import run_process

logger = get_logger(__name__)


class FfmpegFrameExtractor:
    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: float = 10.0):
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def build_args(self, src: Path, dest: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-loglevel", "warning",
            # Never overwrite: the output name is fixed per scratch directory
            "-n",
            "-i", str(src),
            "-vframes", "1",
            "-f", "mjpeg",
            str(dest),
        ]

    async def extract_first_frame(
        self,
        src: Path,
        dest: Path,
        token: CancellationToken | None = None,
    ) -> Path:
        """
        Raises:
            FrameExtractionError: ffmpeg missing, failed, or produced nothing
            ProcessingTimeoutError: extraction exceeded ``timeout`` (killed)
        """
        dest = Path(dest)
        if dest.exists():
            raise FrameExtractionError(f"Frame output already exists: {dest.name}")

        try:
            result = await run_process(
                self.build_args(Path(src), dest),
                self.timeout,
                "frame extraction",
                token,
            )
        except FileNotFoundError as e:
            raise FrameExtractionError(f"ffmpeg not found: {self.ffmpeg_path}") from e

        if not result.ok:
            raise FrameExtractionError(
                f"ffmpeg exited {result.returncode}: {result.stderr_tail()}"
            )

        if not dest.exists() or dest.stat().st_size == 0:
            raise FrameExtractionError("ffmpeg produced no frame")

        logger.info(f"Extracted first frame: {dest.stat().st_size} bytes")
        return dest
