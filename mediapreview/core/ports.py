# mediapreview/core/ports.py
from __future__ import annotations
from pathlib import Path
from typing import Protocol

from mediapreview.core.cancellation import CancellationToken
from mediapreview.core.domain import ImageMetadata
from mediapreview.core.geometry import ResizePlan


# ============================================================================
# MEDIA CAPABILITIES
# Black-box image/video processing. Bindings live in mediapreview.infra:
#   - PillowImageTransform      (in-process, worker thread)
#   - SubprocessImageTransform  (child interpreter, killable)
#   - FfmpegFrameExtractor      (external ffmpeg process)
# ============================================================================

class ImageTransform(Protocol):
    async def read_metadata(self, path: Path, content_type: str | None = None) -> ImageMetadata:
        """
        Raises:
            ImageMetadataError: file is corrupt or not a decodable image
        """
        ...

    async def encode(self, path: Path, metadata: ImageMetadata, plan: ResizePlan) -> bytes:
        """
        Rotate to upright, resize to ``plan`` and encode as WebP.

        Animation (frames, loop, delays) is preserved and the pixel density
        is scaled by ``plan.scale``.

        Raises:
            ImageEncodeError: decode/resize/encode failed
            ProcessingTimeoutError: encode deadline exceeded
        """
        ...


class FrameExtractor(Protocol):
    async def extract_first_frame(
        self,
        src: Path,
        dest: Path,
        token: CancellationToken | None = None,
    ) -> Path:
        """
        Write the first decodable frame of ``src`` to ``dest`` as JPEG.

        Raises:
            FrameExtractionError: extractor failed or ``dest`` already exists
            ProcessingTimeoutError: extraction deadline exceeded
        """
        ...
