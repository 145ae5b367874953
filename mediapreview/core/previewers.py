# mediapreview/core/previewers.py
"""
Preview generation for downloaded assets.

ImagePreviewer:
1. read metadata
2. short-circuit (vector, unknown size, already inside the box) → original
3. plan the resize (orientation-aware pinned dimension, never enlarge)
4. rotate + resize + encode WebP through the ImageTransform
5. keep the WebP only if it is strictly smaller than the original

VideoPreviewer extracts the first frame as JPEG and hands it to
ImagePreviewer unchanged.
"""
from __future__ import annotations

import asyncio
from pathlib import Path

from mediapreview.core.cancellation import CancellationToken
from mediapreview.core.domain import ImageMetadata, PreviewResult
from mediapreview.core.geometry import fits_within, oriented_size, plan_resize
from mediapreview.core.ports import FrameExtractor, ImageTransform
from mediapreview.infra.logging_config import get_logger
from mediapreview.infra.metrics import PreviewMetrics

logger = get_logger(__name__)

PREVIEW_CONTENT_TYPE = "image/webp"
FRAME_CONTENT_TYPE = "image/jpeg"
FRAME_FILENAME = "output.jpg"


class ImagePreviewer:
    def __init__(
        self,
        transform: ImageTransform,
        max_width: int = 600,
        max_height: int = 600,
    ):
        self.transform = transform
        self.max_width = max_width
        self.max_height = max_height

    def needs_resize(self, metadata: ImageMetadata) -> bool:
        if metadata.is_vector or not metadata.has_dimensions:
            return False
        # The box applies to the displayed (EXIF-rotated) shape
        width, height = oriented_size(metadata.width, metadata.height, metadata.orientation)
        return not fits_within(width, height, self.max_width, self.max_height)

    async def preview(self, asset_path: Path, original_content_type: str) -> PreviewResult:
        """
        Build the preview for an image file.

        Returns:
            The WebP preview, or the original bytes and content type when
            no resize is needed or re-encoding did not shrink the file.

        Raises:
            ProcessingError: metadata unreadable or encode failed
        """
        asset_path = Path(asset_path)
        metadata = await self.transform.read_metadata(asset_path, original_content_type)

        if not self.needs_resize(metadata):
            logger.info(
                f"No resize needed: format={metadata.format}, "
                f"size={metadata.width}x{metadata.height}"
            )
            return await _original(asset_path, original_content_type)

        plan = plan_resize(
            metadata.width,
            metadata.height,
            metadata.orientation,
            self.max_width,
            self.max_height,
        )
        logger.info(
            f"Resizing {metadata.width}x{metadata.height} "
            f"(orientation={metadata.orientation}) → {plan.width}x{plan.height} "
            f"pin={'width' if plan.pin_width else 'height'} scale={plan.scale:.4f}"
        )

        content = await self.transform.encode(asset_path, metadata, plan)
        original_size = asset_path.stat().st_size
        logger.info(f"Original {original_size} bytes, Compressed {len(content)} bytes")

        if len(content) >= original_size:
            # Never serve a preview larger than its source
            return await _original(asset_path, original_content_type)

        PreviewMetrics.bytes_saved(original_size, len(content))
        return PreviewResult(content=content, content_type=PREVIEW_CONTENT_TYPE)


class VideoPreviewer:
    def __init__(self, extractor: FrameExtractor, image_previewer: ImagePreviewer):
        self.extractor = extractor
        self.image_previewer = image_previewer

    async def preview(
        self,
        asset_path: Path,
        token: CancellationToken | None = None,
    ) -> PreviewResult:
        """
        Raises:
            FrameExtractionError: no frame could be extracted
            ProcessingTimeoutError: extraction deadline exceeded
        """
        asset_path = Path(asset_path)
        frame_path = asset_path.parent / FRAME_FILENAME
        frame = await self.extractor.extract_first_frame(asset_path, frame_path, token)
        return await self.image_previewer.preview(frame, FRAME_CONTENT_TYPE)


async def _original(path: Path, content_type: str) -> PreviewResult:
    content = await asyncio.to_thread(path.read_bytes)
    return PreviewResult(content=content, content_type=content_type)
