# mediapreview/infra/image_processor.py
"""
Pillow-backed image metadata, resizing and WebP encoding.

The synchronous functions here are the whole of the image capability;
PillowImageTransform runs them in a worker thread, and the subprocess
binding (image_worker.py) runs them in a child interpreter.

Encoding rules:
- pixels are rotated/flipped upright according to the EXIF orientation
- frames are resized with LANCZOS to the planned size
- lossless raster sources (PNG, BMP, TIFF) use WebP lossless mode,
  everything else lossy WebP at the configured quality
- animated sources keep every frame, the loop count and frame delays
- pixel density is scaled with the image and written as EXIF resolution
"""
from __future__ import annotations

import asyncio
import io
from pathlib import Path

from PIL import Image, ImageFile, ImageSequence

from mediapreview.core.domain import (
    ImageEncodeError,
    ImageMetadata,
    ImageMetadataError,
    ProcessingTimeoutError,
)
from mediapreview.core.geometry import ResizePlan
from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

# Do NOT allow truncated images: reject corrupted downloads instead of
# producing previews with grey/black bands.
ImageFile.LOAD_TRUNCATED_IMAGES = False

# Decompression bomb protection (parsing limit, not the output limit)
Image.MAX_IMAGE_PIXELS = 50_000_000

EXIF_ORIENTATION = 0x0112
EXIF_X_RESOLUTION = 0x011A
EXIF_Y_RESOLUTION = 0x011B
EXIF_RESOLUTION_UNIT = 0x0128
RESOLUTION_UNIT_INCH = 2

# Same table Pillow's ImageOps.exif_transpose uses
ORIENTATION_TRANSPOSE = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}

SVG_SNIFF_BYTES = 1024
DEFAULT_WEBP_QUALITY = 80
# WebP loop count for a single pass through the frames
PLAY_ONCE = 1


def configure_decoder_limits(max_pixels: int) -> None:
    """Apply the decompression bomb limit from settings."""
    Image.MAX_IMAGE_PIXELS = max_pixels


# ============================================================================
# METADATA
# ============================================================================

def looks_like_svg(path: Path, content_type: str | None = None) -> bool:
    """SVG is not decodable by Pillow; detect it from the type or the markup."""
    if content_type and "svg" in content_type.lower():
        return True

    with open(path, "rb") as fh:
        head = fh.read(SVG_SNIFF_BYTES).lstrip().lower()
    return head.startswith(b"<") and b"<svg" in head


def read_image_metadata(path: Path, content_type: str | None = None) -> ImageMetadata:
    """
    Read format, size, orientation, density and animation facts.

    Raises:
        ImageMetadataError: file is corrupt, truncated or not an image
    """
    path = Path(path)

    if looks_like_svg(path, content_type):
        # Vector: no intrinsic pixel size
        return ImageMetadata(format="SVG")

    try:
        with Image.open(path) as img:
            width, height = img.size
            frames = int(getattr(img, "n_frames", 1) or 1)
            metadata = ImageMetadata(
                format=(img.format or "UNKNOWN").upper(),
                width=width,
                height=height,
                orientation=_read_orientation(img),
                density=_read_density(img),
                loop=img.info.get("loop"),
                delays=_read_delays(img, frames),
                frames=frames,
            )
    except Image.DecompressionBombError as e:
        raise ImageMetadataError(f"Decompression bomb detected: {e}") from e
    except (OSError, SyntaxError, ValueError, EOFError) as e:
        # UnidentifiedImageError is an OSError
        raise ImageMetadataError(f"Failed to read image metadata: {e}") from e

    logger.info(
        f"Metadata: format={metadata.format}, size={metadata.width}x{metadata.height}, "
        f"orientation={metadata.orientation}, density={metadata.density}, "
        f"frames={metadata.frames}, loop={metadata.loop}"
    )
    return metadata


def _read_orientation(img: Image.Image) -> int:
    orientation = img.getexif().get(EXIF_ORIENTATION, 1)
    try:
        orientation = int(orientation)
    except (TypeError, ValueError):
        return 1
    return orientation if 1 <= orientation <= 8 else 1


def _read_density(img: Image.Image) -> float | None:
    dpi = img.info.get("dpi")
    if not dpi:
        return None
    density = float(dpi[0])
    return density if density > 0 else None


def _read_delays(img: Image.Image, frames: int) -> tuple[int, ...]:
    if frames <= 1:
        return ()

    delays = []
    for index in range(frames):
        img.seek(index)
        delays.append(int(img.info.get("duration", 0) or 0))
    img.seek(0)
    return tuple(delays)


# ============================================================================
# RESIZE + ENCODE
# ============================================================================

def encode_webp(
    path: Path,
    metadata: ImageMetadata,
    plan: ResizePlan,
    quality: int = DEFAULT_WEBP_QUALITY,
) -> bytes:
    """
    Rotate upright, resize to ``plan`` and encode as (possibly animated) WebP.

    Raises:
        ImageEncodeError: decoding, resizing or encoding failed
    """
    try:
        with Image.open(path) as img:
            frames = _prepare_frames(img, metadata, plan)
            output = io.BytesIO()
            frames[0].save(output, **_save_options(metadata, plan, frames, quality))
    except Image.DecompressionBombError as e:
        raise ImageEncodeError(f"Decompression bomb detected during encode: {e}") from e
    except (OSError, SyntaxError, ValueError, EOFError) as e:
        raise ImageEncodeError(f"Failed to encode preview: {e}") from e

    data = output.getvalue()
    logger.info(
        f"Encoded WebP: {plan.width}x{plan.height}, frames={len(frames)}, "
        f"lossless={metadata.is_lossless}, size={len(data)}"
    )
    return data


def _prepare_frames(img: Image.Image, metadata: ImageMetadata, plan: ResizePlan) -> list[Image.Image]:
    frames = []
    for frame in ImageSequence.Iterator(img):
        frames.append(_prepare_frame(frame, metadata, plan))
        if not metadata.is_animated:
            break
    return frames


def _prepare_frame(frame: Image.Image, metadata: ImageMetadata, plan: ResizePlan) -> Image.Image:
    # Animated frames share one mode so they can be appended together
    mode = "RGBA" if metadata.is_animated or _has_alpha(frame) else "RGB"
    image = frame.convert(mode)

    method = ORIENTATION_TRANSPOSE.get(metadata.orientation)
    if method is not None:
        image = image.transpose(method)

    target = (plan.width, plan.height)
    if image.size != target:
        image = image.resize(target, Image.Resampling.LANCZOS)
    return image


def _has_alpha(frame: Image.Image) -> bool:
    if frame.mode in ("RGBA", "LA", "PA", "La", "RGBa"):
        return True
    return "transparency" in frame.info


def _save_options(
    metadata: ImageMetadata,
    plan: ResizePlan,
    frames: list[Image.Image],
    quality: int,
) -> dict:
    options: dict = {"format": "WEBP"}

    if metadata.is_lossless:
        options["lossless"] = True
    else:
        options["quality"] = quality

    exif = _density_exif(metadata.density, plan.scale)
    if exif is not None:
        options["exif"] = exif.tobytes()

    if metadata.is_animated:
        options["save_all"] = True
        options["append_images"] = frames[1:]
        options["duration"] = _frame_delays(metadata, len(frames))
        # No NETSCAPE block means the GIF plays once; WebP loop=0 would repeat forever
        options["loop"] = metadata.loop if metadata.loop is not None else PLAY_ONCE

    return options


def _frame_delays(metadata: ImageMetadata, count: int) -> list[int]:
    delays = list(metadata.delays[:count])
    # Pad with the last known delay if the decoder reported fewer
    fallback = delays[-1] if delays else 0
    delays.extend([fallback] * (count - len(delays)))
    return delays


def _density_exif(density: float | None, scale: float) -> Image.Exif | None:
    if not density:
        return None
    scaled = float(density * scale)
    exif = Image.Exif()
    exif[EXIF_X_RESOLUTION] = scaled
    exif[EXIF_Y_RESOLUTION] = scaled
    exif[EXIF_RESOLUTION_UNIT] = RESOLUTION_UNIT_INCH
    return exif


# ============================================================================
# IN-PROCESS BINDING
# ============================================================================

class PillowImageTransform:
    """
    ImageTransform running Pillow in a worker thread.

    The encode budget is enforced with asyncio.wait_for; the worker thread
    itself cannot be interrupted and finishes in the background. Use
    SubprocessImageTransform where a hard kill is required.
    """

    def __init__(
        self,
        encode_timeout: float = 10.0,
        quality: int = DEFAULT_WEBP_QUALITY,
    ):
        self.encode_timeout = encode_timeout
        self.quality = quality

    async def read_metadata(self, path: Path, content_type: str | None = None) -> ImageMetadata:
        return await asyncio.to_thread(read_image_metadata, path, content_type)

    async def encode(self, path: Path, metadata: ImageMetadata, plan: ResizePlan) -> bytes:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(encode_webp, path, metadata, plan, self.quality),
                timeout=self.encode_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Image encode exceeded {self.encode_timeout:g}s budget")
            raise ProcessingTimeoutError("image encode", self.encode_timeout)
