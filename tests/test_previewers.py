# tests/test_previewers.py
"""
Tests for ImagePreviewer / VideoPreviewer.

The transform and extractor are mocked for the decision logic; one test
per path runs the real Pillow transform end to end.
"""
from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from mediapreview.core.domain import FrameExtractionError, ImageMetadata, ImageMetadataError
from mediapreview.core.previewers import ImagePreviewer, VideoPreviewer


def _transform(metadata: ImageMetadata, encoded: bytes = b"webp") -> MagicMock:
    transform = MagicMock()
    transform.read_metadata = AsyncMock(return_value=metadata)
    transform.encode = AsyncMock(return_value=encoded)
    return transform


class TestImagePreviewerDecisions:
    @pytest.mark.asyncio
    async def test_small_image_returned_verbatim(self, write_file):
        path = write_file("download", b"original-bytes")
        transform = _transform(ImageMetadata(format="PNG", width=600, height=600))

        result = await ImagePreviewer(transform).preview(path, "image/png")

        assert result.content == b"original-bytes"
        assert result.content_type == "image/png"
        transform.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_vector_returned_verbatim(self, write_file):
        path = write_file("download", b"<svg/>")
        transform = _transform(ImageMetadata(format="SVG"))

        result = await ImagePreviewer(transform).preview(path, "image/svg+xml")

        assert result.content == b"<svg/>"
        assert result.content_type == "image/svg+xml"
        transform.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_size_returned_verbatim(self, write_file):
        path = write_file("download", b"odd")
        transform = _transform(ImageMetadata(format="UNKNOWN", width=None, height=None))

        result = await ImagePreviewer(transform).preview(path, "image/x-odd")

        assert result.content == b"odd"
        transform.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_smaller_encode_wins(self, write_file):
        path = write_file("download", b"x" * 1000)
        transform = _transform(ImageMetadata(format="JPEG", width=1200, height=800), b"small")

        result = await ImagePreviewer(transform).preview(path, "image/jpeg")

        assert result.content == b"small"
        assert result.content_type == "image/webp"
        plan = transform.encode.call_args.args[2]
        assert (plan.width, plan.height) == (600, 400)

    @pytest.mark.asyncio
    async def test_larger_encode_falls_back_to_original(self, write_file):
        path = write_file("download", b"x" * 10)
        transform = _transform(ImageMetadata(format="JPEG", width=1200, height=800), b"y" * 50)

        result = await ImagePreviewer(transform).preview(path, "image/jpeg")

        assert result.content == b"x" * 10
        assert result.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_equal_size_falls_back_to_original(self, write_file):
        path = write_file("download", b"x" * 10)
        transform = _transform(ImageMetadata(format="JPEG", width=1200, height=800), b"y" * 10)

        result = await ImagePreviewer(transform).preview(path, "image/jpeg")

        assert result.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_orientation_passed_to_plan(self, write_file):
        path = write_file("download", b"x" * 1000)
        transform = _transform(
            ImageMetadata(format="JPEG", width=1200, height=800, orientation=6), b"small"
        )

        await ImagePreviewer(transform).preview(path, "image/jpeg")

        plan = transform.encode.call_args.args[2]
        assert (plan.width, plan.height) == (400, 600)

    @pytest.mark.asyncio
    async def test_rotated_shape_checked_against_box(self, write_file):
        # Stored 500x300 fits 600x400; displayed 300x500 does not
        path = write_file("download", b"x" * 1000)
        transform = _transform(
            ImageMetadata(format="JPEG", width=500, height=300, orientation=6), b"small"
        )

        result = await ImagePreviewer(transform, 600, 400).preview(path, "image/jpeg")

        assert result.content == b"small"
        plan = transform.encode.call_args.args[2]
        assert (plan.width, plan.height) == (240, 400)

    @pytest.mark.asyncio
    async def test_rotated_shape_inside_box_untouched(self, write_file):
        path = write_file("download", b"original-bytes")
        transform = _transform(ImageMetadata(format="JPEG", width=400, height=600, orientation=8))

        result = await ImagePreviewer(transform, 600, 400).preview(path, "image/jpeg")

        assert result.content == b"original-bytes"
        transform.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_metadata_error_propagates(self, write_file):
        path = write_file("download", b"junk")
        transform = MagicMock()
        transform.read_metadata = AsyncMock(side_effect=ImageMetadataError("bad"))

        with pytest.raises(ImageMetadataError):
            await ImagePreviewer(transform).preview(path, "image/png")


class TestImagePreviewerPillow:
    @pytest.mark.asyncio
    async def test_large_png_becomes_webp(self, write_file, large_png_bytes):
        from mediapreview.infra.image_processor import PillowImageTransform

        path = write_file("download", large_png_bytes)
        result = await ImagePreviewer(PillowImageTransform()).preview(path, "image/png")

        assert result.content_type == "image/webp"
        assert len(result.content) < len(large_png_bytes)
        with Image.open(io.BytesIO(result.content)) as out:
            assert out.size == (600, 400)

    @pytest.mark.asyncio
    async def test_small_png_is_idempotent(self, write_file, small_png_bytes):
        from mediapreview.infra.image_processor import PillowImageTransform

        path = write_file("download", small_png_bytes)
        result = await ImagePreviewer(PillowImageTransform()).preview(path, "image/png")

        assert result.content == small_png_bytes
        assert result.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_rotated_jpeg_in_wide_box(self, write_file):
        from conftest import image_bytes, noise_image
        from mediapreview.infra.image_processor import PillowImageTransform

        exif = Image.Exif()
        exif[0x0112] = 6
        path = write_file("download", image_bytes(noise_image(500, 300), "JPEG", exif=exif.tobytes(), quality=95))

        result = await ImagePreviewer(PillowImageTransform(), 600, 400).preview(path, "image/jpeg")

        assert result.content_type == "image/webp"
        with Image.open(io.BytesIO(result.content)) as out:
            assert out.size == (240, 400)


class TestVideoPreviewer:
    @pytest.mark.asyncio
    async def test_frame_goes_through_image_path(self, scratch_dir):
        video = scratch_dir / "download"
        video.write_bytes(b"fake video")

        async def extract(src, dest, token=None):
            dest.write_bytes(b"jpeg-frame")
            return dest

        extractor = MagicMock()
        extractor.extract_first_frame = AsyncMock(side_effect=extract)
        transform = _transform(ImageMetadata(format="JPEG", width=320, height=240))

        result = await VideoPreviewer(extractor, ImagePreviewer(transform)).preview(video)

        src, dest = extractor.extract_first_frame.call_args.args[:2]
        assert src == video
        assert dest == scratch_dir / "output.jpg"
        assert result.content == b"jpeg-frame"
        assert result.content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_extraction_failure_propagates(self, scratch_dir):
        extractor = MagicMock()
        extractor.extract_first_frame = AsyncMock(side_effect=FrameExtractionError("no frame"))
        previewer = VideoPreviewer(extractor, ImagePreviewer(MagicMock()))

        with pytest.raises(FrameExtractionError):
            await previewer.preview(scratch_dir / "download")
