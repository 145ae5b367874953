# tests/test_image_worker.py
"""Tests for the external-process image binding."""
from __future__ import annotations

import io
import json
from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image

from conftest import image_bytes, noise_image
from mediapreview.core.domain import (
    ImageEncodeError,
    ImageMetadata,
    ImageMetadataError,
    ProcessingTimeoutError,
)
from mediapreview.core.geometry import ResizePlan, plan_resize
from mediapreview.core.previewers import ImagePreviewer
from mediapreview.infra.image_worker import (
    EXIT_METADATA_ERROR,
    SubprocessImageTransform,
    main,
)
from mediapreview.infra.process_runner import ProcessResult


class TestWorkerMain:
    def test_probe_prints_metadata(self, write_file, capsys):
        path = write_file("a.png", image_bytes(noise_image(30, 20), "PNG"))
        assert main(["probe", str(path)]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["format"] == "PNG"
        assert (data["width"], data["height"]) == (30, 20)

    def test_probe_corrupt(self, write_file, capsys):
        path = write_file("a", b"garbage")
        assert main(["probe", str(path)]) == EXIT_METADATA_ERROR
        assert "Failed to read image metadata" in capsys.readouterr().err


class TestSubprocessImageTransform:
    @pytest.mark.asyncio
    async def test_round_trip_through_child(self, write_file, large_png_bytes):
        path = write_file("a.png", large_png_bytes)
        transform = SubprocessImageTransform(timeout=60)

        meta = await transform.read_metadata(path, "image/png")
        assert (meta.width, meta.height) == (1200, 800)

        data = await transform.encode(path, meta, plan_resize(1200, 800, 1, 600, 600))
        with Image.open(io.BytesIO(data)) as out:
            assert out.format == "WEBP"
            assert out.size == (600, 400)

    @pytest.mark.asyncio
    async def test_previewer_with_child_binding(self, write_file, large_png_bytes):
        path = write_file("download", large_png_bytes)
        result = await ImagePreviewer(SubprocessImageTransform(timeout=60)).preview(path, "image/png")
        assert result.content_type == "image/webp"

    @pytest.mark.asyncio
    async def test_probe_failure_raises_metadata_error(self, write_file):
        path = write_file("a", b"garbage")
        with pytest.raises(ImageMetadataError):
            await SubprocessImageTransform(timeout=60).read_metadata(path)

    @pytest.mark.asyncio
    async def test_empty_encode_output(self, write_file):
        ok_empty = ProcessResult(returncode=0, stdout=b"", stderr=b"")
        with patch("mediapreview.infra.image_worker.run_process", AsyncMock(return_value=ok_empty)):
            with pytest.raises(ImageEncodeError):
                await SubprocessImageTransform().encode(
                    write_file("a", b"x"),
                    ImageMetadata(format="PNG", width=1200, height=800),
                    ResizePlan(600, 400, 0.5, True),
                )

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, write_file):
        with patch(
            "mediapreview.infra.image_worker.run_process",
            AsyncMock(side_effect=ProcessingTimeoutError("image encode", 5)),
        ):
            with pytest.raises(ProcessingTimeoutError):
                await SubprocessImageTransform().encode(
                    write_file("a", b"x"),
                    ImageMetadata(format="PNG", width=1200, height=800),
                    ResizePlan(600, 400, 0.5, True),
                )

    def test_arguments(self):
        transform = SubprocessImageTransform(max_pixels=1000, python="/usr/bin/python3")
        from pathlib import Path

        args = transform._base_args("probe", Path("/s/download"))
        assert args == [
            "/usr/bin/python3", "-m", "mediapreview.infra.image_worker",
            "probe", "/s/download", "--max-pixels", "1000",
        ]
