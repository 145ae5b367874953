# tests/conftest.py
"""Pytest configuration and fixtures"""
import io
import random
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from PIL import Image  # noqa: E402


def noise_image(width: int, height: int, mode: str = "RGB", seed: int = 0) -> Image.Image:
    """Random pixels: compresses poorly, so a downscaled WebP is always smaller."""
    channels = len(mode)
    data = random.Random(seed).randbytes(width * height * channels)
    return Image.frombytes(mode, (width, height), data)


def image_bytes(img: Image.Image, fmt: str, **save_kwargs) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def animated_gif_bytes(width: int = 900, height: int = 300, durations=(100, 200, 300), loop: int | None = 0) -> bytes:
    """loop=None writes no NETSCAPE block (the GIF plays once)."""
    frames = [
        noise_image(width, height, seed=i).convert("P", palette=Image.Palette.ADAPTIVE)
        for i in range(len(durations))
    ]
    buf = io.BytesIO()
    frames[0].save(
        buf,
        format="GIF",
        save_all=True,
        append_images=frames[1:],
        duration=list(durations),
        disposal=1,
        **({} if loop is None else {"loop": loop}),
    )
    return buf.getvalue()


@pytest.fixture
def scratch_dir(tmp_path):
    """Empty per-test scratch directory"""
    path = tmp_path / "run"
    path.mkdir()
    return path


@pytest.fixture
def write_file(tmp_path):
    """Write bytes to a named file under tmp_path and return its path"""
    def _write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def large_png_bytes():
    """1200x800 PNG (scenario: resized to 600x400)"""
    return image_bytes(noise_image(1200, 800), "PNG")


@pytest.fixture
def small_png_bytes():
    """400x300 PNG, already inside the preview box"""
    return image_bytes(noise_image(400, 300), "PNG")


@pytest.fixture
def animated_gif():
    return animated_gif_bytes()
