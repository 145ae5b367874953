# mediapreview/core/domain.py
from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional, Union


# ============================================================================
# MEDIA KINDS / METADATA
# ============================================================================

class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


# Raster formats that carry no lossy compression of their own. Re-encoding
# these uses the codec's lossless mode instead of a quality setting.
LOSSLESS_FORMATS = frozenset({"PNG", "BMP", "TIFF"})

VECTOR_FORMATS = frozenset({"SVG"})


@dataclass(frozen=True)
class ImageMetadata:
    """
    Read-only facts about a downloaded image.

    ``width``/``height`` are the stored pixel dimensions (before any EXIF
    rotation) and are None when the decoder cannot determine them.
    ``delays`` holds one duration in milliseconds per animation frame.
    """
    format: str
    width: Optional[int] = None
    height: Optional[int] = None
    orientation: int = 1
    density: Optional[float] = None
    loop: Optional[int] = None
    delays: tuple[int, ...] = field(default_factory=tuple)
    frames: int = 1

    @property
    def is_vector(self) -> bool:
        return self.format.upper() in VECTOR_FORMATS

    @property
    def is_animated(self) -> bool:
        return self.frames > 1

    @property
    def is_lossless(self) -> bool:
        return self.format.upper() in LOSSLESS_FORMATS

    @property
    def has_dimensions(self) -> bool:
        return self.width is not None and self.height is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["delays"] = list(self.delays)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageMetadata":
        return cls(
            format=str(data["format"]),
            width=data.get("width"),
            height=data.get("height"),
            orientation=int(data.get("orientation") or 1),
            density=data.get("density"),
            loop=data.get("loop"),
            delays=tuple(int(d) for d in data.get("delays") or ()),
            frames=int(data.get("frames") or 1),
        )


# ============================================================================
# PREVIEW RESULT
# ============================================================================

@dataclass(frozen=True)
class PreviewResult:
    """Final preview payload handed to the transport layer."""
    content: bytes
    content_type: str

    @property
    def etag(self) -> str:
        """SHA-1 hex digest of the content, used as the cache validator."""
        return hashlib.sha1(self.content).hexdigest()

    @property
    def size_bytes(self) -> int:
        return len(self.content)


# ============================================================================
# PIPELINE OUTCOMES (tagged union)
# ============================================================================

class OutcomeKind(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    UPSTREAM_ERROR = "upstream_error"
    UNSUPPORTED = "unsupported"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class Success:
    result: PreviewResult
    kind: OutcomeKind = field(default=OutcomeKind.SUCCESS, init=False)


@dataclass(frozen=True)
class Rejected:
    """Origin answered 403/404/410; the status is passed through verbatim."""
    status: int
    kind: OutcomeKind = field(default=OutcomeKind.REJECTED, init=False)


@dataclass(frozen=True)
class UpstreamError:
    reason: str
    status: Optional[int] = None
    kind: OutcomeKind = field(default=OutcomeKind.UPSTREAM_ERROR, init=False)


@dataclass(frozen=True)
class Unsupported:
    content_type: Optional[str] = None
    kind: OutcomeKind = field(default=OutcomeKind.UNSUPPORTED, init=False)


@dataclass(frozen=True)
class TimedOut:
    phase: str
    kind: OutcomeKind = field(default=OutcomeKind.TIMED_OUT, init=False)


PipelineOutcome = Union[Success, Rejected, UpstreamError, Unsupported, TimedOut]


# ============================================================================
# ERRORS
# ============================================================================

class MediaFetchError(Exception):
    """Network-level failure while retrieving the remote resource."""
    pass


class FetchTimeoutError(MediaFetchError):
    """
    A fetch deadline fired.

    Attributes:
        phase: "connect" (waiting for response headers) or "transfer"
            (streaming the body to scratch storage).
    """

    def __init__(self, phase: str, timeout: float | None = None):
        self.phase = phase
        self.timeout = timeout
        detail = f" after {timeout:g}s" if timeout is not None else ""
        super().__init__(f"{phase} deadline exceeded{detail}")


class ProcessingError(Exception):
    """Base exception for preview generation faults"""
    pass


class ImageMetadataError(ProcessingError):
    """Image metadata could not be read (corrupt or unparseable file)"""
    pass


class ImageEncodeError(ProcessingError):
    """Resizing or re-encoding failed"""
    pass


class FrameExtractionError(ProcessingError):
    """The video frame extractor failed or exited non-zero"""
    pass


class ProcessingTimeoutError(ProcessingError):
    """An image/video processing deadline was exceeded"""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} exceeded {timeout:g}s deadline")
