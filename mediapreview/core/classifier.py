# mediapreview/core/classifier.py
"""
Decide what to do with an origin response before its body is downloaded.

Only the status code and the reported Content-Type are consulted; the body
is never sniffed here.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from mediapreview.core.domain import MediaKind

# Gone/forbidden resources: surfaced to the client with the same status
PASSTHROUGH_STATUSES = frozenset({403, 404, 410})


class Decision(str, Enum):
    PROCEED = "proceed"
    REJECTED = "rejected"
    UPSTREAM_ERROR = "upstream_error"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class Classification:
    decision: Decision
    kind: Optional[MediaKind] = None
    status: Optional[int] = None

    @property
    def proceed(self) -> bool:
        return self.decision is Decision.PROCEED


def classify(status: int, content_type: str | None) -> Classification:
    """
    Classify an origin response.

    Args:
        status: HTTP status of the final (post-redirect) response
        content_type: Content-Type header value, if any

    Returns:
        Classification; ``kind`` is set only for PROCEED, ``status`` only
        for REJECTED and UPSTREAM_ERROR.
    """
    if status in PASSTHROUGH_STATUSES:
        return Classification(Decision.REJECTED, status=status)

    if not 200 <= status < 300:
        return Classification(Decision.UPSTREAM_ERROR, status=status)

    kind = media_kind_for(content_type)
    if kind is None:
        return Classification(Decision.UNSUPPORTED)

    return Classification(Decision.PROCEED, kind=kind)


def media_kind_for(content_type: str | None) -> MediaKind | None:
    """Map a Content-Type value to a media kind (video wins if both appear)."""
    if not content_type:
        return None

    normalized = content_type.lower()
    if "video/" in normalized:
        return MediaKind.VIDEO
    if "image/" in normalized:
        return MediaKind.IMAGE
    return None
