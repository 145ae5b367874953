# mediapreview/core/geometry.py
"""
Resize planning for previews.

The preview box is ``max_width`` x ``max_height``. One axis (the *pinned*
dimension) is fixed to the box edge and the other follows from a uniform
scale factor, so the aspect ratio is preserved. Images are never enlarged.

EXIF orientations 5-8 involve a 90/270 degree rotation: the pixels are
rotated before resizing, so the pinned axis must be chosen from the
rotated (displayed) dimensions, not the stored ones.
"""
from __future__ import annotations

from dataclasses import dataclass

# EXIF orientation codes that swap width and height when applied
TRANSPOSING_ORIENTATIONS = frozenset({5, 6, 7, 8})


@dataclass(frozen=True)
class ResizePlan:
    """Target size in the displayed (upright) orientation."""
    width: int
    height: int
    scale: float
    pin_width: bool


def fits_within(width: int, height: int, max_width: int, max_height: int) -> bool:
    return width <= max_width and height <= max_height


def oriented_size(width: int, height: int, orientation: int | None) -> tuple[int, int]:
    """Dimensions as displayed once the EXIF orientation has been applied."""
    if orientation in TRANSPOSING_ORIENTATIONS:
        return height, width
    return width, height


def plan_resize(
    width: int,
    height: int,
    orientation: int | None,
    max_width: int,
    max_height: int,
) -> ResizePlan:
    """
    Compute the preview size for a ``width`` x ``height`` source.

    Args:
        width: Stored pixel width
        height: Stored pixel height
        orientation: EXIF orientation code (1-8), None treated as 1
        max_width: Preview box width
        max_height: Preview box height

    Returns:
        ResizePlan with the target (upright) dimensions and the scale factor
        applied to both axes.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"invalid source dimensions {width}x{height}")

    eff_width, eff_height = oriented_size(width, height, orientation)

    # Wider (relative to the box) than tall: the width hits the box first
    pin_width = eff_width / eff_height >= max_width / max_height

    if pin_width:
        scale = max_width / eff_width
    else:
        scale = max_height / eff_height

    # Never enlarge
    scale = min(scale, 1.0)

    if pin_width:
        target_width = min(max_width, eff_width)
        target_height = max(1, round(eff_height * scale))
    else:
        target_width = max(1, round(eff_width * scale))
        target_height = min(max_height, eff_height)

    return ResizePlan(
        width=target_width,
        height=target_height,
        scale=scale,
        pin_width=pin_width,
    )
