"""Reduce the connected regions of a motion mask to one bounding envelope."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

import cv2
import numpy as np

from .model import BoundingEnvelope

# OpenCV rotated rectangle: ((cx, cy), (width, height), angle_deg)
Region = Tuple[Tuple[float, float], Tuple[float, float], float]


def extract_regions(mask: np.ndarray) -> List[Region]:
    """Minimal-area rectangle of every contour in ``mask`` (flat list, no hierarchy)."""
    contours = cv2.findContours(mask, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)[-2]
    return [cv2.minAreaRect(c) for c in contours if len(c) > 0]


def reduce_regions(regions: Iterable[Region]) -> Optional[BoundingEnvelope]:
    """Fold regions into the envelope of their bounds, or ``None`` if there are none.

    Each region contributes ``[cx - w, cx + w] x [cy - h, cy + h]``: the
    full rectangle extent is used as the offset from the centre, so bounds
    are over-estimated roughly twofold. Recording sensitivity is tuned
    against this convention. Coordinates are truncated toward zero.

    Single-point contours (width and height both 0) are skipped, so one
    isolated motion pixel does not open a clip.
    """
    x0 = y0 = x1 = y1 = 0
    found = False

    for (cx, cy), (w, h), _angle in regions:
        if w <= 0 and h <= 0:
            continue

        small_x = int(cx - w)
        large_x = int(cx + w)
        small_y = int(cy - h)
        large_y = int(cy + h)

        if not found:
            x0, y0, x1, y1 = small_x, small_y, large_x, large_y
            found = True
            continue

        if small_x < x0:
            x0 = small_x
        if small_y < y0:
            y0 = small_y
        if large_x > x1:
            x1 = large_x
        if large_y > y1:
            y1 = large_y

    if not found:
        return None
    return BoundingEnvelope(x0=x0, y0=y0, x1=x1, y1=y1)


def find_envelope(mask: np.ndarray) -> Optional[BoundingEnvelope]:
    return reduce_regions(extract_regions(mask))
