from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

Point = Tuple[int, int]


@dataclass(frozen=True)
class BoundingEnvelope:
    """
    Axis-aligned rectangle enclosing every motion region of one frame.

    Frames without motion carry ``None`` instead of an envelope, so an
    instance always describes real motion.
    """

    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def top_left(self) -> Point:
        return (self.x0, self.y0)

    @property
    def top_right(self) -> Point:
        return (self.x1, self.y0)

    @property
    def bottom_left(self) -> Point:
        return (self.x0, self.y1)

    @property
    def bottom_right(self) -> Point:
        return (self.x1, self.y1)

    def corners(self) -> Tuple[Point, Point, Point, Point]:
        """Return (top-left, top-right, bottom-left, bottom-right)."""
        return self.top_left, self.top_right, self.bottom_left, self.bottom_right

    def contains(self, x: float, y: float) -> bool:
        return self.x0 <= x <= self.x1 and self.y0 <= y <= self.y1


@dataclass
class MotionResult:
    """
    Per-frame output of the motion engine.

    Downstream consumers (recording state machine, overlay, sidecar) only
    depend on this, never on how the mask was computed.
    """

    # Core signal
    is_motion: bool
    envelope: Optional[BoundingEnvelope]
    pts_ms: float
    frame_id: int

    # Telemetry (best-effort)
    area_frac: float = 0.0  # fraction of the mask marked as motion
    mask: Optional[np.ndarray] = None  # binary mask, kept for display only


@dataclass
class MotionConfig:
    """
    Sensitivity knobs for the frame-differencing engine.

    The blur radius and the difference threshold are the two parameters
    that govern sensitivity; the defaults match the long-standing tuning
    of a 9x9 Gaussian with sigma 2 and a threshold of 30/255.
    """

    # Pre-differencing noise suppression
    blur_mode: str = "gaussian"  # "gaussian", "median" or "none"
    blur_ksize: int = 9  # odd kernel size
    blur_sigma: float = 2.0  # gaussian only

    # Binary threshold on |current - previous|
    diff_threshold: int = 30

    # Keep the binary mask on MotionResult (display needs it)
    keep_mask: bool = False
