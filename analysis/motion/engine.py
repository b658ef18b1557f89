"""Frame-differencing motion engine.

Consumes `common.frame.Frame` objects and produces `MotionResult`
instances. Each frame is smoothed, converted to grayscale and compared
with the previous frame; the resulting binary mask is reduced to a single
bounding envelope. The presence of an envelope is the motion signal that
drives recording.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from common.frame import Frame

from .difference import GrayscaleConverter, OpenCVGrayscale, compute_mask, smooth
from .model import MotionConfig, MotionResult
from .regions import find_envelope

_LOG = logging.getLogger(__name__)


class MotionEngine:
    """Stateful two-frame differencing engine.

    The only state carried between calls is the previous grayscale frame,
    so the first frame of a stream (or the first after :meth:`reset`)
    never reports motion.
    """

    def __init__(
        self,
        config: Optional[MotionConfig] = None,
        converter: Optional[GrayscaleConverter] = None,
    ) -> None:
        self._cfg = config or MotionConfig()
        self._converter = converter or OpenCVGrayscale()
        self._prev_gray: Optional[np.ndarray] = None

    @property
    def config(self) -> MotionConfig:
        return self._cfg

    def reset(self) -> None:
        self._prev_gray = None

    def step(self, frame: Frame) -> MotionResult:
        """Process a single frame and return a `MotionResult`.

        Raises
        ------
        ValueError
            If the frame size differs from the previous frame or the
            configured threshold/kernel is invalid.
        """
        gray = self._converter.convert(smooth(frame.img, self._cfg))
        prev, self._prev_gray = self._prev_gray, gray

        if prev is None:
            return MotionResult(
                is_motion=False,
                envelope=None,
                pts_ms=float(frame.pts_ms),
                frame_id=int(frame.frame_id),
            )

        mask = compute_mask(prev, gray, int(self._cfg.diff_threshold))
        envelope = find_envelope(mask)

        total_px = int(mask.size)
        area_frac = float(np.count_nonzero(mask)) / float(total_px) if total_px > 0 else 0.0

        _LOG.debug(
            "frame %d: area_frac=%.5f envelope=%s",
            frame.frame_id,
            area_frac,
            envelope,
        )
        return MotionResult(
            is_motion=envelope is not None,
            envelope=envelope,
            pts_ms=float(frame.pts_ms),
            frame_id=int(frame.frame_id),
            area_frac=area_frac,
            mask=mask if self._cfg.keep_mask else None,
        )
