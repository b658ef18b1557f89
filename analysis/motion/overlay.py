"""Overlay drawing and an optional on-screen display.

These are consumers of the engine's outputs (`MotionResult` and
`MotionState`); nothing here feeds back into detection or recording.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional, Tuple

import cv2
import numpy as np

from common.frame import Frame

from .model import BoundingEnvelope, MotionResult
from .recording import MotionState

_LOG = logging.getLogger(__name__)

Color = Tuple[int, int, int]

RED: Color = (0, 0, 255)
BLACK: Color = (0, 0, 0)

_FONT = cv2.FONT_HERSHEY_PLAIN


def draw_envelope(img: np.ndarray, envelope: Optional[BoundingEnvelope], color: Color = RED) -> np.ndarray:
    """Draw the four envelope edges onto ``img`` in place; returns ``img``."""
    if envelope is None:
        return img
    tl, tr, bl, br = envelope.corners()
    cv2.line(img, tl, tr, color)
    cv2.line(img, tl, bl, color)
    cv2.line(img, br, tr, color)
    cv2.line(img, br, bl, color)
    return img


def draw_timestamp(img: np.ndarray, when: Optional[datetime] = None, color: Color = BLACK) -> np.ndarray:
    text = (when or datetime.now()).strftime("%a %b %d %H:%M:%S %Y")
    cv2.putText(img, text, (5, img.shape[0] - 5), _FONT, 1.0, color)
    return img


def draw_recording_indicator(img: np.ndarray, state: MotionState, color: Color = RED) -> np.ndarray:
    if state.recording:
        cv2.putText(img, "Rec", (5, 15), _FONT, 1.0, color)
    return img


def annotate(
    img: np.ndarray,
    result: MotionResult,
    when: Optional[datetime] = None,
) -> np.ndarray:
    """Copy of ``img`` with the envelope and a timestamp burned in."""
    out = img.copy()
    draw_envelope(out, result.envelope)
    draw_timestamp(out, when)
    return out


class DisplaySink:
    """Shows the live feed (and optionally the motion mask) in OpenCV windows.

    Pressing ``q`` or ``Esc`` sets ``cancel``. With ``probe=True`` a left
    click on the live window logs the pixel coordinate and whether it lies
    inside the current envelope.
    """

    LIVE_WINDOW = "Live Cam"
    MASK_WINDOW = "Difference in previous frame"

    def __init__(
        self,
        cancel: threading.Event,
        show_mask: bool = False,
        probe: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._cancel = cancel
        self._show_mask = show_mask
        self._probe = probe
        self._log = logger or _LOG
        self._envelope: Optional[BoundingEnvelope] = None
        self._opened = False

    def _open(self) -> None:
        cv2.namedWindow(self.LIVE_WINDOW)
        if self._show_mask:
            cv2.namedWindow(self.MASK_WINDOW)
        if self._probe:
            cv2.setMouseCallback(self.LIVE_WINDOW, self._on_mouse)
        self._opened = True

    def _on_mouse(self, event: int, x: int, y: int, flags: int, param: object) -> None:
        if event != cv2.EVENT_LBUTTONDOWN:
            return
        env = self._envelope
        inside = env is not None and env.contains(x, y)
        self._log.info("click at (%d, %d) inside_envelope=%s envelope=%s", x, y, inside, env)

    def show(self, frame: Frame, result: MotionResult, state: MotionState) -> None:
        if not self._opened:
            self._open()
        self._envelope = result.envelope

        live = annotate(frame.img, result)
        draw_recording_indicator(live, state)
        cv2.imshow(self.LIVE_WINDOW, live)
        if self._show_mask and result.mask is not None:
            cv2.imshow(self.MASK_WINDOW, result.mask)

        key = cv2.waitKey(1) & 0xFF
        if key in (ord("q"), 27):
            self._log.info("Display closed by user")
            self._cancel.set()

    def close(self) -> None:
        if self._opened:
            cv2.destroyAllWindows()
            self._opened = False
