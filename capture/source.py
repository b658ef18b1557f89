from __future__ import annotations

import logging
import time
from typing import Iterable, List, Optional, Protocol, Union

import cv2
import numpy as np

from common.frame import Frame
from common.time import now_ms

_LOG = logging.getLogger(__name__)


class FrameSourceError(Exception):
    """The frame source failed (device unavailable, grab error)."""


class FrameSource(Protocol):
    def start(self) -> None: ...
    def read(self) -> Optional[Frame]: ...  # None == end of stream
    def close(self) -> None: ...


class CameraSource:
    """Frames from a camera index, a stream URL or a video file via ``cv2.VideoCapture``."""

    def __init__(self, device: Union[int, str] = 0, fps_fallback: float = 30.0) -> None:
        self.device = device
        self._fps_fallback = fps_fallback
        self._cap: Optional[cv2.VideoCapture] = None
        self._frame_id = 0

    @property
    def fps(self) -> float:
        if self._cap is None:
            return self._fps_fallback
        fps = float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0)
        return fps if fps > 0.0 else self._fps_fallback

    def start(self) -> None:
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            raise FrameSourceError(f"could not open video source {self.device!r}")
        self._cap = cap
        self._frame_id = 0
        _LOG.info("opened video source %r (%.1f fps)", self.device, self.fps)

    def read(self) -> Optional[Frame]:
        if self._cap is None:
            raise FrameSourceError("source is not started")
        try:
            ok, img = self._cap.read()
        except cv2.error as exc:
            raise FrameSourceError(f"grab from {self.device!r} failed: {exc}") from exc
        if not ok or img is None:
            return None
        frame = Frame(img=img, pts_ms=now_ms(), frame_id=self._frame_id)
        self._frame_id += 1
        return frame

    def close(self) -> None:
        cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()


class SequenceSource:
    """Replays a fixed list of images, one per ``read``. Useful for tests/dev."""

    def __init__(self, images: Iterable[np.ndarray], frame_interval_ms: float = 1000.0 / 30.0) -> None:
        self._images: List[np.ndarray] = list(images)
        self._interval_ms = frame_interval_ms
        self._idx = 0
        self._running = False

    def start(self) -> None:
        self._running = True

    def read(self) -> Optional[Frame]:
        if not self._running or self._idx >= len(self._images):
            return None
        img = self._images[self._idx]
        frame = Frame(img=img, pts_ms=self._idx * self._interval_ms, frame_id=self._idx)
        self._idx += 1
        return frame

    def close(self) -> None:
        self._running = False


class NullSource:
    """Synthesizes black frames at a fixed rate."""

    def __init__(self, width: int = 640, height: int = 360, fps: float = 15.0):
        self.width, self.height, self.fps = width, height, fps
        self._running = False
        self._next_ts = 0.0
        self._frame_id = 0

    def start(self) -> None:
        self._running = True
        self._next_ts = time.time() * 1000.0

    def read(self) -> Optional[Frame]:
        if not self._running:
            return None
        wait_s = (self._next_ts - time.time() * 1000.0) / 1000.0
        if wait_s > 0:
            time.sleep(wait_s)
        frame = Frame(
            img=np.zeros((self.height, self.width, 3), dtype=np.uint8),
            pts_ms=time.time() * 1000.0,
            frame_id=self._frame_id,
        )
        self._frame_id += 1
        self._next_ts += 1000.0 / max(self.fps, 0.001)
        return frame

    def close(self) -> None:
        self._running = False
