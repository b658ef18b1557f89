from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

import cv2

from common.frame import Frame

_LOG = logging.getLogger(__name__)

# container extension -> fourcc
_FOURCC_BY_CONTAINER = {
    "mp4": "mp4v",
    "avi": "MJPG",
}


@dataclass
class RecorderConfig:
    """Configuration for the local video-file recorder.

    Parameters
    ----------
    out_dir:
        Directory where clips are written. Created on first use.
    container:
        Container extension, ``"mp4"`` or ``"avi"``.
    fourcc:
        Optional explicit codec fourcc. When ``None`` it is derived from
        ``container``.
    fps:
        Frame rate written into the container header.
    """

    out_dir: Path = Path(".")
    container: str = "mp4"
    fourcc: Optional[str] = None
    fps: float = 30.0


@dataclass
class RecordingSession:
    """One open output clip."""

    output_id: str
    path: Path
    width: int
    height: int
    frame_count: int = 0
    closed: bool = False
    handle: Any = field(default=None, repr=False)


class RecorderError(Exception):
    """Base class for recorder-related errors."""


class RecorderOpenError(RecorderError):
    """The output stream could not be created."""


class RecorderWriteError(RecorderError):
    """A frame could not be appended to an open session."""


class RecorderCloseError(RecorderError):
    """Finalizing a session failed; the clip may be truncated."""


class Recorder(Protocol):
    def open(
        self, output_id: str, width: int, height: int, codec_hint: Optional[str] = None
    ) -> RecordingSession: ...

    def append(self, session: RecordingSession, frame: Frame) -> None: ...

    def close(self, session: RecordingSession) -> None: ...


class VideoFileRecorder:
    """Writes clips to ``out_dir/<output_id>.<container>`` via ``cv2.VideoWriter``."""

    def __init__(self, cfg: Optional[RecorderConfig] = None, logger: Optional[logging.Logger] = None) -> None:
        self._cfg = cfg or RecorderConfig()
        self._log = logger or _LOG

    @property
    def config(self) -> RecorderConfig:
        return self._cfg

    def _resolve(self, codec_hint: Optional[str]) -> tuple[str, str]:
        container = (codec_hint or self._cfg.container or "mp4").lower().lstrip(".")
        fourcc = self._cfg.fourcc or _FOURCC_BY_CONTAINER.get(container)
        if fourcc is None or len(fourcc) != 4:
            raise RecorderOpenError(
                f"no codec known for container {container!r}; set RecorderConfig.fourcc"
            )
        return container, fourcc

    def open(
        self, output_id: str, width: int, height: int, codec_hint: Optional[str] = None
    ) -> RecordingSession:
        """Create the output file and return an open session.

        Raises
        ------
        RecorderOpenError
            If the directory or the writer cannot be created.
        """
        if width <= 0 or height <= 0:
            raise RecorderOpenError(f"invalid frame size {width}x{height}")

        container, fourcc = self._resolve(codec_hint)
        out_dir = Path(self._cfg.out_dir)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RecorderOpenError(f"cannot create output dir {out_dir!s}: {exc}") from exc

        path = out_dir / f"{output_id}.{container}"
        try:
            writer = cv2.VideoWriter(
                str(path),
                cv2.VideoWriter_fourcc(*fourcc),
                float(self._cfg.fps),
                (int(width), int(height)),
            )
        except cv2.error as exc:
            raise RecorderOpenError(f"VideoWriter failed for {path!s}: {exc}") from exc

        if not writer.isOpened():
            writer.release()
            raise RecorderOpenError(f"VideoWriter could not open {path!s} (fourcc={fourcc})")

        self._log.info("opened clip %s (%dx%d, %s, %.1f fps)", path, width, height, fourcc, self._cfg.fps)
        return RecordingSession(
            output_id=output_id,
            path=path,
            width=int(width),
            height=int(height),
            handle=writer,
        )

    def append(self, session: RecordingSession, frame: Frame) -> None:
        if session.closed or session.handle is None:
            raise RecorderWriteError(f"session {session.output_id} is closed")
        if frame.width != session.width or frame.height != session.height:
            raise RecorderWriteError(
                f"frame size {frame.width}x{frame.height} does not match "
                f"session {session.width}x{session.height}"
            )

        img = frame.img
        if img.ndim == 2:
            img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
        try:
            session.handle.write(img)
        except cv2.error as exc:
            raise RecorderWriteError(f"write to {session.path!s} failed: {exc}") from exc
        session.frame_count += 1

    def close(self, session: RecordingSession) -> None:
        """Flush and finalize; a second call is a no-op."""
        if session.closed:
            return
        session.closed = True
        writer, session.handle = session.handle, None
        if writer is None:
            return
        try:
            writer.release()
        except cv2.error as exc:
            raise RecorderCloseError(f"finalizing {session.path!s} failed: {exc}") from exc
        self._log.info("closed clip %s after %d frames", session.path, session.frame_count)


def recorder_config_from_cfg(cfg_module: Any) -> RecorderConfig:
    """Build :class:`RecorderConfig` from an application config module.

    Recognised (all optional):

    - CLIP_OUT_DIR
    - CLIP_CONTAINER
    - CLIP_FOURCC
    - CLIP_FPS
    """
    defaults = RecorderConfig()
    out_dir = getattr(cfg_module, "CLIP_OUT_DIR", None)
    return RecorderConfig(
        out_dir=Path(out_dir) if out_dir else defaults.out_dir,
        container=str(getattr(cfg_module, "CLIP_CONTAINER", defaults.container)),
        fourcc=getattr(cfg_module, "CLIP_FOURCC", defaults.fourcc),
        fps=float(getattr(cfg_module, "CLIP_FPS", defaults.fps)),
    )
