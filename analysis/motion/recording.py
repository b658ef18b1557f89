from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from common.frame import Frame
from common.time import clip_stamp
from record.recorder import Recorder, RecorderError, RecordingSession

_LOG = logging.getLogger(__name__)


@dataclass
class RecordingConfig:
    """Configuration for turning the per-frame motion signal into clips."""

    # Consecutive motionless frames tolerated before the clip is closed.
    # The clip closes on the first frame where the counter exceeds this.
    max_frames_without_motion: int = 100

    # Container/codec hint passed through to Recorder.open.
    codec_hint: Optional[str] = None

    # Consecutive encoder failures after which the caller should give up.
    max_encoding_failures: int = 3


class Action(enum.Enum):
    NONE = "none"
    START = "start"
    CONTINUE = "continue"
    STOP = "stop"
    FAILED = "failed"


@dataclass(frozen=True)
class MotionState:
    """Read-only snapshot of the recording state, for overlays and logs."""

    recording: bool
    frames_without_motion: int
    output_id: Optional[str] = None
    frame_count: int = 0
    consecutive_failures: int = 0


@dataclass(frozen=True)
class Decision:
    """Outcome of one :meth:`RecordingStateMachine.step`."""

    action: Action
    output_id: Optional[str] = None
    frame_count: int = 0
    error: Optional[RecorderError] = None


class RecordingStateMachine:
    """Idle/Recording hysteresis over a noisy per-frame motion signal.

    The machine owns at most one :class:`RecordingSession` at a time. The
    recorder is expected to expose ``open``, ``append`` and ``close`` as in
    :class:`record.recorder.Recorder`.

    Recorder failures never escape :meth:`step`: the partial session is
    released, the machine returns to Idle and the error is handed back on
    the returned :class:`Decision`. Whether repeated failures are fatal is
    up to the caller (see ``consecutive_failures``).
    """

    def __init__(
        self,
        recorder: Recorder,
        config: Optional[RecordingConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._recorder = recorder
        self._cfg = config or RecordingConfig()
        self._clock = clock
        self._log = logger or _LOG

        self._session: Optional[RecordingSession] = None
        self._frames_without_motion = 0
        self._consecutive_failures = 0

        # Sessions opened within the same second get a numeric suffix.
        self._last_stamp: Optional[str] = None
        self._name_seq = 0

    # ------------------------------------------------------------------ helpers

    @property
    def config(self) -> RecordingConfig:
        return self._cfg

    @property
    def recording(self) -> bool:
        return self._session is not None

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def snapshot(self) -> MotionState:
        sess = self._session
        return MotionState(
            recording=sess is not None,
            frames_without_motion=self._frames_without_motion,
            output_id=sess.output_id if sess is not None else None,
            frame_count=sess.frame_count if sess is not None else 0,
            consecutive_failures=self._consecutive_failures,
        )

    def _next_output_id(self) -> str:
        base = clip_stamp(self._clock())
        if base == self._last_stamp:
            self._name_seq += 1
            return f"{base}_{self._name_seq}"
        self._last_stamp = base
        self._name_seq = 0
        return base

    def _fail(self, exc: RecorderError, what: str) -> Decision:
        """Drop the current session after a recorder error and go Idle."""
        sess, self._session = self._session, None
        self._frames_without_motion = 0
        self._consecutive_failures += 1

        output_id = sess.output_id if sess is not None else None
        frame_count = sess.frame_count if sess is not None else 0
        self._log.warning(
            "Recorder %s failed for clip %s (non-fatal, failure #%d): %s",
            what,
            output_id,
            self._consecutive_failures,
            exc,
        )
        if sess is not None:
            try:
                self._recorder.close(sess)
            except RecorderError as close_exc:
                self._log.warning("Releasing failed clip %s also failed: %s", output_id, close_exc)

        return Decision(Action.FAILED, output_id=output_id, frame_count=frame_count, error=exc)

    def _start(self, frame: Frame) -> Decision:
        output_id = self._next_output_id()
        try:
            self._session = self._recorder.open(
                output_id, frame.width, frame.height, self._cfg.codec_hint
            )
        except RecorderError as exc:
            return self._fail(exc, "open")

        self._frames_without_motion = 0
        self._log.info("Motion detected at frame %d, recording %s", frame.frame_id, output_id)
        return self._append(frame, Action.START)

    def _append(self, frame: Frame, action: Action) -> Decision:
        sess = self._session
        assert sess is not None
        try:
            self._recorder.append(sess, frame)
        except RecorderError as exc:
            return self._fail(exc, "append")
        self._consecutive_failures = 0
        return Decision(action, output_id=sess.output_id, frame_count=sess.frame_count)

    def _stop(self) -> Decision:
        sess, self._session = self._session, None
        self._frames_without_motion = 0
        if sess is None:
            return Decision(Action.NONE)
        try:
            self._recorder.close(sess)
        except RecorderError as exc:
            self._consecutive_failures += 1
            self._log.warning("Finalizing clip %s failed: %s", sess.output_id, exc)
            return Decision(
                Action.FAILED, output_id=sess.output_id, frame_count=sess.frame_count, error=exc
            )
        self._log.info("Recording %s stopped after %d frames", sess.output_id, sess.frame_count)
        return Decision(Action.STOP, output_id=sess.output_id, frame_count=sess.frame_count)

    # ------------------------------------------------------------------ public

    def step(
        self, frame: Frame, motion_detected: bool, interrupt_requested: bool = False
    ) -> Decision:
        """Evaluate exactly one transition for ``frame``.

        While recording, every frame is appended, including frames inside
        the motionless window; the clip closes right after the frame that
        pushes the motionless counter past ``max_frames_without_motion``.
        """
        if interrupt_requested:
            return self.shutdown()

        if self._session is None:
            if motion_detected:
                return self._start(frame)
            return Decision(Action.NONE)

        if motion_detected:
            self._frames_without_motion = 0
            return self._append(frame, Action.CONTINUE)

        self._frames_without_motion += 1
        decision = self._append(frame, Action.CONTINUE)
        if decision.action is Action.FAILED:
            return decision

        if self._frames_without_motion > self._cfg.max_frames_without_motion:
            return self._stop()
        return decision

    def shutdown(self) -> Decision:
        """Finalize any open session. Safe to call any number of times."""
        if self._session is None:
            return Decision(Action.NONE)
        self._log.info("Shutdown requested, finalizing %s", self._session.output_id)
        return self._stop()
