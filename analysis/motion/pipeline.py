"""Single-worker frame cycle: source -> engine -> recording state machine.

The cancellation token is the only state shared with other threads. It
is checked at the top of every cycle, and whatever ends the loop (end of
stream, cancellation, a source error, a fatal encoder error) the open
clip is finalized and the source closed before `run` returns or raises.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from capture.source import FrameSource
from common.frame import Frame
from record.recorder import RecorderError

from .engine import MotionEngine
from .model import MotionResult
from .overlay import annotate
from .recording import Action, Decision, MotionState, RecordingStateMachine
from .sidecar import MotionSidecarWriter

_LOG = logging.getLogger(__name__)

FrameSink = Callable[[Frame, MotionResult, MotionState], None]


@dataclass
class PipelineStats:
    frames: int = 0
    motion_frames: int = 0
    sessions_started: int = 0
    sessions_stopped: int = 0
    failures: int = 0


class MotionPipeline:
    """Drive one `FrameSource` through motion detection and recording.

    Parameters
    ----------
    source:
        Started by :meth:`run` and always closed on exit.
    engine, machine:
        The detection engine and the recording state machine.
    cancel:
        Cooperative cancellation token; may be set from any thread.
    sinks:
        Callables receiving ``(frame, result, state)`` for every frame,
        e.g. :meth:`overlay.DisplaySink.show`.
    sidecar:
        Optional open writer that receives session boundaries.
    annotate_recording:
        Burn the envelope and a timestamp into recorded frames.
    max_frames:
        Stop after this many frames when > 0.
    """

    def __init__(
        self,
        source: FrameSource,
        engine: MotionEngine,
        machine: RecordingStateMachine,
        cancel: Optional[threading.Event] = None,
        sinks: Optional[List[FrameSink]] = None,
        sidecar: Optional[MotionSidecarWriter] = None,
        annotate_recording: bool = False,
        max_frames: int = 0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._source = source
        self._engine = engine
        self._machine = machine
        self.cancel = cancel or threading.Event()
        self._sinks = list(sinks or [])
        self._sidecar = sidecar
        self._annotate = annotate_recording
        self._max_frames = int(max_frames)
        self._log = logger or _LOG
        self.stats = PipelineStats()

    def _record(self, decision: Decision, frame_id: int, ts_ms: float) -> None:
        if decision.action is Action.START:
            self.stats.sessions_started += 1
        elif decision.action is Action.STOP:
            self.stats.sessions_stopped += 1
        elif decision.action is Action.FAILED:
            self.stats.failures += 1
        if self._sidecar is not None:
            self._sidecar.write_decision(decision, frame_id, ts_ms)

    def process(self, frame: Frame) -> Decision:
        """Run one frame through the engine and the state machine.

        Raises
        ------
        RecorderError
            When the encoder has failed ``max_encoding_failures`` times in
            a row; single failures are logged and absorbed.
        """
        result = self._engine.step(frame)
        self.stats.frames += 1
        if result.is_motion:
            self.stats.motion_frames += 1

        to_record = frame
        if self._annotate and (result.is_motion or self._machine.recording):
            to_record = Frame(img=annotate(frame.img, result), pts_ms=frame.pts_ms, frame_id=frame.frame_id)

        decision = self._machine.step(to_record, result.is_motion)
        self._record(decision, frame.frame_id, frame.pts_ms)

        state = self._machine.snapshot()
        self._log.debug(
            "frame %d: recording=%s frames_without_motion=%d frame_count=%d",
            frame.frame_id,
            state.recording,
            state.frames_without_motion,
            state.frame_count,
        )

        if decision.action is Action.FAILED:
            limit = self._machine.config.max_encoding_failures
            if limit > 0 and self._machine.consecutive_failures >= limit:
                self._log.error(
                    "Recorder failed %d times in a row, giving up", self._machine.consecutive_failures
                )
                assert decision.error is not None
                raise decision.error

        for sink in self._sinks:
            sink(frame, result, state)
        return decision

    def _finalize(self, frame_id: int, ts_ms: float) -> None:
        decision = self._machine.shutdown()
        self._record(decision, frame_id, ts_ms)

    def run(self) -> PipelineStats:
        """Process frames until end of stream, cancellation or ``max_frames``.

        Source errors and fatal recorder errors propagate after cleanup.
        """
        last_id, last_ts = -1, 0.0
        self._source.start()
        try:
            while not self.cancel.is_set():
                frame = self._source.read()
                if frame is None:
                    self._log.info("End of stream after %d frames", self.stats.frames)
                    break
                last_id, last_ts = frame.frame_id, frame.pts_ms
                self.process(frame)

                if self._max_frames > 0 and self.stats.frames >= self._max_frames:
                    self._log.info("Reached max-frames=%d, exiting loop.", self._max_frames)
                    break
            else:
                self._log.info("Cancellation requested, shutting down.")
        finally:
            try:
                self._finalize(last_id, last_ts)
            finally:
                self._source.close()
        return self.stats
