from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

from analysis.motion import (
    Action,
    MotionConfig,
    MotionEngine,
    MotionPipeline,
    MotionSidecarWriter,
    RecordingConfig,
    RecordingStateMachine,
    read_sidecar,
)
from capture.source import FrameSourceError, SequenceSource
from common.frame import Frame
from record.recorder import RecorderWriteError, RecordingSession


class _FakeRecorder:
    def __init__(self, fail_appends: bool = False) -> None:
        self.sessions: List[RecordingSession] = []
        self.frames: List[int] = []
        self.closed: List[str] = []
        self.fail_appends = fail_appends

    def open(self, output_id: str, width: int, height: int, codec_hint: Optional[str] = None):
        sess = RecordingSession(output_id=output_id, path=Path(output_id), width=width, height=height)
        self.sessions.append(sess)
        return sess

    def append(self, session: RecordingSession, frame: Frame) -> None:
        if self.fail_appends:
            raise RecorderWriteError("no space left on device")
        self.frames.append(frame.frame_id)
        session.frame_count += 1

    def close(self, session: RecordingSession) -> None:
        if not session.closed:
            session.closed = True
            self.closed.append(session.output_id)


class _FailingSource(SequenceSource):
    """Raises after ``fail_after`` frames, like a camera being unplugged."""

    def __init__(self, images, fail_after: int) -> None:
        super().__init__(images)
        self._fail_after = fail_after
        self._served = 0
        self.closed = False

    def read(self):
        if self._served >= self._fail_after:
            raise FrameSourceError("device disconnected")
        self._served += 1
        return super().read()

    def close(self) -> None:
        self.closed = True
        super().close()


def _still(h: int = 60, w: int = 80) -> np.ndarray:
    return np.full((h, w, 3), 30, dtype=np.uint8)


def _with_block(x: int) -> np.ndarray:
    img = _still()
    img[20:40, x : x + 15] = 220
    return img


def _clip_images(n_still_after: int) -> List[np.ndarray]:
    # frame 0 primes the engine, frame 1 carries motion, then a still scene
    return [_still(), _with_block(10)] + [_with_block(10)] * n_still_after


def _pipeline(images, recorder, max_still=5, **kw) -> MotionPipeline:
    engine = MotionEngine(MotionConfig())
    machine = RecordingStateMachine(recorder, RecordingConfig(max_frames_without_motion=max_still))
    return MotionPipeline(SequenceSource(images), engine, machine, **kw)


def test_end_to_end_records_one_clip():
    rec = _FakeRecorder()
    stats = _pipeline(_clip_images(10), rec, max_still=5).run()

    assert stats.frames == 12
    assert stats.sessions_started == 1
    assert stats.sessions_stopped == 1
    assert len(rec.sessions) == 1
    # motion on frame 1, still frames 2..6 tolerated, closes after frame 7
    assert rec.frames == list(range(1, 8))
    assert rec.closed == [rec.sessions[0].output_id]


def test_end_of_stream_finalizes_open_clip():
    rec = _FakeRecorder()
    stats = _pipeline(_clip_images(2), rec, max_still=100).run()

    assert stats.sessions_started == 1
    assert stats.sessions_stopped == 1
    assert rec.closed == [rec.sessions[0].output_id]
    assert rec.sessions[0].closed is True


def test_cancel_before_start_processes_nothing():
    rec = _FakeRecorder()
    cancel = threading.Event()
    cancel.set()
    stats = _pipeline(_clip_images(5), rec, cancel=cancel).run()
    assert stats.frames == 0
    assert rec.sessions == []


def test_cancel_from_sink_finalizes_clip_exactly_once():
    rec = _FakeRecorder()
    cancel = threading.Event()
    seen = []

    def sink(frame, result, state):
        seen.append((frame.frame_id, state.recording))
        if frame.frame_id == 3:
            cancel.set()

    stats = _pipeline(_clip_images(20), rec, max_still=100, cancel=cancel, sinks=[sink]).run()

    assert stats.frames == 4
    assert seen[1] == (1, True)
    assert len(rec.closed) == 1
    assert rec.frames == [1, 2, 3]


def test_source_error_propagates_after_cleanup():
    rec = _FakeRecorder()
    engine = MotionEngine(MotionConfig())
    machine = RecordingStateMachine(rec, RecordingConfig(max_frames_without_motion=100))
    source = _FailingSource(_clip_images(10), fail_after=4)
    pipeline = MotionPipeline(source, engine, machine)

    with pytest.raises(FrameSourceError):
        pipeline.run()

    assert source.closed is True
    assert machine.recording is False
    assert rec.closed == [rec.sessions[0].output_id]


def test_single_encoder_failure_is_absorbed():
    rec = _FakeRecorder(fail_appends=True)
    images = [_still(), _with_block(10), _with_block(10), _with_block(10)]
    stats = _pipeline(images, rec, max_still=100).run()

    assert stats.failures == 1
    assert stats.frames == 4
    assert rec.closed == [rec.sessions[0].output_id]


def test_repeated_encoder_failures_are_fatal():
    rec = _FakeRecorder(fail_appends=True)
    # alternate block position so every frame after the first has motion
    images = [_still()] + [_with_block(10 if i % 2 else 50) for i in range(10)]
    pipeline = _pipeline(images, rec, max_still=100)

    with pytest.raises(RecorderWriteError):
        pipeline.run()

    assert pipeline.stats.failures == 3
    assert len(rec.sessions) == 3


def test_annotated_recording_leaves_source_frame_untouched():
    recorded = []

    class _Capturing(_FakeRecorder):
        def append(self, session, frame):
            recorded.append(frame.img)
            super().append(session, frame)

    images = _clip_images(1)
    originals = [img.copy() for img in images]
    _pipeline(images, _Capturing(), annotate_recording=True).run()

    assert recorded
    for img, orig in zip(images, originals):
        assert np.array_equal(img, orig)
    assert any(not np.array_equal(r, images[1]) for r in recorded)


def test_sidecar_receives_session_boundaries(tmp_path: Path):
    rec = _FakeRecorder()
    path = tmp_path / "sessions.jsonl"
    with MotionSidecarWriter(path) as sidecar:
        _pipeline(_clip_images(10), rec, max_still=5, sidecar=sidecar).run()

    rows = list(read_sidecar(path))
    assert [r["type"] for r in rows] == ["session_open", "session_close"]
    assert rows[0]["frame_id"] == 1
    assert rows[1]["frame_id"] == 7
    assert rows[1]["frame_count"] == 7
    assert rows[0]["output_id"] == rows[1]["output_id"]


def test_process_returns_decision():
    rec = _FakeRecorder()
    pipeline = _pipeline([], rec)
    assert pipeline.process(Frame(img=_still(), pts_ms=0.0, frame_id=0)).action is Action.NONE
    assert pipeline.process(Frame(img=_with_block(10), pts_ms=33.0, frame_id=1)).action is Action.START
