from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import threading
from pathlib import Path
from typing import Optional, Union

from analysis.motion.config import (
    load_config_module,
    motion_config_from_cfg,
    recording_config_from_cfg,
)
from analysis.motion.engine import MotionEngine
from analysis.motion.model import MotionConfig
from analysis.motion.overlay import DisplaySink
from analysis.motion.pipeline import MotionPipeline
from analysis.motion.recording import RecordingConfig, RecordingStateMachine
from analysis.motion.sidecar import MotionSidecarWriter
from capture.source import CameraSource, FrameSource, FrameSourceError, NullSource
from record.recorder import (
    RecorderConfig,
    RecorderError,
    VideoFileRecorder,
    recorder_config_from_cfg,
)

_LOG = logging.getLogger(__name__)


def _parse_device(value: str) -> Union[int, str]:
    """Camera index when numeric, otherwise a file path or stream URL."""
    try:
        return int(value)
    except ValueError:
        return value


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Watch a video source and record a clip whenever motion is present.",
    )
    ap.add_argument(
        "--device",
        type=str,
        default="0",
        help="Camera index, video file or stream URL.",
    )
    ap.add_argument(
        "--prefer",
        type=str,
        choices=["camera", "null"],
        default="camera",
        help='Source backend ("camera" for OpenCV capture, "null" for synthetic black frames).',
    )
    ap.add_argument(
        "--out-dir",
        type=str,
        default=None,
        help="Directory where clips are written (default: current directory).",
    )
    ap.add_argument(
        "--container",
        type=str,
        choices=["mp4", "avi"],
        default=None,
        help="Clip container format.",
    )
    ap.add_argument(
        "--config-module",
        type=str,
        default=None,
        help="Python module with upper-case config constants (overrides MOTION_CONFIG_MODULE).",
    )
    ap.add_argument(
        "--motion-sidecar",
        type=str,
        default=None,
        help="Optional path of a JSONL log of recording sessions.",
    )
    ap.add_argument(
        "--max-frames",
        type=int,
        default=0,
        help="If > 0, stop after this many frames; otherwise run until Ctrl+C.",
    )

    # Detection tuning
    ap.add_argument(
        "--diff-threshold",
        type=int,
        default=None,
        help="Per-pixel absolute difference (0-255) above which a pixel counts as motion.",
    )
    ap.add_argument(
        "--blur-ksize",
        type=int,
        default=None,
        help="Odd smoothing kernel size applied before differencing.",
    )
    ap.add_argument(
        "--blur-mode",
        type=str,
        choices=["gaussian", "median", "none"],
        default=None,
        help="Smoothing filter applied before differencing.",
    )
    ap.add_argument(
        "--max-frames-without-motion",
        type=int,
        default=None,
        help="Motionless frames tolerated before a clip is closed.",
    )

    # Display
    ap.add_argument(
        "--display",
        action="store_true",
        help="Show the live feed with the motion envelope overlay.",
    )
    ap.add_argument(
        "--show-mask",
        action="store_true",
        help="With --display, also show the motion mask window.",
    )
    ap.add_argument(
        "--probe",
        action="store_true",
        help="With --display, log the pixel coordinate of mouse clicks.",
    )
    ap.add_argument(
        "--annotate",
        action="store_true",
        help="Burn the motion envelope and a timestamp into recorded clips.",
    )

    ap.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return ap


def _build_configs(args: argparse.Namespace) -> tuple[MotionConfig, RecordingConfig, RecorderConfig]:
    cfg_module = load_config_module(args.config_module)
    if cfg_module is not None:
        motion_cfg = motion_config_from_cfg(cfg_module)
        rec_cfg = recording_config_from_cfg(cfg_module)
        writer_cfg = recorder_config_from_cfg(cfg_module)
    else:
        motion_cfg, rec_cfg, writer_cfg = MotionConfig(), RecordingConfig(), RecorderConfig()

    # CLI flags win over the config module.
    if args.diff_threshold is not None:
        motion_cfg.diff_threshold = args.diff_threshold
    if args.blur_ksize is not None:
        motion_cfg.blur_ksize = args.blur_ksize
    if args.blur_mode is not None:
        motion_cfg.blur_mode = args.blur_mode
    if args.max_frames_without_motion is not None:
        rec_cfg.max_frames_without_motion = args.max_frames_without_motion
    if args.out_dir:
        writer_cfg.out_dir = Path(args.out_dir)
    if args.container:
        writer_cfg.container = args.container
    motion_cfg.keep_mask = motion_cfg.keep_mask or bool(args.display and args.show_mask)
    return motion_cfg, rec_cfg, writer_cfg


def _install_signal_handlers(cancel: threading.Event) -> None:
    def _handler(signum, _frame) -> None:
        _LOG.info("Signal %d received, stopping after the current frame.", signum)
        cancel.set()

    for sig in (signal.SIGINT, getattr(signal, "SIGTERM", None)):
        if sig is not None:
            signal.signal(sig, _handler)


def main(argv: Optional[list[str]] = None) -> int:
    ap = build_arg_parser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    motion_cfg, rec_cfg, writer_cfg = _build_configs(args)

    # ------------------------------------------------------------------ source

    source: FrameSource
    if args.prefer == "null":
        source = NullSource()
    else:
        source = CameraSource(_parse_device(args.device), fps_fallback=writer_cfg.fps)

    # ------------------------------------------------------------------ recorder + motion stack

    recorder = VideoFileRecorder(writer_cfg)
    engine = MotionEngine(motion_cfg)
    machine = RecordingStateMachine(recorder, rec_cfg)

    cancel = threading.Event()
    _install_signal_handlers(cancel)

    display: Optional[DisplaySink] = None
    sinks = []
    if args.display:
        display = DisplaySink(cancel, show_mask=args.show_mask, probe=args.probe)
        sinks.append(display.show)

    _LOG.info(
        "Writing clips to %s (threshold=%d, blur=%s/%d, max_frames_without_motion=%d)",
        writer_cfg.out_dir,
        motion_cfg.diff_threshold,
        motion_cfg.blur_mode,
        motion_cfg.blur_ksize,
        rec_cfg.max_frames_without_motion,
    )

    # ------------------------------------------------------------------ main loop

    with contextlib.ExitStack() as stack:
        sidecar = None
        if args.motion_sidecar:
            sidecar = stack.enter_context(MotionSidecarWriter(Path(args.motion_sidecar)))
            _LOG.info("Writing session log to %s", args.motion_sidecar)
        if display is not None:
            stack.callback(display.close)

        pipeline = MotionPipeline(
            source,
            engine,
            machine,
            cancel=cancel,
            sinks=sinks,
            sidecar=sidecar,
            annotate_recording=args.annotate,
            max_frames=args.max_frames,
        )
        try:
            stats = pipeline.run()
        except FrameSourceError as exc:
            _LOG.error("Video source failed after %d frames: %s", pipeline.stats.frames, exc)
            return 2
        except RecorderError as exc:
            _LOG.error("Recorder failed repeatedly, giving up: %s", exc)
            return 3

    _LOG.info(
        "Processed %d frames (%d with motion), %d clips started, %d failures",
        stats.frames,
        stats.motion_frames,
        stats.sessions_started,
        stats.failures,
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
