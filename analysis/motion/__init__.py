"""Public exports for the motion analysis package."""

from __future__ import annotations

from .difference import GrayscaleConverter, OpenCVGrayscale, compute_mask, smooth
from .engine import MotionEngine
from .model import BoundingEnvelope, MotionConfig, MotionResult
from .pipeline import MotionPipeline, PipelineStats
from .recording import Action, Decision, MotionState, RecordingConfig, RecordingStateMachine
from .regions import extract_regions, find_envelope, reduce_regions
from .sidecar import MotionSidecarWriter, read_sidecar

__all__ = [
    "MotionEngine",
    "MotionResult",
    "MotionConfig",
    "BoundingEnvelope",
    "GrayscaleConverter",
    "OpenCVGrayscale",
    "smooth",
    "compute_mask",
    "extract_regions",
    "reduce_regions",
    "find_envelope",
    "RecordingConfig",
    "RecordingStateMachine",
    "MotionState",
    "Action",
    "Decision",
    "MotionPipeline",
    "PipelineStats",
    "MotionSidecarWriter",
    "read_sidecar",
]
