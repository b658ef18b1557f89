# capture/__init__.py
"""Capture package: frame sources feeding the motion pipeline."""

from .source import CameraSource, FrameSource, FrameSourceError, NullSource, SequenceSource

__all__ = [
    "FrameSource",
    "FrameSourceError",
    "CameraSource",
    "SequenceSource",
    "NullSource",
]

__version__ = "0.1.0"
