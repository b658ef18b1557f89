# analysis/motion/config.py
"""Optional runtime config module support.

A deployment may ship a plain Python module of upper-case constants
(``DIFF_THRESHOLD = 25`` ...). It is looked up by name from the
``MOTION_CONFIG_MODULE`` environment variable, then ``config``. Missing
attributes fall back to the dataclass defaults.
"""

from __future__ import annotations

import logging
import os
from importlib import import_module
from types import ModuleType
from typing import Any, Optional

from .model import MotionConfig
from .recording import RecordingConfig

_LOG = logging.getLogger(__name__)

ENV_VAR = "MOTION_CONFIG_MODULE"


def load_config_module(name: Optional[str] = None) -> Optional[ModuleType]:
    """Import the first available config module, or return ``None``.

    An explicitly requested ``name`` must import; the implicit candidates
    are best-effort.
    """
    if name:
        return import_module(name)

    for candidate in filter(None, [os.environ.get(ENV_VAR), "config"]):
        try:
            mod = import_module(candidate)
        except ImportError:
            continue
        _LOG.info("Loaded runtime config from module %r", candidate)
        return mod
    return None


def motion_config_from_cfg(cfg_module: Any) -> MotionConfig:
    """Build :class:`MotionConfig` from DIFF_THRESHOLD / BLUR_* constants."""
    d = MotionConfig()
    return MotionConfig(
        blur_mode=str(getattr(cfg_module, "BLUR_MODE", d.blur_mode)),
        blur_ksize=int(getattr(cfg_module, "BLUR_KSIZE", d.blur_ksize)),
        blur_sigma=float(getattr(cfg_module, "BLUR_SIGMA", d.blur_sigma)),
        diff_threshold=int(getattr(cfg_module, "DIFF_THRESHOLD", d.diff_threshold)),
        keep_mask=bool(getattr(cfg_module, "KEEP_MASK", d.keep_mask)),
    )


def recording_config_from_cfg(cfg_module: Any) -> RecordingConfig:
    """Build :class:`RecordingConfig` from MAX_FRAMES_WITHOUT_MOTION and friends."""
    d = RecordingConfig()
    return RecordingConfig(
        max_frames_without_motion=int(
            getattr(cfg_module, "MAX_FRAMES_WITHOUT_MOTION", d.max_frames_without_motion)
        ),
        codec_hint=getattr(cfg_module, "CLIP_CODEC_HINT", d.codec_hint),
        max_encoding_failures=int(
            getattr(cfg_module, "MAX_ENCODING_FAILURES", d.max_encoding_failures)
        ),
    )
