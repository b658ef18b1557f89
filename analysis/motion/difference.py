"""Frame differencing: smoothing, grayscale conversion and the motion mask.

The mask is a fixed binary threshold on the absolute per-pixel difference
of two consecutive grayscale frames. There is no adaptive background
model; lighting changes show up as motion, which keeps the output fully
deterministic for a given pair of frames.
"""

from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np

from .model import MotionConfig


class GrayscaleConverter(Protocol):
    def convert(self, img: np.ndarray) -> np.ndarray: ...


class OpenCVGrayscale:
    """BGR -> single-channel intensity. Already-gray images pass through."""

    def convert(self, img: np.ndarray) -> np.ndarray:
        if img.ndim == 2:
            return img
        if img.ndim == 3 and img.shape[2] == 4:
            return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def smooth(img: np.ndarray, cfg: MotionConfig) -> np.ndarray:
    """Return a blurred copy of ``img``; the input is never modified."""
    mode = (cfg.blur_mode or "none").lower()
    if mode == "none":
        return img

    ksize = int(cfg.blur_ksize)
    if ksize <= 0 or ksize % 2 == 0:
        raise ValueError(f"blur_ksize must be a positive odd integer, got {cfg.blur_ksize!r}")

    if mode == "gaussian":
        sigma = float(cfg.blur_sigma)
        return cv2.GaussianBlur(img, (ksize, ksize), sigmaX=sigma, sigmaY=sigma)
    if mode == "median":
        return cv2.medianBlur(img, ksize)

    raise ValueError(f"unsupported blur_mode: {cfg.blur_mode!r}")


def compute_mask(previous_gray: np.ndarray, current_gray: np.ndarray, threshold: int) -> np.ndarray:
    """Binary motion mask: 255 where ``|current - previous| > threshold``, else 0.

    Raises
    ------
    ValueError
        If either image is not single-channel, the shapes differ, or the
        threshold lies outside [0, 255]. These are caller bugs.
    """
    if previous_gray.ndim != 2 or current_gray.ndim != 2:
        raise ValueError(
            f"expected single-channel images, got ndim={previous_gray.ndim} "
            f"and ndim={current_gray.ndim}"
        )
    if previous_gray.shape != current_gray.shape:
        raise ValueError(
            f"frame size mismatch: previous={previous_gray.shape} current={current_gray.shape}"
        )
    if not 0 <= threshold <= 255:
        raise ValueError(f"threshold must be in [0, 255], got {threshold!r}")

    diff = cv2.absdiff(current_gray, previous_gray)
    _, mask = cv2.threshold(diff, int(threshold), 255, cv2.THRESH_BINARY)
    return mask
