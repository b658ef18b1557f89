from __future__ import annotations

import numpy as np
import pytest

from analysis.motion.difference import OpenCVGrayscale, compute_mask, smooth
from analysis.motion.model import MotionConfig


def _gray(h: int = 48, w: int = 64, value: int = 0) -> np.ndarray:
    return np.full((h, w), value, dtype=np.uint8)


def test_mask_has_same_shape_and_is_binary():
    rng = np.random.default_rng(1234)
    prev = rng.integers(0, 256, size=(48, 64), dtype=np.uint8)
    cur = rng.integers(0, 256, size=(48, 64), dtype=np.uint8)

    mask = compute_mask(prev, cur, 30)

    assert mask.shape == prev.shape
    assert mask.dtype == np.uint8
    assert set(np.unique(mask).tolist()) <= {0, 255}


def test_mask_threshold_is_strict():
    prev = _gray()
    cur = _gray()
    cur[0, 0] = 30  # exactly at threshold -> no motion
    cur[1, 1] = 31  # above -> motion
    cur[2, 2] = 200

    mask = compute_mask(prev, cur, 30)

    assert mask[0, 0] == 0
    assert mask[1, 1] == 255
    assert mask[2, 2] == 255
    assert int(np.count_nonzero(mask)) == 2


def test_mask_uses_absolute_difference():
    prev = _gray(value=200)
    cur = _gray(value=100)
    mask = compute_mask(prev, cur, 30)
    assert np.all(mask == 255)


def test_identical_frames_give_empty_mask():
    img = _gray(value=77)
    assert not np.any(compute_mask(img, img.copy(), 0))


def test_size_mismatch_fails_fast():
    with pytest.raises(ValueError):
        compute_mask(_gray(48, 64), _gray(48, 63), 30)


def test_multichannel_input_fails_fast():
    color = np.zeros((48, 64, 3), dtype=np.uint8)
    with pytest.raises(ValueError):
        compute_mask(color, color, 30)


@pytest.mark.parametrize("threshold", [-1, 256])
def test_invalid_threshold_fails_fast(threshold):
    with pytest.raises(ValueError):
        compute_mask(_gray(), _gray(), threshold)


def test_smooth_does_not_modify_input_and_spreads_spike():
    img = _gray(32, 32)
    img[16, 16] = 255
    before = img.copy()

    out = smooth(img, MotionConfig(blur_mode="gaussian", blur_ksize=9, blur_sigma=2.0))

    assert np.array_equal(img, before)
    assert out.shape == img.shape
    assert out[16, 16] < 255
    assert out[16, 18] > 0


def test_median_smoothing_removes_isolated_pixel():
    img = _gray(32, 32)
    img[10, 10] = 255
    out = smooth(img, MotionConfig(blur_mode="median", blur_ksize=3))
    assert out[10, 10] == 0


@pytest.mark.parametrize("ksize", [0, 4])
def test_smooth_rejects_bad_kernel(ksize):
    with pytest.raises(ValueError):
        smooth(_gray(), MotionConfig(blur_ksize=ksize))


def test_grayscale_converter_keeps_dimensions():
    conv = OpenCVGrayscale()
    color = np.zeros((20, 30, 3), dtype=np.uint8)
    color[:, :, 2] = 255  # pure red in BGR

    gray = conv.convert(color)

    assert gray.shape == (20, 30)
    assert 0 < int(gray[0, 0]) < 255
    already = _gray(20, 30)
    assert conv.convert(already) is already
