from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class Frame:
    img: np.ndarray  # BGR (H,W,3) or gray (H,W), uint8
    pts_ms: float  # epoch ms (float)
    frame_id: int

    @property
    def height(self) -> int:
        return int(self.img.shape[0])

    @property
    def width(self) -> int:
        return int(self.img.shape[1])
