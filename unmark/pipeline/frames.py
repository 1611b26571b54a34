"""Value types passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np


@dataclass
class FrameBuffer:
    """One sampled RGB frame (H x W x 3, uint8) and its position in the run."""

    index: int
    timestamp: float
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class BoundingBox:
    """Watermark region in absolute pixel coordinates."""

    x: float
    y: float
    width: float
    height: float
    confidence: float

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @classmethod
    def from_relative(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        confidence: float,
        frame_width: int,
        frame_height: int,
    ) -> "BoundingBox":
        """Scale a box given as fractions of the frame and clamp it into the frame."""

        abs_x = _clamp(x * frame_width, 0.0, frame_width)
        abs_y = _clamp(y * frame_height, 0.0, frame_height)
        abs_w = _clamp(width * frame_width + min(0.0, x * frame_width), 0.0, frame_width - abs_x)
        abs_h = _clamp(height * frame_height + min(0.0, y * frame_height), 0.0, frame_height - abs_y)
        return cls(abs_x, abs_y, abs_w, abs_h, _clamp(confidence, 0.0, 1.0))


@dataclass(frozen=True)
class Detection:
    """All watermark regions found on one sampled frame."""

    frame_index: int
    timestamp: float
    boxes: tuple[BoundingBox, ...]


@dataclass(frozen=True)
class FrameProgress:
    """Per-frame progress reported by a stage to the orchestrator."""

    current: int
    total: int
    frame_index: Optional[int] = None
    detected_count: Optional[int] = None


FrameCallback = Callable[[FrameProgress], None]


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, float(value)))
