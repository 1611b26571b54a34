"""Binary repair masks built from per-frame detections."""

from __future__ import annotations

import math

import cv2
import numpy as np

from unmark.pipeline.frames import Detection

REPAIR = 255
KEEP = 0

# Scaled relative coordinates carry float noise; do not let it spill into a neighbouring pixel.
EDGE_EPSILON = 1e-6


def build_mask(frame_shape: tuple[int, int], detection: Detection, dilation: int = 0) -> np.ndarray:
    """Return an (height, width) uint8 mask with every detected box marked for repair.

    A box covers pixel columns ``[floor(x), ceil(x + width))`` and rows
    ``[floor(y), ceil(y + height))``, clipped to the frame.
    """

    height, width = frame_shape
    mask = np.full((height, width), KEEP, dtype=np.uint8)

    for box in detection.boxes:
        x0 = max(0, math.floor(box.x + EDGE_EPSILON))
        y0 = max(0, math.floor(box.y + EDGE_EPSILON))
        x1 = min(width, math.ceil(box.x + box.width - EDGE_EPSILON))
        y1 = min(height, math.ceil(box.y + box.height - EDGE_EPSILON))
        if x1 > x0 and y1 > y0:
            mask[y0:y1, x0:x1] = REPAIR

    if dilation > 0 and mask.any():
        kernel = np.ones((2 * dilation + 1, 2 * dilation + 1), np.uint8)
        mask = cv2.dilate(mask, kernel, iterations=1)
    return mask
