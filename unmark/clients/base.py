"""Capability interfaces for the external detection and inpainting services."""

from __future__ import annotations

from typing import Protocol

import numpy as np

from unmark.pipeline.frames import FrameBuffer
from unmark.schemas.detection import DetectionResponse


class DetectionClient(Protocol):
    """Finds watermark regions on a single frame."""

    def analyze(self, frame: FrameBuffer) -> DetectionResponse:
        """Return the validated service answer; raise DetectionError on failure."""


class InpaintClient(Protocol):
    """Synthesizes replacement pixels for the masked part of a frame."""

    def repair(self, frame: FrameBuffer, mask: np.ndarray) -> np.ndarray:
        """Return the repaired RGB frame; raise InpaintError on failure."""
