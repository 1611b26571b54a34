"""Per-frame watermark repair with fallback to the original frame."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence

import numpy as np
from loguru import logger

from unmark.clients.base import InpaintClient
from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import InpaintError, PipelineCancelled
from unmark.pipeline.frames import Detection, FrameBuffer, FrameCallback, FrameProgress
from unmark.pipeline.masks import build_mask


@dataclass
class RepairOutcome:
    frames: list[FrameBuffer]
    repaired: int = 0
    failed: int = 0


class FrameRepairer:
    """Inpaint every frame that carries a detection; leave all others untouched."""

    def __init__(self, client: InpaintClient, mask_dilation: int = 0) -> None:
        self._client = client
        self.mask_dilation = mask_dilation

    def repair(
        self,
        frames: Sequence[FrameBuffer],
        detections: Iterable[Detection],
        token: Optional[CancellationToken] = None,
        on_frame: Optional[FrameCallback] = None,
    ) -> RepairOutcome:
        outcome = RepairOutcome(frames=list(frames))

        pending: dict[int, Detection] = {}
        for detection in detections:
            if not 0 <= detection.frame_index < len(outcome.frames):
                raise ValueError(f"Detection references unknown frame {detection.frame_index}.")
            if detection.frame_index in pending:
                raise ValueError(f"Duplicate detection for frame {detection.frame_index}.")
            if detection.boxes:
                pending[detection.frame_index] = detection

        total = len(pending)
        for position, frame_index in enumerate(sorted(pending), start=1):
            if token:
                token.raise_if_cancelled()
            frame = outcome.frames[frame_index]
            repaired = self._repair_frame(frame, pending[frame_index])
            if repaired is None:
                outcome.failed += 1
            else:
                outcome.frames[frame_index] = repaired
                outcome.repaired += 1
            if on_frame:
                on_frame(FrameProgress(current=position, total=total, frame_index=frame_index))

        logger.info(f"Repaired {outcome.repaired} of {total} frame(s); {outcome.failed} kept original")
        return outcome

    def _repair_frame(self, frame: FrameBuffer, detection: Detection) -> FrameBuffer | None:
        mask = build_mask((frame.height, frame.width), detection, dilation=self.mask_dilation)
        try:
            pixels = self._client.repair(frame, mask)
            self._validate(frame, pixels)
        except PipelineCancelled:
            raise
        except Exception as exc:  # noqa: BLE001 - degrade to the original frame
            logger.warning(f"Failed to remove watermark from frame {frame.index}: {exc}")
            return None
        return replace(frame, pixels=pixels)

    @staticmethod
    def _validate(frame: FrameBuffer, pixels: object) -> None:
        if not isinstance(pixels, np.ndarray):
            raise InpaintError(f"Inpaint result is {type(pixels).__name__}, not an array")
        if pixels.shape != frame.pixels.shape or pixels.dtype != np.uint8:
            raise InpaintError(
                f"Inpaint result {pixels.shape}/{pixels.dtype} does not match frame {frame.pixels.shape}/uint8"
            )
