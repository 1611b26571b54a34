"""Batched, rate-limited watermark detection over the sampled frames."""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

from loguru import logger

from unmark.clients.base import DetectionClient
from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import PipelineCancelled
from unmark.pipeline.frames import BoundingBox, Detection, FrameBuffer, FrameCallback, FrameProgress


class BatchDetector:
    """Submit frames to a detection client in fixed-size batches.

    Frames inside a batch are analysed one after another; a fixed pause separates
    consecutive batches so the external service sees a bounded request rate.
    A frame whose analysis fails is treated as clean.
    """

    def __init__(
        self,
        client: DetectionClient,
        batch_size: int = 5,
        batch_delay: float = 0.1,
        min_confidence: float = 0.0,
        max_bbox_percent: float = 100.0,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("Batch size must be positive.")
        self._client = client
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.min_confidence = min_confidence
        self.max_bbox_percent = max_bbox_percent
        self._sleep = sleep

    def detect(
        self,
        frames: Sequence[FrameBuffer],
        token: Optional[CancellationToken] = None,
        on_frame: Optional[FrameCallback] = None,
    ) -> list[Detection]:
        detections: list[Detection] = []
        total = len(frames)
        detected_count = 0
        analysed = 0

        for batch_start in range(0, total, self.batch_size):
            if batch_start:
                self._pause(token)
            for frame in frames[batch_start : batch_start + self.batch_size]:
                if token:
                    token.raise_if_cancelled()
                detection = self._analyze(frame)
                if detection is not None:
                    detections.append(detection)
                    detected_count += len(detection.boxes)

                analysed += 1
                if on_frame:
                    on_frame(
                        FrameProgress(
                            current=analysed,
                            total=total,
                            frame_index=frame.index,
                            detected_count=detected_count,
                        )
                    )

        logger.info(f"Detected {detected_count} watermark region(s) on {len(detections)} of {total} frames")
        return detections

    def _pause(self, token: Optional[CancellationToken]) -> None:
        if self.batch_delay <= 0:
            return
        if self._sleep is not None:
            self._sleep(self.batch_delay)
            if token is not None:
                token.raise_if_cancelled()
        elif token is not None:
            token.sleep(self.batch_delay)
        else:
            time.sleep(self.batch_delay)

    def _analyze(self, frame: FrameBuffer) -> Detection | None:
        try:
            response = self._client.analyze(frame)
        except PipelineCancelled:
            raise
        except Exception as exc:  # noqa: BLE001 - a failed frame counts as clean
            logger.warning(f"AI analysis failed for frame {frame.index}: {exc}")
            return None

        boxes: list[BoundingBox] = []
        for region in response.regions:
            rel = region.bounding_box
            box = BoundingBox.from_relative(
                rel.x,
                rel.y,
                rel.width,
                rel.height,
                region.confidence,
                frame.width,
                frame.height,
            )
            if self._is_plausible(box, frame):
                boxes.append(box)

        if not boxes:
            return None
        return Detection(frame_index=frame.index, timestamp=frame.timestamp, boxes=tuple(boxes))

    def _is_plausible(self, box: BoundingBox, frame: FrameBuffer) -> bool:
        if box.area <= 0:
            return False
        if box.confidence < self.min_confidence:
            return False
        frame_area = frame.width * frame.height
        return (box.area / frame_area) * 100 <= self.max_bbox_percent
