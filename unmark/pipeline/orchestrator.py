"""Five-stage watermark removal pipeline with progress reporting."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from unmark.pipeline.assembler import VideoAssembler
from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.detection import BatchDetector
from unmark.pipeline.exceptions import PipelineCancelled, PipelineError, PipelineFailed
from unmark.pipeline.frames import FrameCallback, FrameProgress
from unmark.pipeline.repair import FrameRepairer
from unmark.pipeline.sampler import FrameSampler, VideoSource
from unmark.schemas.progress import PipelineStage, ProgressEvent

ProgressSink = Callable[[ProgressEvent], None]


class PipelineState(str, Enum):
    """Lifecycle state of a pipeline run."""

    idle = "idle"
    extracting = "extracting"
    analyzing = "analyzing"
    detecting = "detecting"
    removing = "removing"
    reconstructing = "reconstructing"
    complete = "complete"
    failed = "failed"


STATE_ORDER = [
    PipelineState.idle,
    PipelineState.extracting,
    PipelineState.analyzing,
    PipelineState.detecting,
    PipelineState.removing,
    PipelineState.reconstructing,
    PipelineState.complete,
]
TERMINAL_STATES = {PipelineState.complete, PipelineState.failed}


@dataclass
class PipelineResult:
    """Encoded output of a successful run."""

    output: bytes
    media_type: str
    total_frames: int
    detected_frames: int
    detected_watermarks: int
    repaired_frames: int
    failed_repairs: int


class ProgressReporter:
    """Forward events to the caller's sink, keeping ``percent`` non-decreasing.

    Only the ``complete`` event may reach 100. The sink is fire-and-forget: an
    exception raised by it is logged and never reaches the pipeline.
    """

    STAGE_CEILING = 99.0

    def __init__(self, sink: Optional[ProgressSink], ranges: dict[PipelineStage, tuple[float, float]]) -> None:
        self._sink = sink
        self._ranges = ranges
        self._last = 0.0

    @property
    def percent(self) -> float:
        return self._last

    def emit(self, stage: PipelineStage, percent: float, message: str, **fields: Optional[int]) -> None:
        ceiling = 100.0 if stage is PipelineStage.complete else self.STAGE_CEILING
        self._last = max(self._last, min(percent, ceiling))
        if self._sink is None:
            return
        event = ProgressEvent(stage=stage, percent=self._last, message=message, **fields)
        try:
            self._sink(event)
        except Exception as exc:  # noqa: BLE001 - sink failures must not affect the run
            logger.warning(f"Progress sink raised {type(exc).__name__}: {exc}")

    def enter(self, stage: PipelineStage, message: str, **fields: Optional[int]) -> None:
        self.emit(stage, self._ranges[stage][0], message, **fields)

    def frames(self, stage: PipelineStage, describe: Callable[[FrameProgress], str]) -> FrameCallback:
        """Build a stage callback that maps per-frame progress into the stage's range."""

        start, end = self._ranges[stage]

        def _callback(progress: FrameProgress) -> None:
            fraction = progress.current / progress.total if progress.total else 1.0
            self.emit(
                stage,
                start + fraction * (end - start),
                describe(progress),
                current_frame=progress.current,
                total_frames=progress.total,
                detected_watermark_count=progress.detected_count,
            )

        return _callback


class WatermarkRemovalPipeline:
    """Run sampling, detection, repair and reassembly strictly in sequence."""

    STAGE_RANGES: dict[PipelineStage, tuple[float, float]] = {
        PipelineStage.extracting: (5.0, 20.0),
        PipelineStage.analyzing: (25.0, 50.0),
        PipelineStage.detecting: (50.0, 50.0),
        PipelineStage.removing: (70.0, 85.0),
        PipelineStage.reconstructing: (90.0, 99.0),
        PipelineStage.complete: (100.0, 100.0),
    }

    def __init__(
        self,
        sampler: FrameSampler,
        detector: BatchDetector,
        repairer: FrameRepairer,
        assembler: VideoAssembler,
    ) -> None:
        self._sampler = sampler
        self._detector = detector
        self._repairer = repairer
        self._assembler = assembler
        self._state = PipelineState.idle

    @property
    def state(self) -> PipelineState:
        return self._state

    def run(
        self,
        source: VideoSource,
        on_progress: Optional[ProgressSink] = None,
        token: Optional[CancellationToken] = None,
    ) -> PipelineResult:
        """Process ``source`` and return the encoded output.

        Raises:
            PipelineFailed: on any fatal error; the run ends in the ``failed`` state
                and no result is produced.
        """

        self._state = PipelineState.idle
        reporter = ProgressReporter(on_progress, self.STAGE_RANGES)
        try:
            with closing(source):
                return self._execute(source, reporter, token)
        except PipelineCancelled as exc:
            failed_stage = self._fail()
            logger.warning(f"Pipeline cancelled during {failed_stage}: {exc}")
            raise PipelineFailed(str(exc) or "Processing cancelled", stage=failed_stage) from exc
        except PipelineError as exc:
            failed_stage = self._fail()
            logger.error(f"Pipeline failed during {failed_stage}: {exc}")
            raise PipelineFailed(f"Processing failed: {exc}", stage=failed_stage) from exc
        except Exception as exc:
            failed_stage = self._fail()
            logger.exception(f"Unexpected error during {failed_stage}")
            raise PipelineFailed(f"Processing failed: {str(exc) or 'Unknown error'}", stage=failed_stage) from exc

    def _execute(
        self,
        source: VideoSource,
        reporter: ProgressReporter,
        token: Optional[CancellationToken],
    ) -> PipelineResult:
        self._transition(PipelineState.extracting)
        reporter.enter(PipelineStage.extracting, "Extracting frames from video...")
        frames = self._sampler.sample(
            source,
            token=token,
            on_frame=reporter.frames(
                PipelineStage.extracting, lambda p: f"Extracting frame {p.current}/{p.total}..."
            ),
        )
        total = len(frames)

        self._transition(PipelineState.analyzing)
        reporter.enter(PipelineStage.analyzing, "Analyzing frames with AI...", total_frames=total)
        detections = self._detector.detect(
            frames,
            token=token,
            on_frame=reporter.frames(
                PipelineStage.analyzing, lambda p: f"Analyzing frame {p.current}/{p.total} for watermarks..."
            ),
        )
        watermark_count = sum(len(detection.boxes) for detection in detections)

        self._transition(PipelineState.detecting)
        reporter.enter(
            PipelineStage.detecting,
            f"Found {watermark_count} watermark instances on {len(detections)} of {total} frames",
            total_frames=total,
            detected_watermark_count=watermark_count,
        )

        self._transition(PipelineState.removing)
        reporter.enter(PipelineStage.removing, "Removing watermarks using AI inpainting...")
        outcome = self._repairer.repair(
            frames,
            detections,
            token=token,
            on_frame=reporter.frames(
                PipelineStage.removing, lambda p: f"Removing watermarks from frame {(p.frame_index or 0) + 1}..."
            ),
        )
        if len(outcome.frames) != total:
            raise RuntimeError(f"Repair produced {len(outcome.frames)} frames from {total}.")

        self._transition(PipelineState.reconstructing)
        reporter.enter(PipelineStage.reconstructing, "Reconstructing video from cleaned frames...")
        output = self._assembler.assemble(
            outcome.frames,
            token=token,
            on_frame=reporter.frames(
                PipelineStage.reconstructing, lambda p: f"Encoding frame {p.current}/{p.total}..."
            ),
        )

        self._transition(PipelineState.complete)
        reporter.enter(PipelineStage.complete, "Video processing complete!", total_frames=total)
        logger.info(
            f"Pipeline complete: {total} frames, {len(detections)} with watermarks, "
            f"{outcome.repaired} repaired, {outcome.failed} kept original"
        )
        return PipelineResult(
            output=output,
            media_type=self._assembler.media_type,
            total_frames=total,
            detected_frames=len(detections),
            detected_watermarks=watermark_count,
            repaired_frames=outcome.repaired,
            failed_repairs=outcome.failed,
        )

    def _transition(self, target: PipelineState) -> None:
        if self._state in TERMINAL_STATES or STATE_ORDER.index(target) <= STATE_ORDER.index(self._state):
            raise RuntimeError(f"Illegal pipeline transition {self._state.value} -> {target.value}")
        logger.debug(f"Pipeline state {self._state.value} -> {target.value}")
        self._state = target

    def _fail(self) -> str:
        failed_stage = self._state.value
        self._state = PipelineState.failed
        return failed_stage
