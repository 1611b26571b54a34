"""Service wiring the frame pipeline to configured detection, inpainting and encoding backends."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from unmark.clients.base import DetectionClient, InpaintClient
from unmark.clients.detection_client import HttpDetectionClient
from unmark.clients.inpaint_client import HttpInpaintClient, OpenCvInpaintClient
from unmark.core.config import Settings
from unmark.pipeline.assembler import FfmpegEncoder, FrameEncoder, VideoAssembler
from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.detection import BatchDetector
from unmark.pipeline.orchestrator import PipelineResult, ProgressSink, WatermarkRemovalPipeline
from unmark.pipeline.repair import FrameRepairer
from unmark.pipeline.sampler import AvVideoSource, FrameSampler, VideoSource
from unmark.schemas.job import WatermarkRemovalConfig

OUTPUT_SUFFIX = "_no_watermark"


class WatermarkRemovalService:
    """Build pipelines from settings and run them against files on disk."""

    SUPPORTED_INPAINT_BACKENDS = ("http", "cv2")

    def __init__(
        self,
        settings: Settings,
        detection_client: DetectionClient | None = None,
        inpaint_client: InpaintClient | None = None,
        encoder: FrameEncoder | None = None,
        source_factory: Callable[[Path], VideoSource] = AvVideoSource,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Application settings supplying defaults for every stage.
            detection_client: Overrides the HTTP detection client built from settings.
            inpaint_client: Overrides the inpainting backend selected by settings or job config.
            encoder: Overrides the ffmpeg encoder.
            source_factory: Opens a video source for an input path.
        """
        self._settings = settings
        self._detection_client = detection_client
        self._inpaint_client = inpaint_client
        self._encoder = encoder
        self._source_factory = source_factory

    def create_token(self) -> CancellationToken:
        """Return a cancellation token carrying the configured run deadline."""

        return CancellationToken(timeout_seconds=self._settings.PIPELINE_TIMEOUT_SECONDS)

    def build_pipeline(self, config: WatermarkRemovalConfig | None = None) -> WatermarkRemovalPipeline:
        config = config or WatermarkRemovalConfig()
        settings = self._settings

        detector = BatchDetector(
            self._detection_client or HttpDetectionClient.from_settings(settings),
            batch_size=config.batch_size or settings.DETECTION_BATCH_SIZE,
            batch_delay=settings.DETECTION_BATCH_DELAY_SECONDS,
            min_confidence=(
                config.min_confidence if config.min_confidence is not None else settings.DETECTION_MIN_CONFIDENCE
            ),
            max_bbox_percent=(
                config.max_bbox_percent if config.max_bbox_percent is not None else settings.DEFAULT_MAX_BBOX_PERCENT
            ),
        )
        repairer = FrameRepairer(
            self._inpaint_client or self._build_inpaint_client(config.inpaint_backend or settings.INPAINT_BACKEND),
            mask_dilation=settings.MASK_DILATION_PIXELS,
        )
        assembler = VideoAssembler(
            self._encoder or FfmpegEncoder.from_settings(settings),
            rate=settings.SAMPLING_RATE,
        )
        return WatermarkRemovalPipeline(
            sampler=FrameSampler(rate=settings.SAMPLING_RATE),
            detector=detector,
            repairer=repairer,
            assembler=assembler,
        )

    def _build_inpaint_client(self, backend: str) -> InpaintClient:
        if backend == "cv2":
            return OpenCvInpaintClient.from_settings(self._settings)
        if backend == "http":
            return HttpInpaintClient.from_settings(self._settings)
        raise ValueError(
            f"Unknown inpaint backend '{backend}'. Supported: {', '.join(self.SUPPORTED_INPAINT_BACKENDS)}"
        )

    @staticmethod
    def resolve_output_path(input_path: Path, output_path: Path) -> Path:
        """Map a directory destination to ``<stem>_no_watermark.mp4`` inside it."""

        if output_path.is_dir():
            return output_path / f"{input_path.stem}{OUTPUT_SUFFIX}.mp4"
        return output_path

    def process_file(
        self,
        input_path: Path,
        output_path: Path,
        config: WatermarkRemovalConfig | None = None,
        on_progress: Optional[ProgressSink] = None,
        token: CancellationToken | None = None,
    ) -> Path:
        """Remove watermarks from a video file.

        Args:
            input_path: Path to the source video.
            output_path: Destination file, or a directory to place the output in.
            config: Per-run overrides.
            on_progress: Receives every progress event of the run.
            token: Cancellation token; one with the configured deadline is created when omitted.

        Returns:
            Path of the written output.

        Raises:
            FileNotFoundError: if the input does not exist.
            FileExistsError: if the output exists and ``config.overwrite`` is not set.
            PipelineFailed: if the run fails; nothing is written in that case.
        """
        config = config or WatermarkRemovalConfig()
        input_path = Path(input_path)
        output_path = self.resolve_output_path(input_path, Path(output_path))

        if not input_path.is_file():
            raise FileNotFoundError(f"Input video not found: {input_path}")
        if output_path.exists() and not config.overwrite:
            raise FileExistsError(f"Output already exists: {output_path} (set overwrite to replace it)")

        pipeline = self.build_pipeline(config)
        logger.info(f"Removing watermarks: {input_path} -> {output_path}")
        result = pipeline.run(
            self._source_factory(input_path),
            on_progress=on_progress,
            token=token or self.create_token(),
        )
        self._write_output(result, output_path)
        logger.info(
            f"Processed: {input_path} -> {output_path} "
            f"({result.detected_watermarks} watermarks on {result.detected_frames}/{result.total_frames} frames)"
        )
        return output_path

    @staticmethod
    def _write_output(result: PipelineResult, output_path: Path) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        partial = output_path.with_name(output_path.name + ".part")
        try:
            partial.write_bytes(result.output)
            partial.replace(output_path)
        finally:
            partial.unlink(missing_ok=True)
