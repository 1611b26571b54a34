"""Video processing worker driving the watermark removal pipeline."""

import asyncio
import logging
import os
import time
from pathlib import Path
from urllib.parse import unquote, urlparse

from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import PipelineFailed
from unmark.pipeline.orchestrator import ProgressSink
from unmark.schemas.job import JobRead, JobStatus, JobUpdate
from unmark.schemas.progress import PipelineStage, ProgressEvent
from unmark.services.job_service import JobService
from unmark.services.watermark_removal_service import WatermarkRemovalService
from unmark.workers.base import BaseWorker

logger = logging.getLogger(__name__)


class VideoProcessingWorker(BaseWorker):
    """High-level orchestrator for watermark removal jobs."""

    # Minimum spacing between job-store writes and cancellation checks.
    PROGRESS_INTERVAL_SECONDS = 0.5

    def __init__(
        self,
        job_service: JobService,
        watermark_service: WatermarkRemovalService,
        progress_interval: float | None = None,
    ) -> None:
        self._job_service = job_service
        self._watermark_service = watermark_service
        self._progress_interval = (
            self.PROGRESS_INTERVAL_SECONDS if progress_interval is None else progress_interval
        )

    async def handle(self, job: JobRead) -> None:
        await self.process_job(job)

    async def process_job(self, job: JobRead) -> None:
        """Execute the job lifecycle."""

        if self._is_cancelled(job):
            logger.info("Skipping job %s; it was cancelled before processing started.", job.id)
            return
        logger.info("Processing job %s.", job.id)

        self._job_service.update_job(
            job.id,
            JobUpdate(status=JobStatus.processing, progress=0.0, message="Starting"),
        )
        token = self._watermark_service.create_token()

        try:
            result_path = await asyncio.to_thread(
                self._watermark_service.process_file,
                self._resolve_path(job.source_uri),
                self._resolve_path(job.target_uri),
                job.watermark_removal_config,
                self._on_progress(job, token),
                token,
            )
        except PipelineFailed as exc:
            if self._is_cancelled(job):
                logger.info("Job %s cancelled during %s.", job.id, exc.stage)
                self._job_service.update_job(job.id, JobUpdate(message=exc.message))
                await self.on_cancel(job)
                return
            logger.error("Failed to process job %s: %s", job.id, exc.message)
            self._job_service.update_job(job.id, JobUpdate(status=JobStatus.failed, error=exc.message))
            await self.on_failure(job, exc)
            return
        except Exception as exc:  # noqa: BLE001 - any error fails the job, not the worker loop
            logger.error("Failed to process job %s: %s", job.id, exc)
            self._job_service.update_job(job.id, JobUpdate(status=JobStatus.failed, error=str(exc)))
            await self.on_failure(job, exc)
            return

        if self._is_cancelled(job):
            logger.info("Job %s finished after cancellation was requested; keeping it cancelled.", job.id)
            return

        self._job_service.update_job(
            job.id,
            JobUpdate(
                status=JobStatus.completed,
                progress=1.0,
                stage=PipelineStage.complete,
                message="Video processing complete!",
                result_path=str(result_path),
            ),
        )
        logger.info("Completed job %s -> %s.", job.id, result_path)
        await self.on_success(job)

    def _on_progress(self, job: JobRead, token: CancellationToken) -> ProgressSink:
        """Mirror progress into the job record, throttled, and trip ``token`` on cancellation."""

        last_stage: PipelineStage | None = None
        last_write = float("-inf")

        def _callback(event: ProgressEvent) -> None:
            nonlocal last_stage, last_write
            now = time.monotonic()
            if event.stage == last_stage and now - last_write < self._progress_interval:
                return
            last_stage, last_write = event.stage, now

            if self._is_cancelled(job):
                token.cancel("Processing cancelled by request")
                return
            fields = {"progress": event.percent / 100.0, "stage": event.stage, "message": event.message}
            if event.detected_watermark_count is not None:
                fields["detected_watermark_count"] = event.detected_watermark_count
            self._job_service.update_job(job.id, JobUpdate(**fields))

        return _callback

    def _is_cancelled(self, job: JobRead) -> bool:
        current = self._job_service.get_job(job.id)
        return current is not None and current.status == JobStatus.cancelled

    @staticmethod
    def _resolve_path(value: str | Path) -> Path:
        """Normalize job URIs into local filesystem paths."""

        if isinstance(value, Path):
            return value

        parsed = urlparse(str(value))
        if parsed.scheme and parsed.path:
            path_str = unquote(parsed.path)
            if os.name == "nt" and path_str.startswith("/") and len(path_str) > 1:
                # Trim the leading slash so Windows drive letters are preserved.
                path_str = path_str.lstrip("/")
            return Path(path_str)

        return Path(str(value))
