"""Tests for the job worker: progress mirroring, completion, failure and cancellation."""
from __future__ import annotations

import asyncio

import pytest

from unmark.pipeline.exceptions import AssemblyError
from unmark.schemas.job import JobCreate, JobStatus, WatermarkRemovalConfig
from unmark.schemas.progress import PipelineStage
from unmark.services.watermark_removal_service import WatermarkRemovalService
from unmark.workers.video_worker import VideoProcessingWorker
from tests.fakes import FakeVideoSource, RecordingEncoder, RecordingInpaintClient, ScriptedDetectionClient, watermark


@pytest.fixture()
def input_video(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"stub")
    return path


def make_worker(job_service, settings, detection_client=None, encoder=None):
    service = WatermarkRemovalService(
        settings,
        detection_client=detection_client or ScriptedDetectionClient({4: watermark(0, 0, 0.5, 0.5)}),
        inpaint_client=RecordingInpaintClient(),
        encoder=encoder or RecordingEncoder(),
        source_factory=lambda _path: FakeVideoSource(duration=1.0),
    )
    return VideoProcessingWorker(job_service=job_service, watermark_service=service, progress_interval=0.0)


def enqueue(job_service, input_video, target):
    return job_service.create_job(
        JobCreate(
            source_uri=input_video.as_uri(),
            target_uri=target,
            watermark_removal_config=WatermarkRemovalConfig(),
        )
    )


class TestVideoProcessingWorker:
    def test_completed_job(self, job_service, settings, input_video, tmp_path):
        job = enqueue(job_service, input_video, tmp_path / "out.mp4")

        asyncio.run(make_worker(job_service, settings).handle(job))

        done = job_service.get_job(job.id)
        assert done.status is JobStatus.completed
        assert done.progress == 1.0
        assert done.stage is PipelineStage.complete
        assert done.detected_watermark_count == 1
        assert done.result_path == str(tmp_path / "out.mp4")
        assert (tmp_path / "out.mp4").read_bytes() == b"encoded"

    def test_failed_job_records_error(self, job_service, settings, input_video, tmp_path):
        job = enqueue(job_service, input_video, tmp_path / "out.mp4")
        worker = make_worker(job_service, settings, encoder=RecordingEncoder(error=AssemblyError("codec missing")))

        asyncio.run(worker.process_job(job))

        failed = job_service.get_job(job.id)
        assert failed.status is JobStatus.failed
        assert failed.error == "Processing failed: codec missing"
        assert not (tmp_path / "out.mp4").exists()

    def test_missing_input_fails_job(self, job_service, settings, tmp_path):
        job = enqueue(job_service, tmp_path / "missing.mp4", tmp_path / "out.mp4")

        asyncio.run(make_worker(job_service, settings).process_job(job))

        assert job_service.get_job(job.id).status is JobStatus.failed

    def test_cancellation_stops_run(self, job_service, settings, input_video, tmp_path):
        job = enqueue(job_service, input_video, tmp_path / "out.mp4")

        def _cancel_midway(frame):
            if frame.index == 10:
                job_service.cancel_job(job.id)

        worker = make_worker(job_service, settings, detection_client=ScriptedDetectionClient(on_call=_cancel_midway))
        asyncio.run(worker.process_job(job))

        cancelled = job_service.get_job(job.id)
        assert cancelled.status is JobStatus.cancelled
        assert cancelled.message == "Processing cancelled by request"
        assert not (tmp_path / "out.mp4").exists()

    def test_job_cancelled_before_start_is_skipped(self, job_service, settings, input_video, tmp_path):
        job = enqueue(job_service, input_video, tmp_path / "out.mp4")
        job_service.cancel_job(job.id)

        asyncio.run(make_worker(job_service, settings).process_job(job))

        assert job_service.get_job(job.id).status is JobStatus.cancelled
        assert not (tmp_path / "out.mp4").exists()


class TestResolvePath:
    def test_file_url(self, tmp_path):
        assert VideoProcessingWorker._resolve_path((tmp_path / "a b.mp4").as_uri()) == tmp_path / "a b.mp4"

    def test_plain_path(self, tmp_path):
        assert VideoProcessingWorker._resolve_path(tmp_path / "a.mp4") == tmp_path / "a.mp4"
