"""Shared test fixtures.

Every fixture works without media files, network services or an ffmpeg
binary: video sources, service clients and the encoder subprocess are faked
(see tests/fakes.py).
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from unmark.core.config import Settings, get_settings
from unmark.pipeline.assembler import VideoAssembler
from unmark.pipeline.detection import BatchDetector
from unmark.pipeline.orchestrator import WatermarkRemovalPipeline
from unmark.pipeline.repair import FrameRepairer
from unmark.pipeline.sampler import FrameSampler
from unmark.services.job_registry import reset_job_service_instance
from unmark.services.job_service import JobService
from tests.fakes import FakePopen, RecordingEncoder, RecordingInpaintClient, ScriptedDetectionClient


# ---------- Settings and services ----------

@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        WORK_DIR=tmp_path,
        DETECTION_SERVICE_URL="http://detector.test/analyze",
        INPAINT_SERVICE_URL="http://inpainter.test/inpaint",
        DETECTION_BATCH_DELAY_SECONDS=0.0,
    )


@pytest.fixture()
def job_service(settings: Settings) -> JobService:
    return JobService(settings=settings)


# ---------- Pipeline fixtures ----------

@pytest.fixture()
def pipeline_factory():
    """Build a pipeline around scripted clients and a recording encoder.

    Returns a factory accepting ``answers`` (detection script), ``fail_on``
    (frames whose repair fails) and ``encoder``; the factory returns the
    pipeline together with its doubles.
    """

    def _factory(answers=None, fail_on=None, encoder=None, batch_size=5, sleep=None):
        detection_client = ScriptedDetectionClient(answers)
        inpaint_client = RecordingInpaintClient(fail_on=fail_on)
        encoder = encoder or RecordingEncoder()
        pipeline = WatermarkRemovalPipeline(
            sampler=FrameSampler(rate=30),
            detector=BatchDetector(
                detection_client,
                batch_size=batch_size,
                batch_delay=0.1,
                sleep=sleep or (lambda _seconds: None),
            ),
            repairer=FrameRepairer(inpaint_client),
            assembler=VideoAssembler(encoder, rate=30),
        )
        return pipeline, detection_client, inpaint_client, encoder

    return _factory


# ---------- Encoder subprocess ----------

@pytest.fixture()
def fake_ffmpeg(monkeypatch):
    """Patch subprocess.Popen in the assembler so no ffmpeg process is spawned.

    ``behaviours`` maps a codec name to FakePopen keyword overrides; codecs
    without an entry succeed. All created FakePopen objects are recorded.
    """

    popens: list[FakePopen] = []
    behaviours: dict[str, dict] = {}

    def _fake_popen(command, **_kwargs):
        codec = command[command.index("-c:v") + 1]
        popen = FakePopen(command, **behaviours.get(codec, {}))
        popens.append(popen)
        return popen

    monkeypatch.setattr("unmark.pipeline.assembler.subprocess.Popen", _fake_popen)
    return popens, behaviours


# ---------- FastAPI test client ----------

@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    """TestClient for the full app with the job store under ``tmp_path``."""
    monkeypatch.setenv("WORK_DIR", str(tmp_path))
    get_settings.cache_clear()
    reset_job_service_instance()

    from unmark.main import app

    with TestClient(app) as client:
        yield client

    get_settings.cache_clear()
    reset_job_service_instance()
