"""Pydantic models for job-related payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import AnyUrl, BaseModel, Field, model_validator

from unmark.schemas.progress import PipelineStage


class WatermarkRemovalConfig(BaseModel):
    """Per-job overrides for the watermark removal pipeline."""

    batch_size: int | None = Field(default=None, ge=1, le=100, description="Frames per detection batch.")
    min_confidence: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Drop detected regions below this confidence."
    )
    max_bbox_percent: float | None = Field(
        default=None, ge=1.0, le=100.0, description="Maximum percentage of the frame a region can cover."
    )
    inpaint_backend: Literal["http", "cv2"] | None = Field(
        default=None, description="Inpainting backend: the external service ('http') or local OpenCV ('cv2')."
    )
    overwrite: bool = Field(default=False, description="Overwrite existing output files.")


class JobStatus(str, Enum):
    """Lifecycle state of a processing job."""

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


ACTIVE_STATUSES = {JobStatus.queued, JobStatus.processing}


class JobBase(BaseModel):
    """Common data shared across job schemas."""

    source_uri: AnyUrl | Path = Field(..., description="Location of the source video (file URL or local path).")
    target_uri: AnyUrl | Path = Field(..., description="Destination for the processed video (file URL or local path).")
    metadata: Dict[str, Any] | None = Field(default=None, description="Optional job-specific metadata payload.")
    watermark_removal_config: WatermarkRemovalConfig = Field(
        default_factory=WatermarkRemovalConfig, description="Pipeline overrides for this job."
    )


class JobCreate(JobBase):
    """Schema for requests that create a new job."""

    priority: int = Field(default=5, ge=1, le=10, description="Higher numbers receive more attention from workers.")


class JobRead(JobBase):
    """Schema representing the stored state of a job."""

    id: UUID
    status: JobStatus
    priority: int = 5
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    progress: float | None = Field(default=None, ge=0.0, le=1.0)
    stage: PipelineStage | None = None
    detected_watermark_count: int | None = Field(default=None, ge=0)
    message: Optional[str] = None
    error: Optional[str] = None
    result_path: Optional[str] = None


class JobUpdate(BaseModel):
    """Schema for worker-driven job updates."""

    status: Optional[JobStatus] = None
    progress: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    stage: Optional[PipelineStage] = None
    detected_watermark_count: Optional[int] = Field(default=None, ge=0)
    message: Optional[str] = None
    error: Optional[str] = None
    result_path: Optional[str] = None

    @model_validator(mode="after")
    def validate_payload(self) -> "JobUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided when updating a job.")
        return self
