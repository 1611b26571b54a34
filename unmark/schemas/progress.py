"""Pydantic models describing pipeline progress."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PipelineStage(str, Enum):
    """Stage a progress event belongs to."""

    extracting = "extracting"
    analyzing = "analyzing"
    detecting = "detecting"
    removing = "removing"
    reconstructing = "reconstructing"
    complete = "complete"


class ProgressEvent(BaseModel):
    """Progress update emitted to the caller's sink during a run."""

    stage: PipelineStage
    percent: float = Field(ge=0.0, le=100.0)
    current_frame: Optional[int] = Field(default=None, ge=0)
    total_frames: Optional[int] = Field(default=None, ge=0)
    detected_watermark_count: Optional[int] = Field(default=None, ge=0)
    message: str = ""
