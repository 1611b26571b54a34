"""Pydantic models for payloads returned by the watermark detection service."""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class RelativeBox(BaseModel):
    """Bounding box expressed as fractions of the frame size."""

    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    x: float
    y: float
    width: float = Field(ge=0.0)
    height: float = Field(ge=0.0)


class WatermarkRegion(BaseModel):
    """One watermark reported on a frame."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = None
    description: str | None = None
    location: str | None = None
    bounding_box: RelativeBox = Field(alias="boundingBox")
    confidence: float = Field(default=0.0, allow_inf_nan=False)

    @field_validator("confidence", mode="before")
    @classmethod
    def default_missing_confidence(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return min(1.0, max(0.0, value))


class DetectionResponse(BaseModel):
    """Structured answer of ``DetectionService.analyze``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    has_watermark: bool = Field(default=False, alias="hasWatermark")
    watermarks: list[WatermarkRegion] = Field(default_factory=list)

    @field_validator("has_watermark", mode="before")
    @classmethod
    def default_missing_flag(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("watermarks", mode="before")
    @classmethod
    def drop_malformed_regions(cls, value: Any) -> list[WatermarkRegion]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("watermarks must be a list")

        regions: list[WatermarkRegion] = []
        for position, item in enumerate(value):
            try:
                regions.append(WatermarkRegion.model_validate(item))
            except ValidationError as exc:
                logger.warning(f"Ignoring malformed watermark region #{position}: {exc.error_count()} error(s)")
        return regions

    @property
    def regions(self) -> list[WatermarkRegion]:
        """Regions to act on; a negative ``hasWatermark`` overrides any listed regions."""

        return self.watermarks if self.has_watermark else []
