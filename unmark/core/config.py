"""Application configuration and settings management."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Unmark"
    APP_VERSION: str = "0.1.0"
    DESCRIPTION: str = (
        "Video watermark removal worker that samples frames, detects overlays with an "
        "external recognition service and repairs them with an inpainting service."
    )
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    API_PREFIX: str = "/api"
    API_V1_PREFIX: str = "/v1"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    WORK_DIR: Path = Path.cwd()
    FFMPEG_BINARY: str = "ffmpeg"

    # Frame pipeline
    SAMPLING_RATE: int = 30  # frames captured per second of source, independent of native fps
    DETECTION_BATCH_SIZE: int = 5
    DETECTION_BATCH_DELAY_SECONDS: float = 0.1
    DETECTION_MIN_CONFIDENCE: float = 0.0
    DEFAULT_MAX_BBOX_PERCENT: float = 100.0
    MASK_DILATION_PIXELS: int = 0
    PIPELINE_TIMEOUT_SECONDS: float | None = Field(default=None, gt=0)

    # Detection service
    DETECTION_SERVICE_URL: str | None = None
    DETECTION_API_KEY: str | None = None
    DETECTION_TIMEOUT_SECONDS: float = 60.0
    DETECTION_JPEG_QUALITY: int = 80
    DETECTION_PROMPT: str = (
        "Analyze this video frame for watermarks, logos, text overlays, or any branded content "
        "that appears to be added on top of the original video content. Respond with a JSON "
        'object: {"hasWatermark": boolean, "watermarks": [{"type": "text|logo|overlay", '
        '"description": string, "location": string, "boundingBox": {"x": number, "y": number, '
        '"width": number, "height": number}, "confidence": number}]} where all boundingBox '
        "values are relative to the frame size (0-1)."
    )

    # Inpainting
    INPAINT_BACKEND: Literal["http", "cv2"] = "http"
    INPAINT_SERVICE_URL: str | None = None
    INPAINT_API_KEY: str | None = None
    INPAINT_TIMEOUT_SECONDS: float = 120.0
    INPAINT_JPEG_QUALITY: int = 90
    INPAINT_RADIUS: int = 3  # cv2 backend only
    INPAINT_PROMPT: str = (
        "Remove the watermarks from this image while preserving the original content underneath. "
        "Fill in the watermarked areas naturally to match the surrounding content. "
        "Maintain the original image quality and style."
    )

    # Encoding
    ENCODER_CODECS: str = "libx264,mpeg4"  # tried in order
    ENCODER_CRF: int = 18


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
