"""HTTP client for the external watermark detection service."""

from __future__ import annotations

import json
import re
from typing import Any

import requests
from loguru import logger
from pydantic import ValidationError

from unmark.clients.imaging import encode_image, to_data_url
from unmark.core.config import Settings
from unmark.pipeline.exceptions import DetectionError
from unmark.pipeline.frames import FrameBuffer
from unmark.schemas.detection import DetectionResponse

FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_detection_text(text: str) -> DetectionResponse:
    """Parse a detection answer produced as free text by a language model."""

    candidate = text.strip()
    fenced = FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    elif not candidate.startswith("{"):
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise DetectionError("Detection response contains no JSON object.")
        candidate = candidate[start : end + 1]

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise DetectionError(f"Unable to parse detection response: {exc}") from exc
    return parse_detection_payload(payload)


def parse_detection_payload(payload: Any) -> DetectionResponse:
    """Validate a structured answer or unwrap a ``{"text": ...}`` envelope."""

    if not isinstance(payload, dict):
        raise DetectionError(f"Unexpected detection payload type: {type(payload).__name__}")

    if "hasWatermark" not in payload and "watermarks" not in payload:
        text = payload.get("text")
        if isinstance(text, str):
            return parse_detection_text(text)
        raise DetectionError("Detection payload has neither 'hasWatermark' nor 'watermarks'.")

    try:
        return DetectionResponse.model_validate(payload)
    except ValidationError as exc:
        raise DetectionError(f"Invalid detection payload: {exc.error_count()} error(s)") from exc


class HttpDetectionClient:
    """Sends each frame as a JPEG data URL and parses the service's JSON answer."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        prompt: str = "",
        timeout: float = 60.0,
        jpeg_quality: int = 80,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._prompt = prompt
        self._timeout = timeout
        self._jpeg_quality = jpeg_quality
        self._session = session or requests.Session()
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpDetectionClient":
        if not settings.DETECTION_SERVICE_URL:
            raise ValueError("DETECTION_SERVICE_URL is not configured.")
        return cls(
            url=settings.DETECTION_SERVICE_URL,
            api_key=settings.DETECTION_API_KEY,
            prompt=settings.DETECTION_PROMPT,
            timeout=settings.DETECTION_TIMEOUT_SECONDS,
            jpeg_quality=settings.DETECTION_JPEG_QUALITY,
        )

    def analyze(self, frame: FrameBuffer) -> DetectionResponse:
        image = to_data_url(encode_image(frame.pixels, "JPEG", self._jpeg_quality), "image/jpeg")
        try:
            response = self._session.post(
                self._url,
                json={"image": image, "prompt": self._prompt},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DetectionError(f"Detection request failed for frame {frame.index}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            logger.debug(f"Detection response for frame {frame.index} is not JSON; parsing as text")
            return parse_detection_text(response.text)
        return parse_detection_payload(payload)
