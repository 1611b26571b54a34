"""Inpainting backends: the external image-synthesis service and a local OpenCV fallback."""

from __future__ import annotations

from typing import Any

import cv2
import numpy as np
import requests
from loguru import logger

from unmark.clients.imaging import decode_base64_payload, decode_image, encode_image, to_data_url
from unmark.core.config import Settings
from unmark.pipeline.exceptions import InpaintError
from unmark.pipeline.frames import FrameBuffer


class HttpInpaintClient:
    """Posts the frame and its mask to the inpainting service and decodes the returned image."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        prompt: str = "",
        timeout: float = 120.0,
        jpeg_quality: int = 90,
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
    def from_settings(cls, settings: Settings) -> "HttpInpaintClient":
        if not settings.INPAINT_SERVICE_URL:
            raise ValueError("INPAINT_SERVICE_URL is not configured.")
        return cls(
            url=settings.INPAINT_SERVICE_URL,
            api_key=settings.INPAINT_API_KEY,
            prompt=settings.INPAINT_PROMPT,
            timeout=settings.INPAINT_TIMEOUT_SECONDS,
            jpeg_quality=settings.INPAINT_JPEG_QUALITY,
        )

    def repair(self, frame: FrameBuffer, mask: np.ndarray) -> np.ndarray:
        body = {
            "image": to_data_url(encode_image(frame.pixels, "JPEG", self._jpeg_quality), "image/jpeg"),
            # PNG keeps the mask strictly binary.
            "mask": to_data_url(encode_image(mask, "PNG"), "image/png"),
            "prompt": self._prompt,
        }
        try:
            response = self._session.post(self._url, json=body, timeout=self._timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise InpaintError(f"Inpaint request failed for frame {frame.index}: {exc}") from exc
        except ValueError as exc:
            raise InpaintError(f"Inpaint response for frame {frame.index} is not JSON") from exc

        try:
            data = self._fetch_image_bytes(payload)
            return decode_image(data, size=frame.size)
        except requests.RequestException as exc:
            raise InpaintError(f"Unable to download repaired frame {frame.index}: {exc}") from exc
        except ValueError as exc:
            raise InpaintError(f"Malformed inpaint result for frame {frame.index}: {exc}") from exc

    def _fetch_image_bytes(self, payload: Any) -> bytes:
        entry = payload
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            if not payload["data"]:
                raise ValueError("service returned no images")
            entry = payload["data"][0]
        if not isinstance(entry, dict):
            raise ValueError(f"unexpected payload type {type(entry).__name__}")

        for key in ("image", "b64_json"):
            value = entry.get(key)
            if isinstance(value, str) and value:
                return decode_base64_payload(value)

        url = entry.get("url")
        if isinstance(url, str) and url:
            if url.startswith("data:"):
                return decode_base64_payload(url)
            logger.debug(f"Downloading repaired frame from {url}")
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
            return response.content

        raise ValueError("payload carries no image, b64_json or url field")


class OpenCvInpaintClient:
    """Local inpainting with ``cv2.inpaint`` (Telea); no network round trip."""

    def __init__(self, radius: int = 3) -> None:
        self._radius = radius

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenCvInpaintClient":
        return cls(radius=settings.INPAINT_RADIUS)

    def repair(self, frame: FrameBuffer, mask: np.ndarray) -> np.ndarray:
        if mask.shape != frame.pixels.shape[:2]:
            raise InpaintError(
                f"Mask shape {mask.shape} does not match frame {frame.index} shape {frame.pixels.shape[:2]}"
            )
        try:
            return cv2.inpaint(frame.pixels, mask.astype(np.uint8), self._radius, cv2.INPAINT_TELEA)
        except cv2.error as exc:
            raise InpaintError(f"OpenCV inpainting failed for frame {frame.index}: {exc}") from exc
