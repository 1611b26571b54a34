"""Image encoding helpers for service payloads."""

from __future__ import annotations

import base64
import binascii
import io

import numpy as np
from PIL import Image, UnidentifiedImageError


def encode_image(pixels: np.ndarray, image_format: str = "JPEG", quality: int = 90) -> bytes:
    """Encode an RGB or single-channel array with Pillow."""

    image = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    buffer = io.BytesIO()
    if image_format.upper() in {"JPEG", "JPG"}:
        image.save(buffer, format="JPEG", quality=quality)
    else:
        image.save(buffer, format=image_format)
    return buffer.getvalue()


def to_data_url(data: bytes, media_type: str) -> str:
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_base64_payload(data: str) -> bytes:
    """Decode plain base64 or a ``data:`` URL."""

    payload = data[data.find(",") + 1 :] if "," in data else data
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Invalid base64 image payload: {exc}") from exc


def decode_image(data: bytes, size: tuple[int, int] | None = None) -> np.ndarray:
    """Decode image bytes into an RGB array, resized to ``size`` (width, height) if given."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            rgb = image.convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unreadable image data: {exc}") from exc

    if size is not None and rgb.size != size:
        rgb = rgb.resize(size, Image.Resampling.LANCZOS)
    return np.asarray(rgb, dtype=np.uint8).copy()
