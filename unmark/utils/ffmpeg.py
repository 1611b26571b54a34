"""FFmpeg helper utilities."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

# Codecs that take a constant-rate-factor quality knob.
CRF_CODECS = {"libx264", "libx265", "libvpx-vp9"}


def ffmpeg_path(binary: str) -> str:
    """Resolve ``binary`` on PATH, falling back to the name as given."""

    return shutil.which(binary) or binary


def build_encode_command(
    binary: str,
    codec: str,
    width: int,
    height: int,
    rate: float,
    output_path: Path,
    crf: int = 18,
) -> list[str]:
    """Construct an FFmpeg invocation that encodes raw RGB frames read from stdin."""

    command = [
        ffmpeg_path(binary),
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgb24",
        "-s",
        f"{width}x{height}",
        "-r",
        f"{rate:.6f}",
        "-i",
        "-",
        "-an",
        # yuv420p needs even dimensions.
        "-vf",
        "pad=ceil(iw/2)*2:ceil(ih/2)*2",
        "-c:v",
        codec,
    ]
    if codec in CRF_CODECS:
        command += ["-crf", str(crf)]
    else:
        command += ["-q:v", "2"]
    command += [
        "-pix_fmt",
        "yuv420p",
        "-movflags",
        "+faststart",
        str(output_path),
    ]
    logger.debug("Built FFmpeg encode command %s", command)
    return command
