"""Fixed-rate frame sampling over a decodable video source."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Protocol

import av
from av.error import FFmpegError
import numpy as np
from loguru import logger

from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import SourceError
from unmark.pipeline.frames import FrameBuffer, FrameCallback, FrameProgress

# Presentation times are rebuilt from integer pts; allow for rounding when comparing to i / R.
TIME_EPSILON = 1e-6


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    duration: float
    fps: float | None = None


class VideoSource(Protocol):
    """Decode surface owned by one pipeline run."""

    def probe(self) -> VideoInfo:
        """Return stream metadata, raising SourceError if it cannot be read."""

    def iter_frames(self) -> Iterator[tuple[float, np.ndarray]]:
        """Yield (presentation time in seconds, RGB array) in decode order."""

    def close(self) -> None:
        """Release the decoder."""


class AvVideoSource:
    """PyAV-backed video source reading a local file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._container: av.container.InputContainer | None = None
        self._info: VideoInfo | None = None

    def __enter__(self) -> "AvVideoSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _open(self) -> av.container.InputContainer:
        if self._container is None:
            try:
                self._container = av.open(str(self._path))
            except (FFmpegError, OSError) as exc:
                raise SourceError(f"Failed to load video: {exc}") from exc
        return self._container

    def probe(self) -> VideoInfo:
        if self._info is not None:
            return self._info

        container = self._open()
        if not container.streams.video:
            raise SourceError("No video stream found in source file.")
        stream = container.streams.video[0]

        width = int(stream.codec_context.width or stream.width or 0)
        height = int(stream.codec_context.height or stream.height or 0)
        if not width or not height:
            raise SourceError("Unable to determine video resolution.")

        duration: float | None = None
        if container.duration:
            duration = container.duration / av.time_base
        elif stream.duration and stream.time_base:
            duration = float(stream.duration * stream.time_base)
        if not duration or duration <= 0 or not math.isfinite(duration):
            raise SourceError("Unable to determine video duration.")

        fps = float(stream.average_rate) if stream.average_rate else None
        self._info = VideoInfo(width=width, height=height, duration=duration, fps=fps)
        return self._info

    def iter_frames(self) -> Iterator[tuple[float, np.ndarray]]:
        container = self._open()
        stream = container.streams.video[0]
        fallback_rate = float(stream.average_rate) if stream.average_rate else 30.0
        origin = self._start_offset(container, stream)
        try:
            for position, frame in enumerate(container.decode(stream)):
                time = float(frame.time) - origin if frame.time is not None else position / fallback_rate
                yield time, frame.to_ndarray(format="rgb24")
        except FFmpegError as exc:
            raise SourceError(f"Failed to decode video: {exc}") from exc

    @staticmethod
    def _start_offset(container: av.container.InputContainer, stream: av.video.stream.VideoStream) -> float:
        """Presentation time of the first frame, so sample instants count from zero."""

        if stream.start_time is not None and stream.time_base:
            return float(stream.start_time * stream.time_base)
        if container.start_time is not None:
            return container.start_time / av.time_base
        return 0.0

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None


class FrameSampler:
    """Capture the frame displayed at every ``i / rate`` second of the source."""

    def __init__(self, rate: int = 30) -> None:
        if rate <= 0:
            raise ValueError("Sampling rate must be positive.")
        self.rate = rate

    def total_frames(self, duration: float) -> int:
        return int(math.floor(duration * self.rate + TIME_EPSILON))

    def sample(
        self,
        source: VideoSource,
        token: Optional[CancellationToken] = None,
        on_frame: Optional[FrameCallback] = None,
    ) -> list[FrameBuffer]:
        info = source.probe()
        total = self.total_frames(info.duration)
        if total <= 0:
            raise SourceError(
                f"Video is too short to sample ({info.duration:.3f}s at {self.rate} fps)."
            )
        logger.info(f"Sampling {total} frames from {info.width}x{info.height} source ({info.duration:.2f}s)")

        frames: list[FrameBuffer] = []
        displayed: np.ndarray | None = None
        reused = False

        def capture(pixels: np.ndarray, copy: bool) -> None:
            index = len(frames)
            frames.append(FrameBuffer(index=index, timestamp=index / self.rate, pixels=pixels.copy() if copy else pixels))
            if on_frame:
                on_frame(FrameProgress(current=index + 1, total=total, frame_index=index))

        for time, pixels in source.iter_frames():
            if token:
                token.raise_if_cancelled()
            # Every pending instant that falls before this frame shows the previous one.
            while displayed is not None and len(frames) < total and len(frames) / self.rate < time - TIME_EPSILON:
                capture(displayed, copy=reused)
                reused = True
            if len(frames) >= total:
                break
            displayed = pixels
            reused = False

        if displayed is None:
            raise SourceError("No decodable frames in source video.")

        # Instants past the last decoded frame keep showing it.
        while len(frames) < total:
            if token:
                token.raise_if_cancelled()
            capture(displayed, copy=reused)
            reused = True

        return frames
