"""Re-encoding of the final frame sequence into an output video."""

from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from loguru import logger

from unmark.core.config import Settings
from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import AssemblyError
from unmark.pipeline.frames import FrameBuffer, FrameCallback, FrameProgress
from unmark.utils.ffmpeg import build_encode_command


WrittenCallback = Callable[[FrameBuffer], None]


class FrameEncoder(Protocol):
    """Turns an ordered stream of equally sized RGB frames into container bytes."""

    media_type: str

    def encode(
        self,
        frames: Sequence[FrameBuffer],
        width: int,
        height: int,
        rate: float,
        on_written: Optional[WrittenCallback] = None,
    ) -> bytes:
        """Return the complete encoded stream or raise AssemblyError."""


class FfmpegEncoder:
    """Pipe raw RGB frames into an ``ffmpeg`` subprocess, trying each configured codec in turn."""

    media_type = "video/mp4"

    def __init__(
        self,
        binary: str = "ffmpeg",
        codecs: Sequence[str] = ("libx264", "mpeg4"),
        crf: int = 18,
    ) -> None:
        if not codecs:
            raise ValueError("At least one encoder codec is required.")
        self._binary = binary
        self._codecs = list(codecs)
        self._crf = crf

    @classmethod
    def from_settings(cls, settings: Settings) -> "FfmpegEncoder":
        codecs = [part.strip() for part in settings.ENCODER_CODECS.split(",") if part.strip()]
        return cls(binary=settings.FFMPEG_BINARY, codecs=codecs, crf=settings.ENCODER_CRF)

    def encode(
        self,
        frames: Sequence[FrameBuffer],
        width: int,
        height: int,
        rate: float,
        on_written: Optional[WrittenCallback] = None,
    ) -> bytes:
        errors: list[str] = []
        for codec in self._codecs:
            try:
                data = self._encode_with(codec, frames, width, height, rate, on_written)
            except FileNotFoundError as exc:
                raise AssemblyError(f"Encoder could not be initialized: {exc}") from exc
            except AssemblyError as exc:
                logger.warning(f"Encoding with {codec} failed ({exc}); trying next codec")
                errors.append(f"{codec}: {exc}")
                continue
            logger.info(f"Encoded {len(frames)} frames with {codec} ({len(data)} bytes)")
            return data

        raise AssemblyError("Unable to encode output video. Attempted: " + "; ".join(errors))

    def _encode_with(
        self,
        codec: str,
        frames: Sequence[FrameBuffer],
        width: int,
        height: int,
        rate: float,
        on_written: Optional[WrittenCallback],
    ) -> bytes:
        with tempfile.TemporaryDirectory(prefix="unmark-encode-") as tmpdir:
            output_path = Path(tmpdir) / "output.mp4"
            command = build_encode_command(
                self._binary, codec, width, height, rate, output_path, crf=self._crf
            )
            encode_proc = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )

            try:
                if not encode_proc.stdin:
                    raise AssemblyError("Failed to open FFmpeg encode stream.")
                for frame in frames:
                    encode_proc.stdin.write(frame.pixels.tobytes())
                    if on_written:
                        on_written(frame)
            except BrokenPipeError:
                # The encoder exited early; its return code and stderr say why.
                pass
            except BaseException:
                encode_proc.kill()
                encode_proc.wait()
                raise
            finally:
                if encode_proc.stdin:
                    try:
                        encode_proc.stdin.close()
                    except BrokenPipeError:
                        pass

            encode_return = encode_proc.wait()
            stderr = encode_proc.stderr.read().decode("utf-8", errors="ignore") if encode_proc.stderr else ""
            if encode_proc.stderr:
                encode_proc.stderr.close()
            if encode_return != 0:
                raise AssemblyError(f"ffmpeg exited with code {encode_return}: {stderr.strip()}")
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise AssemblyError("ffmpeg produced no output.")
            return output_path.read_bytes()


class VideoAssembler:
    """Write the final frame list, once each and in index order, at the sampling rate."""

    def __init__(self, encoder: FrameEncoder, rate: int = 30) -> None:
        self._encoder = encoder
        self.rate = rate

    @property
    def media_type(self) -> str:
        return self._encoder.media_type

    def assemble(
        self,
        frames: Sequence[FrameBuffer],
        token: Optional[CancellationToken] = None,
        on_frame: Optional[FrameCallback] = None,
    ) -> bytes:
        if not frames:
            raise AssemblyError("No frames to reconstruct.")

        first = frames[0]
        for expected, frame in enumerate(frames):
            if frame.index != expected:
                raise AssemblyError(f"Frame sequence broken at position {expected} (found index {frame.index}).")
            if frame.pixels.shape != first.pixels.shape:
                raise AssemblyError(
                    f"Frame {frame.index} is {frame.pixels.shape}, expected {first.pixels.shape}."
                )

        total = len(frames)

        def written(frame: FrameBuffer) -> None:
            if on_frame:
                on_frame(FrameProgress(current=frame.index + 1, total=total, frame_index=frame.index))
            if token:
                token.raise_if_cancelled()

        if token:
            token.raise_if_cancelled()
        return self._encoder.encode(frames, first.width, first.height, float(self.rate), on_written=written)
