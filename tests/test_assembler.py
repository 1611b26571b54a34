"""Tests for output assembly: ffmpeg command construction, codec fallback, frame validation."""
from __future__ import annotations

import numpy as np
import pytest

from unmark.pipeline.assembler import FfmpegEncoder, VideoAssembler
from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import AssemblyError, PipelineCancelled
from unmark.pipeline.frames import FrameBuffer
from unmark.utils.ffmpeg import build_encode_command
from tests.fakes import RecordingEncoder, solid_frame


def make_frames(count: int, width: int = 8, height: int = 6) -> list[FrameBuffer]:
    return [FrameBuffer(index=i, timestamp=i / 30, pixels=solid_frame(i, width, height)) for i in range(count)]


# ---------- build_encode_command ----------

class TestBuildEncodeCommand:
    def test_rawvideo_from_stdin(self, tmp_path):
        command = build_encode_command("ffmpeg-does-not-exist", "libx264", 640, 480, 30.0, tmp_path / "out.mp4")

        assert command[0] == "ffmpeg-does-not-exist"
        assert command[command.index("-f") + 1] == "rawvideo"
        assert command[command.index("-s") + 1] == "640x480"
        assert command[command.index("-i") + 1] == "-"
        assert "-an" in command
        assert command[-1] == str(tmp_path / "out.mp4")

    def test_x264_uses_crf(self, tmp_path):
        command = build_encode_command("ffmpeg", "libx264", 8, 6, 30.0, tmp_path / "o.mp4", crf=23)
        assert command[command.index("-crf") + 1] == "23"

    def test_other_codecs_use_qscale(self, tmp_path):
        command = build_encode_command("ffmpeg", "mpeg4", 8, 6, 30.0, tmp_path / "o.mp4")
        assert "-crf" not in command
        assert command[command.index("-q:v") + 1] == "2"

    def test_rate_passed_to_input(self, tmp_path):
        command = build_encode_command("ffmpeg", "mpeg4", 8, 6, 30.0, tmp_path / "o.mp4")
        assert float(command[command.index("-r") + 1]) == 30.0


# ---------- FfmpegEncoder ----------

class TestFfmpegEncoder:
    def test_writes_every_frame_in_order(self, fake_ffmpeg):
        popens, _ = fake_ffmpeg
        frames = make_frames(4)
        written = []

        data = FfmpegEncoder(codecs=["libx264"]).encode(frames, 8, 6, 30.0, on_written=lambda f: written.append(f.index))

        assert data == b"mp4-bytes"
        assert [chunk[0] for chunk in popens[0].stdin.chunks] == [0, 1, 2, 3]
        assert all(len(chunk) == 8 * 6 * 3 for chunk in popens[0].stdin.chunks)
        assert written == [0, 1, 2, 3]
        assert popens[0].stdin.closed

    def test_falls_back_to_next_codec(self, fake_ffmpeg):
        popens, behaviours = fake_ffmpeg
        behaviours["libx264"] = {"returncode": 1, "stderr": b"Unknown encoder 'libx264'"}

        data = FfmpegEncoder(codecs=["libx264", "mpeg4"]).encode(make_frames(2), 8, 6, 30.0)

        assert data == b"mp4-bytes"
        assert [popen.codec for popen in popens] == ["libx264", "mpeg4"]

    def test_early_exit_reported_with_stderr(self, fake_ffmpeg):
        _, behaviours = fake_ffmpeg
        behaviours["mpeg4"] = {"returncode": 1, "stderr": b"Invalid argument", "break_after": 1}

        with pytest.raises(AssemblyError, match="Invalid argument"):
            FfmpegEncoder(codecs=["mpeg4"]).encode(make_frames(3), 8, 6, 30.0)

    def test_all_codecs_fail(self, fake_ffmpeg):
        _, behaviours = fake_ffmpeg
        behaviours["libx264"] = {"returncode": 1}
        behaviours["mpeg4"] = {"returncode": 1}

        with pytest.raises(AssemblyError, match="Attempted: libx264.*mpeg4"):
            FfmpegEncoder(codecs=["libx264", "mpeg4"]).encode(make_frames(2), 8, 6, 30.0)

    def test_empty_output_is_an_error(self, fake_ffmpeg):
        _, behaviours = fake_ffmpeg
        behaviours["mpeg4"] = {"output": b""}

        with pytest.raises(AssemblyError, match="no output"):
            FfmpegEncoder(codecs=["mpeg4"]).encode(make_frames(2), 8, 6, 30.0)

    def test_missing_binary_is_fatal(self, monkeypatch):
        def _missing(*_args, **_kwargs):
            raise FileNotFoundError("ffmpeg")

        monkeypatch.setattr("unmark.pipeline.assembler.subprocess.Popen", _missing)
        with pytest.raises(AssemblyError, match="could not be initialized"):
            FfmpegEncoder(codecs=["libx264", "mpeg4"]).encode(make_frames(1), 8, 6, 30.0)

    def test_callback_error_kills_encoder(self, fake_ffmpeg):
        popens, _ = fake_ffmpeg

        def _cancel(frame):
            raise PipelineCancelled("Processing cancelled")

        with pytest.raises(PipelineCancelled):
            FfmpegEncoder(codecs=["libx264", "mpeg4"]).encode(make_frames(3), 8, 6, 30.0, on_written=_cancel)
        assert len(popens) == 1
        assert popens[0].killed

    def test_requires_a_codec(self):
        with pytest.raises(ValueError):
            FfmpegEncoder(codecs=[])

    def test_from_settings(self, settings):
        settings.ENCODER_CODECS = "libx265, mpeg4,"
        encoder = FfmpegEncoder.from_settings(settings)
        assert encoder._codecs == ["libx265", "mpeg4"]


# ---------- VideoAssembler ----------

class TestVideoAssembler:
    def test_passes_frames_size_and_rate(self):
        encoder = RecordingEncoder()
        output = VideoAssembler(encoder, rate=30).assemble(make_frames(5, width=16, height=10))

        assert output == b"encoded"
        assert [frame.index for frame in encoder.frames] == [0, 1, 2, 3, 4]
        assert encoder.size == (16, 10)
        assert encoder.rate == 30.0

    def test_progress_per_written_frame(self):
        progress = []
        VideoAssembler(RecordingEncoder()).assemble(make_frames(3), on_frame=progress.append)
        assert [(p.current, p.total) for p in progress] == [(1, 3), (2, 3), (3, 3)]

    def test_empty_sequence(self):
        with pytest.raises(AssemblyError, match="No frames"):
            VideoAssembler(RecordingEncoder()).assemble([])

    def test_gap_in_sequence(self):
        frames = make_frames(3)
        del frames[1]
        with pytest.raises(AssemblyError, match="position 1"):
            VideoAssembler(RecordingEncoder()).assemble(frames)

    def test_mismatched_frame_size(self):
        frames = make_frames(2)
        frames[1] = FrameBuffer(1, 1 / 30, np.zeros((4, 4, 3), dtype=np.uint8))
        with pytest.raises(AssemblyError, match="expected"):
            VideoAssembler(RecordingEncoder()).assemble(frames)

    def test_cancellation_between_frames(self):
        token = CancellationToken()
        encoder = RecordingEncoder()

        def _on_frame(progress):
            if progress.current == 2:
                token.cancel()

        with pytest.raises(PipelineCancelled):
            VideoAssembler(encoder).assemble(make_frames(5), token=token, on_frame=_on_frame)
        assert len(encoder.frames) == 2
