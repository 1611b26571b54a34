"""Tests for fixed-rate frame sampling."""
from __future__ import annotations

import numpy as np
import pytest

from unmark.pipeline.cancellation import CancellationToken
from unmark.pipeline.exceptions import PipelineCancelled, SourceError
from unmark.pipeline.sampler import FrameSampler
from tests.fakes import FakeVideoSource


# ---------- Frame count ----------

class TestTotalFrames:
    def test_whole_seconds(self):
        assert FrameSampler(rate=30).total_frames(3.0) == 90

    def test_rounds_down(self):
        assert FrameSampler(rate=30).total_frames(2.99) == 89

    def test_float_noise_does_not_lose_a_frame(self):
        # 0.1 * 30 is 3.0000000000000004; 0.7 * 30 is 20.999999999999996
        assert FrameSampler(rate=30).total_frames(0.7) == 21

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            FrameSampler(rate=0)


# ---------- Sampling ----------

class TestSample:
    def test_source_at_sampling_rate_is_identity(self):
        source = FakeVideoSource(duration=3.0, fps=30)
        frames = FrameSampler(rate=30).sample(source)

        assert len(frames) == 90
        assert [frame.index for frame in frames] == list(range(90))
        for frame in frames:
            assert frame.timestamp == pytest.approx(frame.index / 30)
            assert int(frame.pixels[0, 0, 0]) == frame.index

    def test_slower_source_repeats_displayed_frame(self):
        source = FakeVideoSource(duration=2.0, fps=24)
        frames = FrameSampler(rate=30).sample(source)

        assert len(frames) == 60
        for frame in frames:
            assert int(frame.pixels[0, 0, 0]) == source.source_value_at(frame.index / 30)

    def test_faster_source_skips_frames(self):
        source = FakeVideoSource(duration=1.0, fps=60)
        frames = FrameSampler(rate=30).sample(source)

        assert [int(frame.pixels[0, 0, 0]) for frame in frames] == [2 * i for i in range(30)]

    def test_repeated_frames_do_not_share_buffers(self):
        source = FakeVideoSource(duration=1.0, fps=10)
        frames = FrameSampler(rate=30).sample(source)

        assert int(frames[1].pixels[0, 0, 0]) == int(frames[0].pixels[0, 0, 0])
        assert not np.shares_memory(frames[0].pixels, frames[1].pixels)
        frames[1].pixels[...] = 200
        assert int(frames[0].pixels[0, 0, 0]) == 0

    def test_source_ending_early_repeats_last_frame(self):
        source = FakeVideoSource(duration=1.0, fps=30, decoded_frames=15)
        frames = FrameSampler(rate=30).sample(source)

        assert len(frames) == 30
        assert all(int(frame.pixels[0, 0, 0]) == 14 for frame in frames[14:])

    def test_frame_dimensions_follow_source(self):
        frames = FrameSampler(rate=30).sample(FakeVideoSource(duration=0.5, width=16, height=10))
        assert frames[0].size == (16, 10)

    def test_progress_reported_per_frame(self):
        progress = []
        FrameSampler(rate=30).sample(FakeVideoSource(duration=1.0), on_frame=progress.append)

        assert [p.current for p in progress] == list(range(1, 31))
        assert {p.total for p in progress} == {30}


# ---------- Failure modes ----------

class TestSampleErrors:
    def test_too_short_source(self):
        with pytest.raises(SourceError, match="too short"):
            FrameSampler(rate=30).sample(FakeVideoSource(duration=0.01))

    def test_no_decodable_frames(self):
        with pytest.raises(SourceError, match="No decodable frames"):
            FrameSampler(rate=30).sample(FakeVideoSource(duration=1.0, decoded_frames=0))

    def test_probe_error_propagates(self):
        source = FakeVideoSource(probe_error=SourceError("No video stream found in source file."))
        with pytest.raises(SourceError, match="No video stream"):
            FrameSampler(rate=30).sample(source)

    def test_cancelled_token_stops_decoding(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(PipelineCancelled):
            FrameSampler(rate=30).sample(FakeVideoSource(duration=1.0), token=token)
