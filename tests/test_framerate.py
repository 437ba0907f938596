"""Unit tests for best-effort frame-rate detection."""
from __future__ import annotations

from pathlib import Path

import pytest

from fakes import FakeRunner, make_swf, probe_reporting
from swfreel.conversion.framerate import detect_frame_rate, parse_frame_rate
from swfreel.tools.platform import Capability
from swfreel.tools.runner import ProcessState

FFMPEG = Capability.available_at("ffmpeg", Path("/usr/bin/ffmpeg"))

_STREAM_SUMMARY = (
    "Input #0, swf, from 'movie.swf':\n"
    "  Duration: N/A, bitrate: N/A\n"
    "    Stream #0:0: Video: flv1, yuv420p, 550x400, 15 fps, 15 tbr, 15 tbn\n"
    "At least one output file must be specified"
)


class TestParseFrameRate:
    def test_fps_marker(self):
        assert parse_frame_rate(_STREAM_SUMMARY) == 15

    def test_fractional_rounds_half_up(self):
        assert parse_frame_rate("Video: flv1, 23.5 fps") == 24
        assert parse_frame_rate("Video: flv1, 29.97 fps") == 30

    def test_tbr_when_no_fps(self):
        assert parse_frame_rate("Video: flv1, 550x400, 12 tbr, 1k tbn") == 12

    def test_first_fps_wins(self):
        assert parse_frame_rate("Stream #0:0: 24 fps\nStream #0:1: 12 fps") == 24

    @pytest.mark.parametrize("text", ["", "no rate here", "Video: 0 fps", "Video: 240 fps"])
    def test_unusable(self, text):
        assert parse_frame_rate(text) is None


class TestDetectFrameRate:
    def test_detected(self, tmp_path):
        swf = make_swf(tmp_path / "a.swf")
        runner = FakeRunner(probe=probe_reporting(_STREAM_SUMMARY))
        assert detect_frame_rate(swf, FFMPEG, runner=runner) == 15
        (args, timeout_s), = runner.calls
        assert args == ["/usr/bin/ffmpeg", "-i", str(swf)]
        assert timeout_s == 30

    def test_no_match_defaults_to_30(self, tmp_path):
        runner = FakeRunner(probe=probe_reporting("Invalid data found when processing input"))
        assert detect_frame_rate(make_swf(tmp_path / "a.swf"), FFMPEG, runner=runner) == 30

    def test_timeout_defaults_to_30(self, tmp_path):
        runner = FakeRunner(probe=probe_reporting(_STREAM_SUMMARY, state=ProcessState.KILLED))
        assert detect_frame_rate(make_swf(tmp_path / "a.swf"), FFMPEG, runner=runner) == 30

    def test_unavailable_ffmpeg_defaults_to_30(self, tmp_path):
        runner = FakeRunner()
        missing = Capability.unavailable("ffmpeg", "not installed")
        assert detect_frame_rate(make_swf(tmp_path / "a.swf"), missing, runner=runner) == 30
        assert runner.calls == []

    def test_spawn_failure_defaults_to_30(self, tmp_path):
        class _RaisingRunner:
            def run(self, args, timeout_s=None, on_stdout=None, on_stderr=None):
                raise PermissionError(13, "Permission denied", args[0])

        assert detect_frame_rate(make_swf(tmp_path / "a.swf"), FFMPEG, runner=_RaisingRunner()) == 30
