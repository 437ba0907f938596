"""End-to-end conversion tests with fake engines.

The decompiler, FFmpeg and the MP4 encode all run through FakeRunner.
Nothing external is spawned.
"""
from __future__ import annotations

from dataclasses import replace

import pytest

from fakes import (
    MB,
    PNG_BYTES,
    FakeRunner,
    audio_absent,
    audio_copying,
    decompiler_exporting,
    decompiler_requiring,
    encoder_failing,
    encoder_writing,
    make_swf,
    probe_reporting,
)
from swfreel.conversion.pipeline import convert_swf, make_work_dir, resolve_framerate
from swfreel.errors import AssemblyError, ExtractionTimeoutError, ToolUnavailableError
from swfreel.manifest import MANIFEST_FILENAME
from swfreel.models import ConversionRequest, PipelineStage
from swfreel.tools.platform import Capability

_HAPPY_STAGES = [
    PipelineStage.RATE_DETECTING,
    PipelineStage.EXTRACTING,
    PipelineStage.AUDIO_FALLBACK,
    PipelineStage.RECONCILING,
    PipelineStage.ASSEMBLING,
    PipelineStage.CLEANING_UP,
    PipelineStage.DONE,
]


def _probe(fps: int):
    return probe_reporting(f"Stream #0:0: Video: flv1, 550x400, {fps} fps, {fps} tbr")


class TestHelpers:
    def test_work_dir_next_to_output(self, tmp_path):
        request = ConversionRequest(source=tmp_path / "in" / "intro.swf", output=tmp_path / "out" / "intro.mp4")
        assert make_work_dir(request) == tmp_path / "out" / ".temp-intro"

    @pytest.mark.parametrize(
        "requested, detected, expected",
        [(30, 15, 15), (24, 15, 24), (30, None, 30), (60, None, 60)],
    )
    def test_resolve_framerate(self, requested, detected, expected):
        assert resolve_framerate(requested, detected) == expected


class TestConvertSwf:
    def test_silent_source(self, tmp_path, toolchain):
        swf = make_swf(tmp_path / "a.swf", 2 * MB)
        runner = FakeRunner(decompiler=decompiler_exporting(50), audio=audio_absent(), probe=_probe(30))
        result = convert_swf(ConversionRequest(source=swf, output=tmp_path / "a.mp4"), toolchain, runner=runner)

        assert result.output.stat().st_size > 0
        assert result.frame_count == 50
        assert result.audio_count == 0
        assert result.framerate == 30
        assert result.detected_framerate == 30
        assert not result.partial
        assert result.stages == _HAPPY_STAGES
        assert runner.calls_for("-jar")[0][1] == 12 * 60

        cmd = runner.calls_for("-progress")[0][0]
        assert cmd[0] == str(toolchain.ffmpeg.path)
        assert cmd[cmd.index("-framerate") + 1] == "30"
        assert cmd.count("-i") == 1
        assert not (tmp_path / ".temp-a").exists()

    def test_partial_extraction_with_audio(self, tmp_path, toolchain):
        swf = make_swf(tmp_path / "b.swf", 5 * MB)
        runner = FakeRunner(
            decompiler=decompiler_exporting(10, fatal_after=8),
            audio=audio_copying(),
            probe=_probe(24),
        )
        result = convert_swf(ConversionRequest(source=swf, output=tmp_path / "b.mp4"), toolchain, runner=runner)

        assert result.partial
        assert result.frame_count == 10
        assert result.audio_count == 1
        assert runner.calls_for("-jar")[0][1] == 15 * 60
        cmd = runner.calls_for("-progress")[0][0]
        assert cmd.count("-i") == 2
        assert "aac" in cmd

    def test_explicit_framerate_skips_detection(self, tmp_path, toolchain):
        swf = make_swf(tmp_path / "a.swf")
        runner = FakeRunner(decompiler=decompiler_exporting(3), probe=_probe(12))
        result = convert_swf(
            ConversionRequest(source=swf, output=tmp_path / "a.mp4", framerate=24),
            toolchain,
            runner=runner,
        )
        assert result.framerate == 24
        assert result.detected_framerate is None
        assert all(
            "-jar" in args or "-vn" in args or "-progress" in args for args, _ in runner.calls
        )

    def test_timeout_override(self, tmp_path, toolchain):
        swf = make_swf(tmp_path / "big.swf", 60 * MB)
        handler = decompiler_requiring(seconds=3 * 60)
        stages: list[PipelineStage] = []
        runner = FakeRunner(decompiler=handler, probe=_probe(12))

        with pytest.raises(ExtractionTimeoutError):
            convert_swf(
                ConversionRequest(source=swf, output=tmp_path / "big.mp4", timeout_minutes=1),
                toolchain,
                runner=runner,
                stage_callback=stages.append,
            )

        assert handler.terminated
        assert runner.calls_for("-jar")[0][1] == 60
        assert stages[-1] is PipelineStage.ERRORED
        assert PipelineStage.ASSEMBLING not in stages
        assert runner.calls_for("-progress") == []
        assert not (tmp_path / ".temp-big").exists()

    def test_keep_extracted(self, tmp_path, toolchain):
        swf = make_swf(tmp_path / "a.swf")
        runner = FakeRunner(decompiler=decompiler_exporting(3), audio=audio_copying(), probe=_probe(12))
        result = convert_swf(
            ConversionRequest(source=swf, output=tmp_path / "a.mp4", keep_extracted=True),
            toolchain,
            runner=runner,
        )
        work_dir = tmp_path / ".temp-a"
        assert result.work_dir == work_dir
        assert (work_dir / "frames" / "1.png").exists()
        assert (work_dir / "sounds" / "0.mp3").exists()
        assert (work_dir / MANIFEST_FILENAME).exists()
        assert PipelineStage.CLEANING_UP not in result.stages

    def test_assembly_failure_still_cleans_up(self, tmp_path, toolchain):
        swf = make_swf(tmp_path / "a.swf")
        stages: list[PipelineStage] = []
        runner = FakeRunner(decompiler=decompiler_exporting(3), probe=_probe(12), encoder=encoder_failing())

        with pytest.raises(AssemblyError, match="libx264"):
            convert_swf(
                ConversionRequest(source=swf, output=tmp_path / "a.mp4"),
                toolchain,
                runner=runner,
                stage_callback=stages.append,
            )
        assert stages[-2:] == [PipelineStage.ASSEMBLING, PipelineStage.ERRORED]
        assert not (tmp_path / ".temp-a").exists()

    def test_requires_ffmpeg_up_front(self, tmp_path, toolchain):
        no_ffmpeg = replace(toolchain, ffmpeg=Capability.unavailable("ffmpeg", "not installed"))
        runner = FakeRunner()
        with pytest.raises(ToolUnavailableError):
            convert_swf(
                ConversionRequest(source=make_swf(tmp_path / "a.swf"), output=tmp_path / "a.mp4"),
                no_ffmpeg,
                runner=runner,
            )
        assert runner.calls == []
        assert not (tmp_path / ".temp-a").exists()

    def test_sources_with_different_names_do_not_share_work_dirs(self, tmp_path, toolchain):
        runner = FakeRunner(decompiler=decompiler_exporting(2), probe=_probe(12))
        for name in ("one", "two"):
            convert_swf(
                ConversionRequest(
                    source=make_swf(tmp_path / f"{name}.swf"),
                    output=tmp_path / f"{name}.mp4",
                    keep_extracted=True,
                ),
                toolchain,
                runner=runner,
            )
        assert (tmp_path / ".temp-one").is_dir()
        assert (tmp_path / ".temp-two").is_dir()

    def test_stale_work_dir_is_cleared(self, tmp_path, toolchain):
        stale = tmp_path / ".temp-a" / "frames"
        stale.mkdir(parents=True)
        for i in (1, 2, 99):
            (stale / f"{i}.png").write_bytes(PNG_BYTES)
        runner = FakeRunner(decompiler=decompiler_exporting(3), probe=_probe(12))

        result = convert_swf(
            ConversionRequest(source=make_swf(tmp_path / "a.swf"), output=tmp_path / "a.mp4", keep_extracted=True),
            toolchain,
            runner=runner,
        )
        assert result.frame_count == 3
        assert sorted(p.name for p in stale.iterdir()) == ["1.png", "2.png", "3.png"]

    def test_encode_progress_reported(self, tmp_path, toolchain):
        encoder = encoder_writing(out_times_us=(500_000,))
        runner = FakeRunner(decompiler=decompiler_exporting(12), probe=_probe(12), encoder=encoder)
        reported: list[float] = []

        convert_swf(
            ConversionRequest(source=make_swf(tmp_path / "a.swf"), output=tmp_path / "a.mp4"),
            toolchain,
            runner=runner,
            encode_callback=reported.append,
        )
        assert reported == [50.0, 100.0]
        assert len(encoder.commands) == 1
