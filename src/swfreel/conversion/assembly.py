"""Stitch extracted frames (and optional audio) into an H.264 MP4.

FFmpeg runs through the project's :class:`ProcessRunner` with
``-progress pipe:1``; the ``out_time_us`` reports on stdout become a
percentage of the expected output duration.  Subprocess and FFmpeg
failures are translated into ``AssemblyError`` carrying FFmpeg's own
stderr; partial output files are left for the caller.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable

from swfreel.errors import AssemblyError
from swfreel.manifest import ContentManifest
from swfreel.tools.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

# libx264 with yuv420p rejects odd widths/heights.
EVEN_PAD_FILTER = "pad=ceil(iw/2)*2:ceil(ih/2)*2"
VIDEO_CRF = "23"

DURATION_READ_TIMEOUT_S: float = 30.0

_WRITE_PROBE_NAME = ".write-test"
_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")

EncodeProgressCallback = Callable[[float], None]


def build_frame_pattern(manifest: ContentManifest) -> str:
    """Return the image2 input pattern for the manifest's frames.

    Always ``<frames_dir>/%d<ext>``: prefixed names such as ``frame1.png``
    are not given their own pattern.
    """
    if not manifest.frame_files:
        raise ValueError("manifest has no frames")
    first = manifest.frame_files[0]
    return str(first.parent / f"%d{first.suffix}")


def ensure_writable(output_dir: Path, output_path: Path) -> None:
    """Create *output_dir* and prove it is writable before a long encode."""
    probe = output_dir / _WRITE_PROBE_NAME
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        probe.write_text("test", encoding="utf-8")
        probe.unlink()
    except OSError as exc:
        raise AssemblyError(output_path, f"Cannot write to output directory: {output_dir}. {exc}") from exc


def build_assembly_command(
    manifest: ContentManifest,
    output_path: Path,
    framerate: int,
    ffmpeg: Path,
) -> list[str]:
    cmd = [
        str(ffmpeg), "-y",
        "-nostats", "-progress", "pipe:1",
        "-framerate", str(framerate),
        "-i", build_frame_pattern(manifest),
    ]
    if manifest.audio_files:
        cmd += ["-i", str(manifest.audio_files[0])]
    cmd += [
        "-vf", EVEN_PAD_FILTER,
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-crf", VIDEO_CRF,
    ]
    if manifest.audio_files:
        # No -shortest: a soundtrack longer than the frames plays out in full.
        cmd += ["-c:a", "aac"]
    cmd.append(str(output_path))
    return cmd


def parse_duration(diagnostics: str) -> float | None:
    """Return the first ``Duration: HH:MM:SS.ss`` in FFmpeg's input summary, in seconds."""
    match = _DURATION_RE.search(diagnostics)
    if match is None:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def read_audio_duration(audio: Path, ffmpeg: Path, runner: ProcessRunner) -> float | None:
    """Read the duration of *audio* from ``ffmpeg -i``; None when unknown."""
    try:
        result = runner.run([str(ffmpeg), "-i", str(audio)], timeout_s=DURATION_READ_TIMEOUT_S)
    except OSError as exc:
        logger.debug("could not read the duration of %s: %s", audio, exc)
        return None
    if result.timed_out:
        return None
    return parse_duration(result.stderr_text)


def expected_duration_s(manifest: ContentManifest, framerate: int, audio_duration: float | None) -> float:
    """Output length: the longer of the frame sequence and the soundtrack."""
    video_duration = manifest.frame_count / framerate
    return max(video_duration, audio_duration or 0.0)


class _ProgressReader:
    """Turns ``-progress`` key=value lines into a percentage of *total_s*."""

    def __init__(self, total_s: float, callback: EncodeProgressCallback | None) -> None:
        self.total_s = total_s
        self.callback = callback
        self.percent = 0.0

    def on_stdout(self, line: str) -> None:
        key, sep, value = line.strip().partition("=")
        if not sep:
            return
        if key == "progress" and value == "end":
            self._report(100.0)
            return
        # out_time_ms is also microseconds, despite its name.
        if key not in ("out_time_us", "out_time_ms") or self.total_s <= 0:
            return
        try:
            out_time_s = int(value) / 1_000_000
        except ValueError:
            return
        self._report(min(100.0, out_time_s / self.total_s * 100.0))

    def _report(self, percent: float) -> None:
        if percent < self.percent:
            return
        self.percent = percent
        if self.callback is not None:
            self.callback(percent)


def assemble_video(
    manifest: ContentManifest,
    output_path: Path,
    framerate: int,
    ffmpeg: Path,
    runner: ProcessRunner | None = None,
    progress_callback: EncodeProgressCallback | None = None,
) -> Path:
    """Encode *manifest* into *output_path* at *framerate* fps.

    Parameters
    ----------
    manifest:
        Reconciled frames and audio; the first audio file, if any, becomes
        the soundtrack.
    output_path:
        Destination MP4.
    framerate:
        Input frame rate for the image sequence.
    ffmpeg:
        Resolved FFmpeg executable.
    runner:
        Process runner; defaults to :class:`SubprocessRunner`.
    progress_callback:
        Receives the encode percentage (0-100) as FFmpeg reports progress.

    Returns
    -------
    Path
        *output_path* on success.

    Raises
    ------
    AssemblyError
        If there are no frames, the destination is not writable, or FFmpeg
        fails or produces no output.
    """
    if manifest.frame_count == 0:
        raise AssemblyError(output_path, "No frame files found for conversion")

    ensure_writable(output_path.parent, output_path)
    runner = runner or SubprocessRunner()

    audio_duration = None
    if manifest.audio_files:
        audio_duration = read_audio_duration(manifest.audio_files[0], ffmpeg, runner)
    else:
        logger.warning("no audio found, creating silent video")

    total_s = expected_duration_s(manifest, framerate, audio_duration)
    reader = _ProgressReader(total_s, progress_callback)

    cmd = build_assembly_command(manifest, output_path, framerate, ffmpeg)
    logger.debug("FFmpeg command: %s", " ".join(cmd))
    logger.info("encoding %d frame(s) at %d fps (%.1fs expected)", manifest.frame_count, framerate, total_s)

    try:
        result = runner.run(cmd, on_stdout=reader.on_stdout)
    except OSError as exc:
        raise AssemblyError(output_path, f"could not start FFmpeg: {exc}") from exc

    if result.returncode != 0:
        stderr = result.stderr_text
        raise AssemblyError(output_path, stderr[-500:] or f"FFmpeg exited with code {result.returncode}")

    if not output_path.exists() or output_path.stat().st_size == 0:
        raise AssemblyError(output_path, "FFmpeg exited without writing the output video")

    return output_path
