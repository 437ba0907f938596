"""FFmpeg passthrough audio extraction, run after every decompiler pass.

JPEXS mishandles some of the sound formats Camtasia embeds, so the audio
stream is also copied straight out of the container with FFmpeg into
``sounds/0.mp3``.  Silent sources are common and are not an error.
"""

from __future__ import annotations

import logging
from pathlib import Path

from swfreel.errors import FallbackAudioError
from swfreel.extraction.decompiler import SOUNDS_DIRNAME
from swfreel.tools.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

FALLBACK_AUDIO_NAME = "0.mp3"

# FFmpeg messages that only mean "this file has no audio stream".
_NO_AUDIO_MARKERS: tuple[str, ...] = (
    "output file is empty",
    "does not contain any stream",
    "matches no streams",
)


def _is_no_audio_error(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _NO_AUDIO_MARKERS)


def _discard_empty(path: Path) -> None:
    if path.exists() and path.stat().st_size == 0:
        path.unlink()


def extract_audio_fallback(
    source: Path,
    output_dir: Path,
    ffmpeg: Path,
    runner: ProcessRunner | None = None,
) -> Path | None:
    """Copy the audio stream of *source* into output_dir/sounds/0.mp3.

    Returns:
        Path to the extracted audio, or None when the source has no audio.

    Raises:
        FallbackAudioError: If FFmpeg fails for any reason other than an
            absent audio stream, or cannot be started.
    """
    runner = runner or SubprocessRunner()
    sounds_dir = output_dir / SOUNDS_DIRNAME
    sounds_dir.mkdir(parents=True, exist_ok=True)
    audio_path = sounds_dir / FALLBACK_AUDIO_NAME

    cmd = [
        str(ffmpeg), "-y",
        "-i", str(source),
        "-vn",
        "-acodec", "copy",
        str(audio_path),
    ]

    try:
        result = runner.run(cmd)
    except OSError as exc:
        raise FallbackAudioError(source, f"could not start FFmpeg: {exc}") from exc

    if result.returncode != 0:
        stderr = result.stderr_text
        if _is_no_audio_error(stderr):
            logger.info("no audio stream in %s", source.name)
            _discard_empty(audio_path)
            return None
        raise FallbackAudioError(source, stderr[-500:] or f"exit code {result.returncode}")

    if audio_path.exists() and audio_path.stat().st_size > 0:
        logger.info("fallback audio extracted to %s", audio_path)
        return audio_path

    logger.info("no audio stream in %s (empty output)", source.name)
    _discard_empty(audio_path)
    return None
