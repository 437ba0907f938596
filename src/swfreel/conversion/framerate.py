"""Best-effort SWF frame-rate detection from FFmpeg's input diagnostics.

``ffmpeg -i file.swf`` with no output prints the stream summary (``... 15
fps, 15 tbr ...``) to stderr and exits non-zero; the exit code is ignored.
This reads FFmpeg's SWF demuxer directly, which is more dependable for SWF
than ffprobe.
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path

from swfreel.models import DEFAULT_FRAMERATE
from swfreel.tools.platform import Capability
from swfreel.tools.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

DETECTION_TIMEOUT_S: float = 30.0
MAX_FRAMERATE: float = 120.0

_FPS_RE = re.compile(r"(\d+(?:\.\d+)?)\s+fps")
_TBR_RE = re.compile(r"(\d+(?:\.\d+)?)\s+tbr")


def parse_frame_rate(diagnostics: str) -> int | None:
    """Return the rate from the first ``fps`` (else ``tbr``) marker in (0, 120]."""
    for pattern in (_FPS_RE, _TBR_RE):
        match = pattern.search(diagnostics)
        if match is None:
            continue
        value = float(match.group(1))
        if 0 < value <= MAX_FRAMERATE:
            return math.floor(value + 0.5)
    return None


def detect_frame_rate(
    source: Path,
    ffmpeg: Capability,
    runner: ProcessRunner | None = None,
    timeout_s: float = DETECTION_TIMEOUT_S,
) -> int:
    """Detect the frame rate of *source*, falling back to 30 fps on any failure."""
    if not ffmpeg.available:
        logger.warning("FFmpeg unavailable; assuming %d fps", DEFAULT_FRAMERATE)
        return DEFAULT_FRAMERATE

    runner = runner or SubprocessRunner(grace_s=1.0)
    try:
        result = runner.run([str(ffmpeg.require()), "-i", str(source)], timeout_s=timeout_s)
    except OSError as exc:
        logger.warning("FFmpeg process error, using default %d fps: %s", DEFAULT_FRAMERATE, exc)
        return DEFAULT_FRAMERATE

    if result.timed_out:
        logger.warning("frame rate detection timed out, using default %d fps", DEFAULT_FRAMERATE)
        return DEFAULT_FRAMERATE

    fps = parse_frame_rate(result.stderr_text)
    if fps is None:
        logger.warning("could not detect frame rate of %s, using default %d fps", source.name, DEFAULT_FRAMERATE)
        return DEFAULT_FRAMERATE

    logger.debug("detected %d fps for %s", fps, source.name)
    return fps
