"""JPEXS decompiler supervision.

Launches ``java -jar ffdec.jar`` with export parameters, classifies its
output line by line, and bounds the run with a size-adaptive timeout.
Outcomes are returned as a :class:`DecompilerResult` rather than raised:
whatever the decompiler did, the caller still runs the fallback audio
extraction and inspects the output directory before deciding whether the
request failed.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable

from swfreel.extraction.timeout import resolve_timeout_minutes
from swfreel.models import DecompilerResult, DecompilerStatus, ExtractionRequest
from swfreel.tools.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

FRAMES_DIRNAME = "frames"
SOUNDS_DIRNAME = "sounds"

# JPEXS writes into frames/<n>/ without creating it first; a missing
# directory fails that frame outright.
PRECREATED_FRAME_SUBDIRS = 10

# Only these stderr messages mean the decompiler rejected the run.
FATAL_STDERR_MARKERS: tuple[str, ...] = (
    "input swf file does not exist",
    "bad commandline arguments",
)

# Routine JPEXS chatter on truncated sound streams; handled internally.
_NOISE_MARKERS: tuple[str, ...] = (
    "EndOfStreamException: Premature end of the stream reached",
    "SEVERE: Error during tag reading",
    "com.jpexs.decompiler.flash.EndOfStreamException",
    "at com.jpexs.decompiler.flash.SWFInputStream",
    "at com.jpexs.decompiler.flash.tags.SoundStreamHead",
)

_FRAME_PROGRESS_RE = re.compile(r"^Exported frame (\d+)/(\d+)$")

FrameProgressCallback = Callable[[int, int], None]


def prepare_output_dirs(output_dir: Path) -> tuple[Path, Path]:
    """Create R, R/frames (with numbered subdirs) and R/sounds. Idempotent."""
    frames_dir = output_dir / FRAMES_DIRNAME
    sounds_dir = output_dir / SOUNDS_DIRNAME
    for directory in (output_dir, frames_dir, sounds_dir):
        directory.mkdir(parents=True, exist_ok=True, mode=0o755)
    for i in range(PRECREATED_FRAME_SUBDIRS):
        (frames_dir / str(i)).mkdir(exist_ok=True, mode=0o755)
    return frames_dir, sounds_dir


def build_decompiler_args(java: Path, jar: Path, request: ExtractionRequest) -> list[str]:
    """Build the positional-order-sensitive JPEXS command line.

    ``-select`` must precede ``-export``; output directory precedes the source.
    """
    args = [str(java), "-jar", str(jar)]
    if request.test_frames:
        args += ["-select", f"1-{request.test_frames}"]
    args += ["-export", "frame,sound"]
    args += [str(request.output_dir), str(request.source)]
    return args


def is_fatal_stderr(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in FATAL_STDERR_MARKERS)


def is_noise(line: str) -> bool:
    return any(marker in line for marker in _NOISE_MARKERS)


def parse_frame_progress(line: str) -> tuple[int, int] | None:
    """Return ``(done, total)`` for an ``Exported frame N/M`` line."""
    match = _FRAME_PROGRESS_RE.match(line.strip())
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


class _OutputClassifier:
    """Routes decompiler lines to progress, log output or the fatal list."""

    def __init__(self, progress_callback: FrameProgressCallback | None) -> None:
        self.progress_callback = progress_callback
        self.fatal: list[str] = []

    def on_stdout(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        progress = parse_frame_progress(text)
        if progress is not None:
            if self.progress_callback is not None:
                self.progress_callback(*progress)
            return
        if is_noise(text):
            return
        logger.debug("ffdec: %s", text)

    def on_stderr(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if is_fatal_stderr(text):
            logger.error("ffdec: %s", text)
            self.fatal.append(text)
            return
        # Everything else on stderr is warnings or progress.
        self.on_stdout(text)


def run_decompiler(
    request: ExtractionRequest,
    java: Path,
    jar: Path,
    runner: ProcessRunner | None = None,
    progress_callback: FrameProgressCallback | None = None,
) -> DecompilerResult:
    """Run JPEXS for *request* and report how it ended.

    Creates the output layout first, then runs the decompiler under the
    computed (or overridden) timeout.  Never raises for decompiler failures;
    see :class:`DecompilerStatus` for the possible outcomes.
    """
    runner = runner or SubprocessRunner()
    timeout_minutes = resolve_timeout_minutes(request.source, request.timeout_minutes)
    if timeout_minutes == request.timeout_minutes:
        logger.info("decompiler timeout: %g minutes (manual)", timeout_minutes)
    else:
        logger.info(
            "decompiler timeout: %g minutes (%.1f MB source)",
            timeout_minutes,
            request.source.stat().st_size / (1024 * 1024),
        )

    prepare_output_dirs(request.output_dir)
    args = build_decompiler_args(java, jar, request)
    classifier = _OutputClassifier(progress_callback)

    try:
        result = runner.run(
            args,
            timeout_s=timeout_minutes * 60,
            on_stdout=classifier.on_stdout,
            on_stderr=classifier.on_stderr,
        )
    except FileNotFoundError as exc:
        logger.error("could not start Java runtime '%s': %s", java, exc)
        return DecompilerResult(
            status=DecompilerStatus.SPAWN_FAILED,
            timeout_minutes=timeout_minutes,
            detail=f"Java runtime not found at '{java}'; install a JDK or JRE 8+",
        )
    except OSError as exc:
        logger.error("could not start decompiler: %s", exc)
        return DecompilerResult(
            status=DecompilerStatus.SPAWN_FAILED,
            timeout_minutes=timeout_minutes,
            detail=f"Java process error: {exc}",
        )

    fatal = tuple(classifier.fatal)
    if result.timed_out:
        logger.error(
            "decompiler timed out after %g minutes (%s)", timeout_minutes, result.state.value
        )
        return DecompilerResult(
            status=DecompilerStatus.TIMED_OUT,
            timeout_minutes=timeout_minutes,
            returncode=result.returncode,
            fatal_messages=fatal,
            detail=f"timed out after {timeout_minutes:g} minutes",
        )

    if fatal:
        return DecompilerResult(
            status=DecompilerStatus.FATAL,
            timeout_minutes=timeout_minutes,
            returncode=result.returncode,
            fatal_messages=fatal,
            detail=fatal[0],
        )

    if result.returncode:
        logger.debug("decompiler exited with code %s and no fatal marker", result.returncode)
    return DecompilerResult(
        status=DecompilerStatus.CLEAN,
        timeout_minutes=timeout_minutes,
        returncode=result.returncode,
    )
