"""End-to-end SWF → MP4 conversion.

Stages run strictly in order::

    RATE_DETECTING → EXTRACTING → AUDIO_FALLBACK → RECONCILING
        → ASSEMBLING → CLEANING_UP → DONE

Any raised error moves the run to ERRORED (fallback audio failures are
absorbed inside extraction and never get here).  The work directory is
``<output dir>/.temp-<source stem>``; it is removed afterwards, on success
or failure, unless the caller asked to keep it.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable

from swfreel.conversion.assembly import EncodeProgressCallback, assemble_video
from swfreel.conversion.framerate import detect_frame_rate
from swfreel.errors import ManifestError
from swfreel.extraction.decompiler import FrameProgressCallback
from swfreel.extraction.extractor import extract_swf
from swfreel.manifest import save_manifest
from swfreel.models import (
    DEFAULT_FRAMERATE,
    ConversionRequest,
    ConversionResult,
    ExtractionRequest,
    PipelineStage,
)
from swfreel.tools.platform import Toolchain
from swfreel.tools.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

StageCallback = Callable[[PipelineStage], None]


def make_work_dir(request: ConversionRequest) -> Path:
    """Return the per-source work directory (unique per source base name)."""
    return request.output.parent / f".temp-{request.source.stem}"


def resolve_framerate(requested: int, detected: int | None) -> int:
    """An explicit non-default rate wins; the default means "use detected"."""
    if requested != DEFAULT_FRAMERATE or detected is None:
        return requested
    return detected


def remove_work_dir(work_dir: Path) -> None:
    """Recursively delete *work_dir* (files before directories). Missing is fine."""
    if not work_dir.exists():
        return
    try:
        shutil.rmtree(work_dir)
    except OSError as exc:
        logger.warning("could not remove work directory %s: %s", work_dir, exc)


def convert_swf(
    request: ConversionRequest,
    toolchain: Toolchain,
    runner: ProcessRunner | None = None,
    progress_callback: FrameProgressCallback | None = None,
    encode_callback: EncodeProgressCallback | None = None,
    stage_callback: StageCallback | None = None,
) -> ConversionResult:
    """Convert ``request.source`` to an MP4 at ``request.output``.

    Args:
        request: What to convert and how.
        toolchain: Resolved engines; Java, ffdec.jar and FFmpeg are all
            required and checked before any work starts.
        runner: Process runner for the decompiler, FFmpeg probes and the encode.
        progress_callback: Receives ``(frame, total)`` while frames export.
        encode_callback: Receives the encode percentage while FFmpeg runs.
        stage_callback: Receives every :class:`PipelineStage` as it is entered.

    Returns:
        ConversionResult describing the output and the stages visited.

    Raises:
        ToolUnavailableError: A required engine is missing.
        ExtractionError: Extraction failed with no frames (incl. timeouts).
        AssemblyError: FFmpeg could not build the video.
    """
    toolchain.require_conversion()
    runner = runner or SubprocessRunner()
    stages: list[PipelineStage] = []

    def _enter(stage: PipelineStage) -> None:
        stages.append(stage)
        logger.debug("stage: %s", stage.value)
        if stage_callback is not None:
            stage_callback(stage)

    work_dir = make_work_dir(request)
    detected: int | None = None
    manifest = None

    try:
        _enter(PipelineStage.RATE_DETECTING)
        if request.framerate == DEFAULT_FRAMERATE:
            detected = detect_frame_rate(request.source, toolchain.ffmpeg, runner=runner)
        framerate = resolve_framerate(request.framerate, detected)
        logger.info(
            "frame rate: detected=%s, using=%d fps",
            detected if detected is not None else "skipped",
            framerate,
        )

        # A work dir kept by an earlier run would leak stale frames into this one.
        remove_work_dir(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        outcome = extract_swf(
            ExtractionRequest(
                source=request.source,
                output_dir=work_dir,
                test_frames=request.test_frames,
                timeout_minutes=request.timeout_minutes,
            ),
            toolchain,
            runner=runner,
            progress_callback=progress_callback,
            stage_callback=_enter,
        )
        manifest = outcome.manifest

        _enter(PipelineStage.ASSEMBLING)
        assemble_video(
            manifest,
            request.output,
            framerate,
            toolchain.ffmpeg.require(),
            runner=runner,
            progress_callback=encode_callback,
        )
    except Exception:
        _enter(PipelineStage.ERRORED)
        raise
    finally:
        if request.keep_extracted:
            if manifest is not None:
                try:
                    save_manifest(manifest, work_dir)
                except ManifestError as exc:
                    logger.warning("%s", exc)
            logger.info("extracted files kept in %s", work_dir)
        else:
            if PipelineStage.ERRORED not in stages:
                _enter(PipelineStage.CLEANING_UP)
            remove_work_dir(work_dir)

    _enter(PipelineStage.DONE)
    return ConversionResult(
        output=request.output,
        framerate=framerate,
        detected_framerate=detected,
        frame_count=manifest.frame_count,
        audio_count=len(manifest.audio_files),
        partial=outcome.partial,
        work_dir=work_dir if request.keep_extracted else None,
        stages=stages,
    )
