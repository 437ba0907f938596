"""Extraction coordinator: decompiler → fallback audio → reconcile.

The decompiler result and the fallback audio are independent signals, so
both always run.  A request only fails when the decompiler did not close
cleanly *and* no frames made it to disk; anything else is a (possibly
partial) success.
"""

from __future__ import annotations

import logging
from typing import Callable

from swfreel.errors import (
    ExtractionError,
    ExtractionTimeoutError,
    FallbackAudioError,
    ToolUnavailableError,
)
from swfreel.extraction.audio import extract_audio_fallback
from swfreel.extraction.content import analyze_extracted_content
from swfreel.extraction.decompiler import FrameProgressCallback, run_decompiler
from swfreel.models import (
    DecompilerStatus,
    ExtractionOutcome,
    ExtractionRequest,
    PipelineStage,
)
from swfreel.tools.platform import Toolchain
from swfreel.tools.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

StageCallback = Callable[[PipelineStage], None]


def extract_swf(
    request: ExtractionRequest,
    toolchain: Toolchain,
    runner: ProcessRunner | None = None,
    progress_callback: FrameProgressCallback | None = None,
    stage_callback: StageCallback | None = None,
) -> ExtractionOutcome:
    """Extract frames and audio from ``request.source`` into ``request.output_dir``.

    Raises:
        ToolUnavailableError: Java or ffdec.jar is missing, or the Java
            runtime could not be started and no frames exist.
        ExtractionTimeoutError: The decompiler timed out and no frames exist.
        ExtractionError: The source is missing, or the decompiler reported a
            fatal error and no frames exist.
    """
    runner = runner or SubprocessRunner()

    def _enter(stage: PipelineStage) -> None:
        logger.debug("stage: %s", stage.value)
        if stage_callback is not None:
            stage_callback(stage)

    toolchain.require_extraction()
    if not request.source.is_file():
        raise ExtractionError(request.source, f"source file not found: {request.source}")

    _enter(PipelineStage.EXTRACTING)
    decompiler = run_decompiler(
        request,
        toolchain.java.require(),
        toolchain.ffdec.require(),
        runner=runner,
        progress_callback=progress_callback,
    )
    logger.info("decompiler finished: %s", decompiler.status.value)

    _enter(PipelineStage.AUDIO_FALLBACK)
    fallback_audio = None
    if toolchain.ffmpeg.available:
        try:
            fallback_audio = extract_audio_fallback(
                request.source, request.output_dir, toolchain.ffmpeg.require(), runner=runner
            )
        except FallbackAudioError as exc:
            logger.warning("fallback audio extraction failed; continuing: %s", exc.detail)
    else:
        logger.warning("FFmpeg unavailable; skipping fallback audio extraction (%s)", toolchain.ffmpeg.reason)

    _enter(PipelineStage.RECONCILING)
    manifest = analyze_extracted_content(request.output_dir)
    outcome = ExtractionOutcome(
        decompiler=decompiler,
        manifest=manifest,
        fallback_audio=fallback_audio,
    )

    if not decompiler.succeeded and manifest.frame_count == 0:
        if decompiler.status is DecompilerStatus.TIMED_OUT:
            raise ExtractionTimeoutError(request.source, decompiler.timeout_minutes)
        if decompiler.status is DecompilerStatus.SPAWN_FAILED:
            raise ToolUnavailableError("java", decompiler.detail)
        raise ExtractionError(
            request.source,
            f"decompiler failed and no frames were extracted: {decompiler.detail}",
        )

    if outcome.partial:
        logger.warning(
            "decompiler reported '%s' but %d frame(s) were recovered; continuing with partial output",
            decompiler.detail or decompiler.status.value,
            manifest.frame_count,
        )

    logger.info(
        "extracted %d frame(s) and %d audio file(s) from %s",
        manifest.frame_count,
        len(manifest.audio_files),
        request.source.name,
    )
    return outcome
