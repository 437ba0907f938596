from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from swfreel.manifest import ContentManifest

# Frame rate that means "no explicit preference" on a ConversionRequest.
DEFAULT_FRAMERATE = 30


@dataclass(frozen=True)
class ExtractionRequest:
    """Input to one decompiler extraction run."""

    source: Path
    output_dir: Path
    test_frames: Optional[int] = None        # export only frames 1..N
    timeout_minutes: Optional[float] = None  # manual override of the size-based budget


class DecompilerStatus(str, Enum):
    CLEAN = "clean"                # process closed with no fatal stderr line
    FATAL = "fatal"                # a known fatal marker appeared on stderr
    TIMED_OUT = "timed_out"        # budget expired; process terminated/killed
    SPAWN_FAILED = "spawn_failed"  # runtime could not be started at all


@dataclass(frozen=True)
class DecompilerResult:
    status: DecompilerStatus
    timeout_minutes: float
    returncode: Optional[int] = None
    fatal_messages: tuple[str, ...] = ()
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is DecompilerStatus.CLEAN


@dataclass(frozen=True)
class ExtractionOutcome:
    decompiler: DecompilerResult
    manifest: ContentManifest
    fallback_audio: Optional[Path] = None  # sounds/0.mp3 when FFmpeg found a stream

    @property
    def decompiler_succeeded(self) -> bool:
        return self.decompiler.succeeded

    @property
    def frame_files(self) -> tuple[Path, ...]:
        return self.manifest.frame_files

    @property
    def audio_files(self) -> tuple[Path, ...]:
        return self.manifest.audio_files

    @property
    def partial(self) -> bool:
        """Decompiler reported a problem but frames were recovered anyway."""
        return not self.decompiler_succeeded and self.manifest.frame_count > 0


@dataclass(frozen=True)
class ConversionRequest:
    source: Path
    output: Path                              # destination .mp4
    framerate: int = DEFAULT_FRAMERATE
    keep_extracted: bool = False
    test_frames: Optional[int] = None
    timeout_minutes: Optional[float] = None


class PipelineStage(str, Enum):
    RATE_DETECTING = "rate_detecting"
    EXTRACTING = "extracting"
    AUDIO_FALLBACK = "audio_fallback"
    RECONCILING = "reconciling"
    ASSEMBLING = "assembling"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class ConversionResult:
    output: Path
    framerate: int
    detected_framerate: Optional[int]
    frame_count: int
    audio_count: int
    partial: bool
    work_dir: Optional[Path] = None           # set only when intermediates were kept
    stages: list[PipelineStage] = field(default_factory=list)
