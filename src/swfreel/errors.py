from pathlib import Path


class SwfReelError(Exception):
    """Base class for all swfreel errors."""


class ToolUnavailableError(SwfReelError):
    def __init__(self, tool: str, detail: str) -> None:
        super().__init__(
            f"Required tool '{tool}' is not available.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is '{tool}' installed and on PATH (or configured via its SWFREEL_* variable)?\n"
            f"  Tip: Run `swfreel doctor` to see which tools were found."
        )
        self.tool = tool
        self.detail = detail


class ExtractionError(SwfReelError):
    def __init__(self, source: Path, detail: str) -> None:
        super().__init__(
            f"Failed to extract frames from '{source.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is '{source.name}' a complete, readable SWF file?\n"
            f"  Tip: Re-run with --verbose to see the decompiler output."
        )
        self.source = source
        self.detail = detail


class ExtractionTimeoutError(ExtractionError):
    def __init__(self, source: Path, minutes: float) -> None:
        super().__init__(
            source,
            f"decompiler did not finish within {minutes:g} minutes and was terminated",
        )
        self.minutes = minutes


class FallbackAudioError(SwfReelError):
    def __init__(self, source: Path, detail: str) -> None:
        super().__init__(
            f"FFmpeg fallback audio extraction failed for '{source.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Does FFmpeg support the audio codec embedded in this SWF?"
        )
        self.source = source
        self.detail = detail


class AssemblyError(SwfReelError):
    def __init__(self, output_path: Path, detail: str) -> None:
        super().__init__(
            f"FFmpeg assembly failed for '{output_path.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is FFmpeg installed with libx264 support? Is the output directory writable?\n"
            f"  Tip: Re-run with --keep-extracted to inspect the extracted frames."
        )
        self.output_path = output_path
        self.detail = detail


class ManifestError(SwfReelError):
    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(
            f"Cannot write content manifest '{path.name}'.\n"
            f"  Cause: {detail}\n"
            f"  Check: Is there free disk space in the output directory?"
        )
        self.path = path
        self.detail = detail
