"""swfreel CLI entry point.

Two batch commands over single SWF files or directories of them:

- ``extract``: JPEXS frame/sound export plus FFmpeg fallback audio.
- ``convert``: frame-rate detection, extraction and MP4 assembly.

``doctor`` reports which external tools were found.  Pipeline errors are
rendered as Rich panels; one failed file never stops the batch.
"""

import logging
from pathlib import Path
from typing import Annotated, Callable, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from swfreel.conversion.pipeline import convert_swf
from swfreel.errors import SwfReelError
from swfreel.extraction.extractor import extract_swf
from swfreel.manifest import save_manifest
from swfreel.models import DEFAULT_FRAMERATE, ConversionRequest, ExtractionRequest, PipelineStage
from swfreel.tools.platform import Toolchain, detect_toolchain

app = typer.Typer(
    name="swfreel",
    help="swfreel — extract and convert legacy Flash (SWF) animations to MP4.",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

_SWF_EXT = ".swf"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def find_swf_files(input_path: Path, recursive: bool = False) -> list[Path]:
    """Return the SWF files named by *input_path* (a file or a directory).

    Directory scans match ``*.swf`` case-insensitively, descending into
    subdirectories when *recursive* is set.

    Raises:
        typer.BadParameter: If *input_path* is a file without a .swf extension.
    """
    input_path = input_path.resolve()
    if input_path.is_file():
        if input_path.suffix.lower() != _SWF_EXT:
            raise typer.BadParameter("Input file must be a .swf file")
        return [input_path]

    candidates = input_path.rglob("*") if recursive else input_path.glob("*")
    return sorted(p for p in candidates if p.is_file() and p.suffix.lower() == _SWF_EXT)


def _error_panel(message: str, title: str = "Error") -> None:
    err_console.print(Panel(message, title=f"[red]{title}[/red]", border_style="red"))


def _tool_table(toolchain: Toolchain) -> Table:
    table = Table(title=f"Toolchain ({toolchain.platform})")
    table.add_column("Tool", style="cyan")
    table.add_column("Status")
    table.add_column("Path / reason", style="dim")
    for cap in (toolchain.java, toolchain.ffdec, toolchain.ffmpeg, toolchain.ffprobe):
        if cap.available:
            table.add_row(cap.name, "[green]✓ available[/green]", str(cap.path))
        else:
            table.add_row(cap.name, "[red]✗ missing[/red]", cap.reason)
    return table


def _detect_toolchain_or_exit() -> Toolchain:
    try:
        return detect_toolchain()
    except SwfReelError as e:
        _error_panel(str(e), title="Unsupported Platform")
        raise typer.Exit(1)


def _discover_or_exit(input_path: Path, recursive: bool) -> list[Path]:
    if not input_path.exists():
        _error_panel(
            f"Path not found: [bold]{input_path}[/bold]\n"
            f"Check that the path is correct and the file is accessible.",
            title="Input Error",
        )
        raise typer.Exit(1)
    try:
        swf_files = find_swf_files(input_path, recursive)
    except typer.BadParameter as e:
        _error_panel(str(e), title="Input Error")
        raise typer.Exit(1)
    if not swf_files:
        _error_panel("No SWF files found in the specified input", title="Input Error")
        raise typer.Exit(1)
    return swf_files


class _StageProgress:
    """Rich bar for the long-running stages: frame export, then the encode.

    Each bar starts on its first progress report and stops as soon as the
    pipeline changes stage, so only one live display exists at a time.
    """

    def __init__(self) -> None:
        self._progress: Progress | None = None
        self._task = None

    def _ensure(self, description: str, total: float) -> Progress:
        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                console=console,
                transient=True,
            )
            self._progress.start()
            self._task = self._progress.add_task(description, total=total)
        return self._progress

    def on_frame(self, done: int, total: int) -> None:
        self._ensure("Exporting frames...", total).update(self._task, completed=done, total=total)

    def on_encode(self, percent: float) -> None:
        self._ensure("Encoding MP4...", 100).update(self._task, completed=percent)

    def on_stage(self, stage: PipelineStage) -> None:
        self.stop()

    def stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None


def _run_batch(
    swf_files: list[Path],
    verb: str,
    process_one: Callable[[Path, _StageProgress], Path],
) -> None:
    """Run *process_one* over every file, tallying results; exit 1 if all failed."""
    successful = 0
    errors: list[tuple[str, str]] = []

    for i, swf in enumerate(swf_files, start=1):
        console.print(f"[bold]{i}/{len(swf_files)}[/bold] [cyan]{swf.name}[/cyan]")
        tracker = _StageProgress()
        try:
            destination = process_one(swf, tracker)
        except SwfReelError as e:
            err_console.print(Panel(str(e), title=f"[red]{swf.name}[/red]", border_style="red"))
            errors.append((swf.name, str(e).splitlines()[0]))
        else:
            console.print(f"  [green]✓[/green] {swf.name} → [dim]{destination}[/dim]")
            successful += 1
        finally:
            tracker.stop()
        console.print()

    if successful:
        console.print(Panel(
            f"[bold green]Successfully {verb} {successful} SWF file(s)[/bold green]",
            border_style="green",
        ))
    if errors:
        _error_panel(
            "\n".join(f"• {name}: {message}" for name, message in errors),
            title=f"Failed: {len(errors)} file(s)",
        )
        if successful == 0:
            raise typer.Exit(1)


@app.command()
def extract(
    input_path: Annotated[
        Path,
        typer.Argument(metavar="INPUT", help="SWF file or directory containing SWF files."),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output directory (default: <name>-output next to each SWF)."),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Scan directories recursively."),
    ] = False,
    test_frames: Annotated[
        Optional[int],
        typer.Option("--test-frames", min=1, help="Export only the first N frames."),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", min=0.1, help="Decompiler timeout in minutes (default: based on file size)."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging, including decompiler output."),
    ] = False,
) -> None:
    """Extract frame images and audio from SWF files."""
    _configure_logging(verbose)
    console.print("\n[bold cyan]swfreel[/bold cyan] — [dim]extract[/dim]\n")

    toolchain = _detect_toolchain_or_exit()
    if not toolchain.can_extract:
        _error_panel(
            "Java and the JPEXS decompiler (ffdec.jar) are required for SWF extraction.",
            title="Missing Tools",
        )
        err_console.print(_tool_table(toolchain))
        raise typer.Exit(1)
    if not toolchain.ffmpeg.available:
        console.print("[yellow]Warning:[/] FFmpeg not found — fallback audio extraction disabled\n")

    swf_files = _discover_or_exit(input_path, recursive)
    console.print(f"Found [bold]{len(swf_files)}[/bold] SWF file(s) to process\n")

    def _extract_one(swf: Path, tracker: _StageProgress) -> Path:
        output_dir = output / swf.stem if output else swf.parent / f"{swf.stem}-output"
        outcome = extract_swf(
            ExtractionRequest(
                source=swf,
                output_dir=output_dir,
                test_frames=test_frames,
                timeout_minutes=timeout,
            ),
            toolchain,
            progress_callback=tracker.on_frame,
            stage_callback=tracker.on_stage,
        )
        save_manifest(outcome.manifest, output_dir)
        if outcome.partial:
            console.print(f"  [yellow]Partial:[/] decompiler reported '{outcome.decompiler.detail}'")
        console.print(
            f"  {outcome.manifest.frame_count} frame(s), {len(outcome.audio_files)} audio file(s)"
        )
        return output_dir

    _run_batch(swf_files, "extracted", _extract_one)


@app.command()
def convert(
    input_path: Annotated[
        Path,
        typer.Argument(metavar="INPUT", help="SWF file or directory containing SWF files."),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output directory (default: next to each SWF)."),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Scan directories recursively."),
    ] = False,
    framerate: Annotated[
        int,
        typer.Option(
            "--framerate", "-f", min=1, max=120,
            help=f"Output frame rate; {DEFAULT_FRAMERATE} (the default) uses the rate detected from the SWF.",
        ),
    ] = DEFAULT_FRAMERATE,
    keep_extracted: Annotated[
        bool,
        typer.Option("--keep-extracted", help="Keep extracted frames and audio after conversion."),
    ] = False,
    test_frames: Annotated[
        Optional[int],
        typer.Option("--test-frames", min=1, help="Convert only the first N frames."),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", min=0.1, help="Decompiler timeout in minutes (default: based on file size)."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging, including FFmpeg commands."),
    ] = False,
) -> None:
    """Extract and convert SWF files to MP4."""
    _configure_logging(verbose)
    console.print("\n[bold cyan]swfreel[/bold cyan] — [dim]convert[/dim]\n")

    toolchain = _detect_toolchain_or_exit()
    if not toolchain.can_convert:
        missing = [
            label
            for cap, label in (
                (toolchain.java, "Java (for SWF extraction)"),
                (toolchain.ffdec, "ffdec.jar (JPEXS decompiler)"),
                (toolchain.ffmpeg, "FFmpeg (for video conversion)"),
            )
            if not cap.available
        ]
        _error_panel(f"Missing required tools: {', '.join(missing)}", title="Missing Tools")
        err_console.print(_tool_table(toolchain))
        raise typer.Exit(1)

    swf_files = _discover_or_exit(input_path, recursive)
    console.print(f"Found [bold]{len(swf_files)}[/bold] SWF file(s) to convert")
    console.print(f"Frame rate: [bold]{framerate}[/bold] FPS")
    if keep_extracted:
        console.print("Extracted files will be kept after conversion")
    console.print()

    def _convert_one(swf: Path, tracker: _StageProgress) -> Path:
        mp4_path = (output or swf.parent) / f"{swf.stem}.mp4"
        result = convert_swf(
            ConversionRequest(
                source=swf,
                output=mp4_path,
                framerate=framerate,
                keep_extracted=keep_extracted,
                test_frames=test_frames,
                timeout_minutes=timeout,
            ),
            toolchain,
            progress_callback=tracker.on_frame,
            encode_callback=tracker.on_encode,
            stage_callback=tracker.on_stage,
        )
        detected = f" (detected {result.detected_framerate})" if result.detected_framerate is not None else ""
        console.print(
            f"  {result.frame_count} frame(s), {result.audio_count} audio file(s) "
            f"at {result.framerate} fps{detected}"
        )
        if result.partial:
            console.print("  [yellow]Partial:[/] decompiler reported an error; converted the recovered frames")
        if result.work_dir is not None:
            console.print(f"  Extracted files kept in: [dim]{result.work_dir}[/dim]")
        return result.output

    _run_batch(swf_files, "converted", _convert_one)


@app.command()
def doctor() -> None:
    """Show which external tools swfreel can use."""
    toolchain = _detect_toolchain_or_exit()
    console.print(_tool_table(toolchain))
    if toolchain.can_convert:
        console.print("\n[green]All required tools are available[/green]")
    else:
        if not toolchain.can_extract:
            console.print("\n[yellow]•[/] SWF extraction requires Java and ffdec.jar")
        if not toolchain.ffmpeg.available:
            console.print("[yellow]•[/] Video conversion requires FFmpeg")
        raise typer.Exit(1)
