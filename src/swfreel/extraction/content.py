"""Reconcile the decompiler's two possible output layouts into one manifest.

Depending on version and input, JPEXS writes frames either to ``R/frames``
or straight into ``R``.  Reading is side-effect free, so the reconciler can
run any number of times against the same directory.
"""

from __future__ import annotations

import re
from pathlib import Path

from swfreel.extraction.decompiler import FRAMES_DIRNAME, SOUNDS_DIRNAME
from swfreel.manifest import ContentManifest

FRAME_EXTENSIONS: frozenset[str] = frozenset({".png"})
AUDIO_EXTENSIONS: frozenset[str] = frozenset({".mp3", ".wav", ".flv"})

_DIGITS_RE = re.compile(r"(\d+)")


def frame_sort_key(path: Path) -> tuple:
    """Order by the first run of digits in the file name.

    Names without digits go after numbered ones, lexicographically.
    """
    match = _DIGITS_RE.search(path.name)
    if match is None:
        return (1, 0, path.name)
    return (0, int(match.group(1)), path.name)


def _list_files(directory: Path, extensions: frozenset[str]) -> list[Path]:
    if not directory.is_dir():
        return []
    return [
        entry
        for entry in directory.iterdir()
        if entry.is_file() and entry.suffix.lower() in extensions
    ]


def analyze_extracted_content(output_dir: Path) -> ContentManifest:
    """Build the canonical :class:`ContentManifest` for *output_dir*.

    Picks whichever of ``R/frames`` and ``R`` holds strictly more frame
    files; a tie (including both empty) resolves to ``R``.
    """
    frames_subdir = output_dir / FRAMES_DIRNAME
    in_subdir = _list_files(frames_subdir, FRAME_EXTENSIONS)
    in_root = _list_files(output_dir, FRAME_EXTENSIONS)

    if len(in_subdir) > len(in_root):
        frames_dir, frame_files = frames_subdir, in_subdir
    else:
        frames_dir, frame_files = output_dir, in_root

    audio_files = sorted(_list_files(output_dir / SOUNDS_DIRNAME, AUDIO_EXTENSIONS), key=lambda p: p.name)

    return ContentManifest(
        frames_dir=frames_dir,
        frame_files=tuple(sorted(frame_files, key=frame_sort_key)),
        audio_files=tuple(audio_files),
    )
