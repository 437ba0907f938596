"""Canonical content manifest and its atomic on-disk form."""
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, computed_field

from swfreel.errors import ManifestError

MANIFEST_FILENAME = "content_manifest.json"


class ContentManifest(BaseModel):
    """Reconciled view of one extraction's frames and audio.

    ``frames_dir`` is whichever candidate layout was chosen (``R/frames`` or
    ``R`` itself); ``frame_files`` are in playback order.
    """
    model_config = ConfigDict(frozen=True)

    frames_dir: Path
    frame_files: tuple[Path, ...] = ()
    audio_files: tuple[Path, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def frame_count(self) -> int:
        return len(self.frame_files)


def save_manifest(manifest: ContentManifest, output_dir: Path) -> Path:
    """Atomically write *manifest* to output_dir/content_manifest.json.

    Same-directory tempfile + os.replace(), so readers see either the old
    file or the complete new one.
    """
    manifest_path = output_dir / MANIFEST_FILENAME
    data = manifest.model_dump_json(indent=2).encode("utf-8")
    try:
        fd, tmp_path = tempfile.mkstemp(dir=output_dir, suffix=".manifest.tmp")
    except OSError as exc:
        raise ManifestError(manifest_path, str(exc)) from exc
    try:
        os.write(fd, data)
        os.fsync(fd)
        os.close(fd)
        os.replace(tmp_path, manifest_path)
    except OSError as exc:
        try:
            os.close(fd)
        except OSError:
            pass
        Path(tmp_path).unlink(missing_ok=True)
        raise ManifestError(manifest_path, str(exc)) from exc
    return manifest_path
