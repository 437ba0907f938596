import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from swfreel.errors import ManifestError
from swfreel.manifest import MANIFEST_FILENAME, ContentManifest, save_manifest


def _manifest(root: Path) -> ContentManifest:
    return ContentManifest(
        frames_dir=root / "frames",
        frame_files=(root / "frames" / "1.png", root / "frames" / "2.png"),
        audio_files=(root / "sounds" / "0.mp3",),
    )


class TestContentManifest:
    def test_frame_count(self, tmp_path):
        assert _manifest(tmp_path).frame_count == 2

    def test_defaults_empty(self, tmp_path):
        m = ContentManifest(frames_dir=tmp_path)
        assert m.frame_files == ()
        assert m.audio_files == ()
        assert m.frame_count == 0

    def test_frozen(self, tmp_path):
        m = _manifest(tmp_path)
        with pytest.raises(Exception):  # pydantic ValidationError
            m.frames_dir = tmp_path


class TestSaveManifest:
    def test_writes_json(self, tmp_path):
        path = save_manifest(_manifest(tmp_path), tmp_path)
        assert path == tmp_path / MANIFEST_FILENAME
        data = json.loads(path.read_text())
        assert data["frame_count"] == 2
        assert data["frames_dir"] == str(tmp_path / "frames")
        assert data["audio_files"] == [str(tmp_path / "sounds" / "0.mp3")]

    def test_round_trips_through_model(self, tmp_path):
        original = _manifest(tmp_path)
        data = json.loads(save_manifest(original, tmp_path).read_text())
        data.pop("frame_count")
        assert ContentManifest.model_validate(data) == original

    def test_no_temp_files_left(self, tmp_path):
        save_manifest(_manifest(tmp_path), tmp_path)
        assert [p.name for p in tmp_path.iterdir()] == [MANIFEST_FILENAME]

    def test_overwrites_existing(self, tmp_path):
        (tmp_path / MANIFEST_FILENAME).write_text("{}")
        save_manifest(_manifest(tmp_path), tmp_path)
        assert json.loads((tmp_path / MANIFEST_FILENAME).read_text())["frame_count"] == 2

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(ManifestError):
            save_manifest(_manifest(tmp_path), tmp_path / "absent")

    def test_failed_replace_cleans_temp(self, tmp_path):
        with patch("swfreel.manifest.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(ManifestError, match="disk full"):
                save_manifest(_manifest(tmp_path), tmp_path)
        assert os.listdir(tmp_path) == []
