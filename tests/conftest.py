from __future__ import annotations

from pathlib import Path

import pytest

from swfreel.tools.platform import Capability, Toolchain


@pytest.fixture
def toolchain(tmp_path: Path) -> Toolchain:
    """A fully available toolchain; nothing is executed through it in tests."""
    bin_dir = tmp_path / "bin"
    return Toolchain(
        platform="linux",
        ffmpeg=Capability.available_at("ffmpeg", bin_dir / "ffmpeg"),
        ffprobe=Capability.available_at("ffprobe", bin_dir / "ffprobe"),
        java=Capability.available_at("java", bin_dir / "java"),
        ffdec=Capability.available_at("ffdec", bin_dir / "ffdec.jar"),
    )

