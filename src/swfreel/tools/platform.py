"""Locate the external engines and describe them as explicit capabilities.

Nothing here runs at import time: :func:`detect_toolchain` is called by
the CLI (or a test) and the resulting :class:`Toolchain` is handed to the
pipeline, so an "unavailable" engine is an ordinary value rather than a
cached module flag.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from swfreel.errors import ToolUnavailableError

logger = logging.getLogger(__name__)

FFDEC_JAR_NAME = "ffdec.jar"

SUPPORTED_PLATFORMS: frozenset[str] = frozenset({"win32", "linux", "darwin"})


@dataclass(frozen=True)
class Capability:
    """An external tool that is either available at ``path`` or unavailable."""

    name: str
    path: Path | None = None
    reason: str = ""

    @classmethod
    def available_at(cls, name: str, path: Path) -> "Capability":
        return cls(name=name, path=path)

    @classmethod
    def unavailable(cls, name: str, reason: str) -> "Capability":
        return cls(name=name, path=None, reason=reason)

    @property
    def available(self) -> bool:
        return self.path is not None

    def require(self) -> Path:
        """Return the tool path or raise :class:`ToolUnavailableError`."""
        if self.path is None:
            raise ToolUnavailableError(self.name, self.reason or "not found")
        return self.path


@dataclass(frozen=True)
class Toolchain:
    platform: str
    ffmpeg: Capability
    ffprobe: Capability
    java: Capability
    ffdec: Capability

    @property
    def can_extract(self) -> bool:
        return self.java.available and self.ffdec.available

    @property
    def can_convert(self) -> bool:
        return self.can_extract and self.ffmpeg.available

    def require_extraction(self) -> None:
        self.java.require()
        self.ffdec.require()

    def require_conversion(self) -> None:
        self.require_extraction()
        self.ffmpeg.require()


def current_platform() -> str:
    """Return ``sys.platform`` if supported, else raise ToolUnavailableError."""
    platform = sys.platform
    if platform not in SUPPORTED_PLATFORMS:
        raise ToolUnavailableError(
            "platform",
            f"unsupported platform '{platform}' (supported: {', '.join(sorted(SUPPORTED_PLATFORMS))})",
        )
    return platform


def get_tools_dir() -> Path:
    """Return the directory holding bundled tools such as ffdec.jar.

    Respects SWFREEL_TOOLS_DIR; falls back to ~/.swfreel.
    """
    env_val = os.environ.get("SWFREEL_TOOLS_DIR")
    if env_val is not None:
        return Path(env_val).expanduser().resolve()
    return Path.home() / ".swfreel"


def _platform_binary_name(path: Path, platform: str) -> Path:
    if platform == "win32":
        return path if path.suffix.lower() == ".exe" else path.with_name(path.name + ".exe")
    if path.suffix.lower() == ".exe":
        return path.with_suffix("")
    return path


def _alternative_paths(base_dir: Path, tool: str, platform: str) -> list[Path]:
    exe = f"{tool}.exe" if platform == "win32" else tool
    return [
        base_dir / exe,
        base_dir / "bin" / exe,
        base_dir.parent / f"{tool}-static" / exe,
    ]


def resolve_binary(tool: str, env_var: str, platform: str) -> Capability:
    """Find *tool*, honouring *env_var*, PATH, alternative layouts and WSL interop."""
    configured = os.environ.get(env_var)
    if configured:
        candidate = _platform_binary_name(Path(configured).expanduser(), platform)
    else:
        found = shutil.which(tool)
        if found is None:
            return Capability.unavailable(tool, f"'{tool}' not found on PATH and {env_var} is not set")
        candidate = _platform_binary_name(Path(found), platform)

    if candidate.is_file():
        return Capability.available_at(tool, candidate)

    logger.debug("%s not found at expected path %s; trying alternatives", tool, candidate)
    for alternative in _alternative_paths(candidate.parent, tool, platform):
        if alternative.is_file():
            logger.debug("found %s at alternative path %s", tool, alternative)
            return Capability.available_at(tool, alternative)

    # Windows binaries run under WSL via interop.
    if platform == "linux" and os.environ.get("WSL_DISTRO_NAME"):
        windows_binary = candidate.with_name(candidate.name + ".exe")
        if windows_binary.is_file():
            logger.debug("using Windows %s binary under WSL: %s", tool, windows_binary)
            return Capability.available_at(tool, windows_binary)

    return Capability.unavailable(tool, f"no {tool} binary at {candidate}")


def resolve_ffprobe(ffmpeg: Capability, platform: str) -> Capability:
    """Look for ffprobe next to the resolved ffmpeg binary."""
    if ffmpeg.path is None:
        return Capability.unavailable("ffprobe", "ffmpeg is unavailable")

    name = ffmpeg.path.name
    if name.lower().startswith("ffmpeg"):
        name = "ffprobe" + name[len("ffmpeg"):]
    candidate = _platform_binary_name(ffmpeg.path.with_name(name), platform)
    if candidate.is_file():
        return Capability.available_at("ffprobe", candidate)

    if platform == "linux" and os.environ.get("WSL_DISTRO_NAME"):
        windows_binary = candidate.with_name(candidate.name + ".exe")
        if windows_binary.is_file():
            return Capability.available_at("ffprobe", windows_binary)

    return Capability.unavailable("ffprobe", f"no ffprobe binary at {candidate}")


def resolve_java(platform: str) -> Capability:
    """Resolve the Java runtime and confirm it starts (``java -version``)."""
    java = resolve_binary("java", "SWFREEL_JAVA", platform)
    if java.path is None:
        return Capability.unavailable("java", "Java runtime not found — the decompiler needs Java 8+")
    try:
        subprocess.run(
            [str(java.path), "-version"],
            capture_output=True,
            check=True,
            timeout=30,
        )
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
        return Capability.unavailable("java", f"'{java.path} -version' failed: {exc}")
    return java


def resolve_decompiler_jar() -> Capability:
    """Resolve ffdec.jar from SWFREEL_FFDEC_JAR or the tools directory."""
    env_val = os.environ.get("SWFREEL_FFDEC_JAR")
    jar = Path(env_val).expanduser().resolve() if env_val else get_tools_dir() / FFDEC_JAR_NAME
    if jar.is_file():
        return Capability.available_at("ffdec", jar)
    return Capability.unavailable(
        "ffdec",
        f"decompiler archive not found at {jar} (set SWFREEL_FFDEC_JAR or SWFREEL_TOOLS_DIR)",
    )


def detect_toolchain() -> Toolchain:
    platform = current_platform()
    ffmpeg = resolve_binary("ffmpeg", "SWFREEL_FFMPEG", platform)
    return Toolchain(
        platform=platform,
        ffmpeg=ffmpeg,
        ffprobe=resolve_ffprobe(ffmpeg, platform),
        java=resolve_java(platform),
        ffdec=resolve_decompiler_jar(),
    )
