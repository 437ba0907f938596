"""Capability detection and process execution for the external engines."""
from swfreel.tools.platform import Capability, Toolchain, detect_toolchain
from swfreel.tools.runner import ProcessResult, ProcessRunner, ProcessState, SubprocessRunner

__all__ = [
    "Capability",
    "Toolchain",
    "detect_toolchain",
    "ProcessResult",
    "ProcessRunner",
    "ProcessState",
    "SubprocessRunner",
]
