"""Size-adaptive decompiler timeout."""
import math
from pathlib import Path

BASE_TIMEOUT_MIN: float = 10.0
MINUTES_PER_MB: float = 1.0
LARGE_FILE_MB: float = 20.0
HUGE_FILE_MB: float = 50.0
EXTRA_MINUTES_PER_MB: float = 0.5

_BYTES_PER_MB = 1024 * 1024


def compute_timeout_minutes(size_bytes: int) -> int:
    """Return the decompiler budget in whole minutes for a source of *size_bytes*.

    10 min base + 1 min/MB, plus 0.5 min/MB above 20 MB and another
    0.5 min/MB above 50 MB.  Rounded half-up; never below 10, no ceiling.
    """
    size_mb = max(size_bytes, 0) / _BYTES_PER_MB
    minutes = BASE_TIMEOUT_MIN + size_mb * MINUTES_PER_MB
    if size_mb > LARGE_FILE_MB:
        minutes += (size_mb - LARGE_FILE_MB) * EXTRA_MINUTES_PER_MB
    if size_mb > HUGE_FILE_MB:
        minutes += (size_mb - HUGE_FILE_MB) * EXTRA_MINUTES_PER_MB
    return max(int(BASE_TIMEOUT_MIN), math.floor(minutes + 0.5))


def resolve_timeout_minutes(source: Path, override: float | None = None) -> float:
    """A positive manual *override* wins; otherwise derive the budget from the file size.

    Zero or negative overrides mean "no override".
    """
    if override is not None and override > 0:
        return override
    return compute_timeout_minutes(source.stat().st_size)
