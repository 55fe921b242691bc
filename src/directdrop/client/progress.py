"""Transfer progress, speed and ETA estimation.

Progress is driven by explicit ``ProgressEvent`` values folded through the
pure reducer ``apply_progress``; no clock is read here, so timing behaviour
can be tested with synthetic timestamps.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_WARMUP_SECONDS = 0.5


@dataclass(frozen=True)
class ProgressEvent:
    """Bytes sent so far for one file at a point in time (seconds)."""

    file_id: str
    loaded: int
    total: int
    timestamp: float


@dataclass(frozen=True)
class TransferSample:
    """Per-file progress state derived from the last two samples."""

    started_at: Optional[float] = None
    last_loaded: int = 0
    last_timestamp: Optional[float] = None
    progress: int = 0
    speed: Optional[float] = None
    eta: Optional[float] = None


def percent(loaded: int, total: int) -> int:
    """Round half up to a whole percentage, clamped to 0..100."""
    if total <= 0:
        return 0
    return max(0, min(100, math.floor(loaded / total * 100 + 0.5)))


def apply_progress(
    sample: TransferSample,
    event: ProgressEvent,
    warmup_seconds: float = DEFAULT_WARMUP_SECONDS,
) -> TransferSample:
    """Fold one progress event into a file's sample state.

    Speed is the instantaneous rate between the previous sample and this one,
    not an average since the start. Samples inside the warm-up window after
    the transfer started update the baseline but never produce a speed.

    Args:
        sample: Current state for the file
        event: New progress observation
        warmup_seconds: Window after start whose samples are ignored for speed

    Returns:
        New sample state
    """
    started_at = sample.started_at if sample.started_at is not None else event.timestamp
    progress = percent(event.loaded, event.total)

    baseline = replace(
        sample,
        started_at=started_at,
        last_loaded=event.loaded,
        last_timestamp=event.timestamp,
        progress=progress,
    )

    if event.timestamp - started_at < warmup_seconds or sample.last_timestamp is None:
        return baseline

    elapsed = event.timestamp - sample.last_timestamp
    if elapsed <= 0:
        return replace(sample, started_at=started_at, progress=progress)

    speed = max(0.0, (event.loaded - sample.last_loaded) / elapsed)
    remaining = max(0, event.total - event.loaded)
    eta = remaining / speed if speed > 0 else None
    return replace(baseline, speed=speed, eta=eta)


def format_eta(seconds: float) -> str:
    if seconds < 60:
        return f"{round(seconds)}s"
    if seconds < 3600:
        return f"{round(seconds / 60)}m"
    return f"{round(seconds / 3600)}h"


def format_speed(bytes_per_second: float) -> str:
    units = ["B/s", "KB/s", "MB/s", "GB/s"]
    size = float(bytes_per_second)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {units[unit_index]}"
