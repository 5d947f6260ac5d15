"""Progress estimation and terminal rendering for partition copies."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from rpi_card_cloner.config.settings import DEFAULT_PROGRESS_BAR_WIDTH, get_int
from rpi_card_cloner.storage.devices import human_size

# Highest fraction reported while the copy is still running
RUNNING_FRACTION_CAP = 0.99


def poll_interval_for(total_bytes: int) -> int:
    """Seconds between progress polls for a copy of ``total_bytes``.

    Small copies poll often, large copies poll rarely (each poll walks the
    whole destination tree).
    """
    if total_bytes < get_int("poll_small_threshold_bytes", 50_000 * 1024):
        return get_int("poll_small_interval_seconds", 1)
    if total_bytes < get_int("poll_medium_threshold_bytes", 500_000 * 1024):
        return get_int("poll_medium_interval_seconds", 5)
    return get_int("poll_large_interval_seconds", 10)


def estimate_fraction(copied_bytes: int, total_bytes: int, previous: float = 0.0) -> float:
    """Fraction of a running copy that is done.

    Never goes backwards and never reaches 1.0; only the completed copy
    reports 1.0.
    """
    if total_bytes <= 0:
        return previous
    fraction = min(copied_bytes / total_bytes, RUNNING_FRACTION_CAP)
    return max(previous, fraction)


def format_progress_bar(fraction: float, width: int = DEFAULT_PROGRESS_BAR_WIDTH) -> str:
    """Render ``[#####     ] (50%)`` for a fraction in [0, 1]."""
    fraction = max(0.0, min(1.0, float(fraction)))
    filled = int(fraction * width)
    percent = int(fraction * 100.0)
    return f"[{'#' * filled}{' ' * (width - filled)}] ({percent}%)"


def format_copy_title(position: int, count: int, total_bytes: Optional[int] = None) -> str:
    title = f"Copying partition {position} of {count}..."
    if total_bytes:
        title = f"{title} ({human_size(total_bytes)})"
    return title


class ProgressBar:
    """In-place terminal progress bar.

    Each :meth:`update` rewrites the current line; :meth:`finish` ends the
    line so the next message starts below the bar.
    """

    def __init__(self, stream: Optional[TextIO] = None, width: Optional[int] = None):
        self.stream = stream or sys.stdout
        self.width = width or get_int("progress_bar_width", DEFAULT_PROGRESS_BAR_WIDTH)
        self.last_fraction: Optional[float] = None

    def message(self, text: str) -> None:
        if self.last_fraction is not None:
            self.stream.write("\n")
            self.last_fraction = None
        self.stream.write(f"{text}\n")
        self.stream.flush()

    def update(self, fraction: float) -> None:
        self.last_fraction = fraction
        self.stream.write(f"\r{format_progress_bar(fraction, self.width)}")
        self.stream.flush()

    def finish(self) -> None:
        if self.last_fraction is None:
            return
        self.stream.write("\n")
        self.stream.flush()
        self.last_fraction = None

    def __call__(self, fraction: float) -> None:
        self.update(fraction)
