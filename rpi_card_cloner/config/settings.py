"""Settings storage for clone configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "RPI_CARD_CLONER_SETTINGS_PATH",
        Path.home() / ".config" / "rpi-card-cloner" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_SOURCE_DEVICE = "/dev/mmcblk0"
DEFAULT_PROGRESS_BAR_WIDTH = 50

DEFAULT_SETTINGS: dict[str, Any] = {
    "default_source_device": DEFAULT_SOURCE_DEVICE,
    "poll_small_threshold_bytes": 50_000 * 1024,
    "poll_medium_threshold_bytes": 500_000 * 1024,
    "poll_small_interval_seconds": 1,
    "poll_medium_interval_seconds": 5,
    "poll_large_interval_seconds": 10,
    "progress_bar_width": DEFAULT_PROGRESS_BAR_WIDTH,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_int(key: str, default: int = 0) -> int:
    """Read an integer setting, falling back to the default on bad values."""
    value = get_setting(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


load_settings()
