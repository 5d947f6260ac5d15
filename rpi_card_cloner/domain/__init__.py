"""Domain models for card cloning operations."""

from __future__ import annotations

from .models import (
    LBA_FLAG,
    MAX_PARTITIONS,
    FilesystemFamily,
    JobState,
    Partition,
    PartitionType,
)


__all__ = [
    "LBA_FLAG",
    "MAX_PARTITIONS",
    "FilesystemFamily",
    "JobState",
    "Partition",
    "PartitionType",
]
