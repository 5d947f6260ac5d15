"""Domain model for card cloning operations.

These objects replace the raw text rows scraped from parted and lsblk with
typed records that the clone pipeline reads and mutates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# Business rule carried over from the MBR layout: 4 primary slots plus
# logical partitions, capped at 9 entries.
MAX_PARTITIONS = 9

LBA_FLAG = "lba"


# ==============================================================================
# Partition Domain
# ==============================================================================


class PartitionType(Enum):
    """MSDOS partition entry type, as printed by parted."""

    PRIMARY = "primary"
    EXTENDED = "extended"
    LOGICAL = "logical"


class FilesystemFamily(Enum):
    """Filesystem families the cloner can rebuild on the destination."""

    FAT = "fat"
    EXT4 = "ext4"

    @classmethod
    def from_filesystem_type(cls, filesystem_type: str | None) -> Optional[FilesystemFamily]:
        """Map a parted filesystem string to a family.

        Returns None for anything the cloner does not rebuild (swap, ntfs,
        an empty column, ...).
        """
        if not filesystem_type:
            return None
        value = filesystem_type.strip().lower()
        if value.startswith("fat"):
            return cls.FAT
        if value == "ext4":
            return cls.EXT4
        return None


@dataclass
class Partition:
    """One entry of the source partition table.

    Identifier fields are empty until the identifier resolver runs.
    """

    index: int  # 1-based partition number
    start_sector: int
    end_sector: int
    partition_type: PartitionType
    filesystem_type: str = ""  # e.g., "fat32", "ext4", "" (unformatted)
    flags: frozenset[str] = field(default_factory=frozenset)
    resolved_volume_id: str | None = None  # "1A2B3C4D" or canonical UUID
    resolved_label: str | None = None

    @property
    def is_extended(self) -> bool:
        return self.partition_type is PartitionType.EXTENDED

    @property
    def filesystem_family(self) -> Optional[FilesystemFamily]:
        return FilesystemFamily.from_filesystem_type(self.filesystem_type)

    @property
    def uses_lba(self) -> bool:
        return LBA_FLAG in self.flags

    def describe(self) -> str:
        """Short human-readable description, e.g. '2 primary ext4 532480s-31116287s'."""
        parts = [str(self.index), self.partition_type.value]
        if self.filesystem_type:
            parts.append(self.filesystem_type)
        parts.append(f"{self.start_sector}s-{self.end_sector}s")
        return " ".join(parts)


# ==============================================================================
# Job State
# ==============================================================================


class JobState(Enum):
    """State of a clone run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
