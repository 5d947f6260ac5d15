"""Interface between the clone pipeline and the disk utilities.

The pipeline never runs parted, mkfs or mount itself; it talks to an object
implementing :class:`DiskBackend`. ``SystemDiskBackend`` drives the real
tools, the test suite uses an in-memory fake.

Every method that changes or queries a device raises ``RuntimeError`` when
the underlying tool fails, matching ``run_checked_command``.
"""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple, Optional, Protocol

from rpi_card_cloner.domain import FilesystemFamily


class DiskUsage(NamedTuple):
    """Space accounting for a mounted filesystem, in bytes."""

    used: int
    available: int


class DiskBackend(Protocol):
    # Partition table
    def print_partition_table(self, device: str) -> str:
        """Raw ``parted <device> unit s print`` output."""

    def wipe_signature(self, device: str) -> None:
        ...

    def create_table(self, device: str, table_format: str) -> None:
        ...

    def create_partition(
        self,
        device: str,
        partition_type: str,
        filesystem_hint: str,
        start_sector: int,
        end_sector: Optional[int],
    ) -> None:
        """Create a partition; ``end_sector=None`` runs to the end of the device."""

    def refresh_table(self, device: str) -> None:
        ...

    def set_flag(self, device: str, index: int, flag: str, enabled: bool) -> None:
        ...

    def rewrite_partition_table_id(self, device: str, new_id: str) -> None:
        ...

    # Identifiers
    def query_volume_id(self, partition: str) -> str:
        ...

    def query_label(self, partition: str) -> str:
        ...

    def query_table_id(self, device: str) -> str:
        ...

    def generate_identifier(self) -> str:
        """A fresh 8 hex digit MSDOS disk identifier."""

    # Filesystems
    def create_filesystem(
        self, partition: str, family: FilesystemFamily, volume_id: Optional[str]
    ) -> None:
        ...

    def set_label(self, partition: str, family: FilesystemFamily, label: str) -> None:
        ...

    # Mounts and data
    def mount(self, partition: str, mountpoint: Path) -> None:
        ...

    def unmount(self, target) -> None:
        ...

    def disk_usage(self, path: Path) -> DiskUsage:
        ...

    def directory_size(self, path: Path) -> int:
        """Bytes of file data below ``path``."""

    def copy_tree(self, source: Path, destination: Path) -> None:
        """Blocking recursive copy preserving attributes."""
