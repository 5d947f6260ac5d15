"""Per-run state for a card clone."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rpi_card_cloner.domain import JobState, Partition
from rpi_card_cloner.storage.devices import partition_node
from rpi_card_cloner.storage.mount import (
    create_scratch_mountpoint,
    remove_scratch_mountpoint,
)


@dataclass
class CloneSession:
    """Everything one clone run knows, owned by the controlling thread.

    Stages receive the session and fill it in as they go: the reader sets
    ``partitions``, the identifier resolver sets ``source_table_id``, the
    pipeline sets ``new_table_id``. The scratch mount points exist between
    :meth:`open` and :meth:`close` (or for the life of a ``with`` block).
    """

    source_device: str
    destination_device: str
    reuse_identifiers: bool = False
    partitions: list[Partition] = field(default_factory=list)
    source_table_id: Optional[str] = None
    new_table_id: Optional[str] = None
    source_mount: Optional[Path] = None
    destination_mount: Optional[Path] = None
    state: JobState = JobState.PENDING
    job_id: str = field(default_factory=lambda: f"clone-{uuid.uuid4().hex[:8]}")

    @property
    def target_table_id(self) -> Optional[str]:
        """Identifier to write into the destination table, if any."""
        if self.source_table_id is None:
            return None
        if self.reuse_identifiers:
            return self.source_table_id
        return self.new_table_id

    @property
    def rewrites_table_id(self) -> bool:
        """True when references to the old identifier must be patched."""
        return (
            self.source_table_id is not None
            and not self.reuse_identifiers
            and bool(self.new_table_id)
            and self.new_table_id != self.source_table_id
        )

    @property
    def copy_targets(self) -> list[Partition]:
        return [partition for partition in self.partitions if not partition.is_extended]

    def source_partition(self, partition: Partition) -> str:
        return partition_node(self.source_device, partition.index)

    def destination_partition(self, partition: Partition) -> str:
        return partition_node(self.destination_device, partition.index)

    def open(self) -> CloneSession:
        if self.source_mount is None:
            self.source_mount = create_scratch_mountpoint("src")
        if self.destination_mount is None:
            self.destination_mount = create_scratch_mountpoint("dst")
        return self

    def close(self) -> None:
        for attr in ("source_mount", "destination_mount"):
            path = getattr(self, attr)
            if path is not None and remove_scratch_mountpoint(path):
                setattr(self, attr, None)

    def __enter__(self) -> CloneSession:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
