"""Replicate partition flags and the disk identifier onto the destination."""

from __future__ import annotations

from typing import Optional

from rpi_card_cloner.domain import LBA_FLAG, Partition
from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.backend import DiskBackend
from rpi_card_cloner.storage.exceptions import (
    FlagApplyError,
    TableIdentifierWriteError,
)

from .session import CloneSession


log = LoggerFactory.for_clone()


def apply_flags(session: CloneSession, backend: DiskBackend, partition: Partition) -> None:
    """Turn the LBA flag on or off to match the source partition.

    Raises:
        FlagApplyError: parted refused to set the flag
    """
    device = session.destination_device
    enabled = partition.uses_lba
    try:
        backend.set_flag(device, partition.index, LBA_FLAG, enabled)
    except RuntimeError as error:
        raise FlagApplyError(device, partition.index, LBA_FLAG, str(error)) from error
    log.debug(
        f"Set {LBA_FLAG} {'on' if enabled else 'off'} for partition {partition.index}"
    )


def apply_table_identifier(session: CloneSession, backend: DiskBackend) -> Optional[str]:
    """Write the disk identifier into the destination partition table.

    Skipped when the source had no identifier. Writes the source identifier
    when reusing identifiers, otherwise the freshly generated one.

    Returns:
        The identifier written, or None if skipped

    Raises:
        TableIdentifierWriteError: fdisk failed to write the identifier
    """
    identifier = session.target_table_id
    if identifier is None:
        log.debug("No partition table identifier on source; leaving destination's")
        return None
    device = session.destination_device
    try:
        backend.rewrite_partition_table_id(device, identifier)
    except RuntimeError as error:
        raise TableIdentifierWriteError(device, identifier, str(error)) from error
    log.info(f"Set partition table identifier of {device} to 0x{identifier}")
    return identifier
