"""Wipe the destination and replay the source partition geometry onto it."""

from __future__ import annotations

from typing import Optional

from rpi_card_cloner.domain import MAX_PARTITIONS, Partition
from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.backend import DiskBackend
from rpi_card_cloner.storage.devices import partition_node
from rpi_card_cloner.storage.exceptions import (
    DestinationPrepError,
    PartitionCreateError,
)

from .cancellation import CancellationToken
from .partition_table import SUPPORTED_TABLE_FORMAT
from .session import CloneSession


log = LoggerFactory.for_clone()


def unmount_destination(
    session: CloneSession, backend: DiskBackend, token: CancellationToken
) -> None:
    """Unmount every possible partition of the destination, highest first.

    Most of these nodes are not mounted (or do not exist); a failing
    unmount is expected and ignored.
    """
    for index in range(MAX_PARTITIONS, 0, -1):
        node = partition_node(session.destination_device, index)
        try:
            backend.unmount(node)
            log.info(f"Unmounted {node}")
        except (RuntimeError, ValueError) as error:
            log.debug(f"Unmount of {node} skipped: {error}")
        token.check("destination unmount")


def end_sector_for(partition: Partition, is_last: bool) -> Optional[int]:
    """Where the recreated partition should end; None means end of device.

    Extended partitions always run to the end of the device so every
    logical partition fits. The last partition is stretched to fill
    the destination. The extended rule is checked first.
    """
    if partition.is_extended:
        return None
    if is_last:
        return None
    return partition.end_sector


def recreate_partitions(
    session: CloneSession, backend: DiskBackend, token: CancellationToken
) -> None:
    """Create each source partition on the destination, in index order."""
    device = session.destination_device
    count = len(session.partitions)
    for position, partition in enumerate(session.partitions):
        end_sector = end_sector_for(partition, position == count - 1)
        filesystem_hint = "" if partition.is_extended else partition.filesystem_type
        end_label = "end of device" if end_sector is None else f"{end_sector}s"
        log.debug(
            f"Creating {partition.partition_type.value} partition {partition.index} "
            f"on {device}: {partition.start_sector}s to {end_label}"
        )
        try:
            backend.create_partition(
                device,
                partition.partition_type.value,
                filesystem_hint,
                partition.start_sector,
                end_sector,
            )
        except RuntimeError as error:
            raise PartitionCreateError(device, partition.index, str(error)) from error
        token.check("partition creation")

        try:
            backend.refresh_table(device)
        except RuntimeError as error:
            log.warning(f"Kernel partition table refresh failed for {device}: {error}")
        token.check("partition table refresh")


def prepare_destination(
    session: CloneSession, backend: DiskBackend, token: CancellationToken
) -> None:
    """Unmount, wipe and repartition the destination to match the source.

    Raises:
        DestinationPrepError: The signature wipe or table creation failed
        PartitionCreateError: A partition could not be created
        CloneCancelledError: Cancellation was requested at a checkpoint
    """
    device = session.destination_device
    log.info(f"Preparing target {device}")

    unmount_destination(session, backend, token)

    try:
        backend.wipe_signature(device)
    except RuntimeError as error:
        raise DestinationPrepError(device, f"signature wipe failed: {error}") from error
    token.check("signature wipe")

    try:
        backend.create_table(device, SUPPORTED_TABLE_FORMAT)
    except RuntimeError as error:
        raise DestinationPrepError(
            device, f"partition table creation failed: {error}"
        ) from error
    token.check("partition table creation")

    recreate_partitions(session, backend, token)
    log.info(f"Recreated {len(session.partitions)} partition(s) on {device}")
