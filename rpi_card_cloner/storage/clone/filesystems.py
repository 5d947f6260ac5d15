"""Build filesystems on the recreated destination partitions.

Supported Filesystems:
    FAT:   any parted type starting with "fat" (fat16, fat32), built with mkfs.fat
    ext4:  built with mkfs.ext4

Anything else is left unformatted.

Label Policy:
    A FAT label that cannot be applied is logged and ignored. An ext4 label
    that cannot be applied is fatal (see STRICT_LABEL_FAMILIES).
"""

from __future__ import annotations

from rpi_card_cloner.domain import FilesystemFamily, Partition
from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.backend import DiskBackend
from rpi_card_cloner.storage.exceptions import (
    FilesystemCreateError,
    LabelApplyError,
)

from .session import CloneSession


log = LoggerFactory.for_clone()

# Families whose label failures abort the clone
STRICT_LABEL_FAMILIES = frozenset({FilesystemFamily.EXT4})


def _create(
    backend: DiskBackend, node: str, partition: Partition, family: FilesystemFamily
) -> None:
    volume_id = partition.resolved_volume_id
    if volume_id:
        try:
            backend.create_filesystem(node, family, volume_id)
            return
        except RuntimeError as error:
            # Retry once without an ID
            log.warning(
                f"Creating {family.value} on {node} with ID {volume_id} failed "
                f"({error}); retrying without ID"
            )
    try:
        backend.create_filesystem(node, family, None)
    except RuntimeError as error:
        raise FilesystemCreateError(node, family.value, str(error)) from error


def _apply_label(
    backend: DiskBackend, node: str, label: str, family: FilesystemFamily
) -> None:
    try:
        backend.set_label(node, family, label)
    except RuntimeError as error:
        if family in STRICT_LABEL_FAMILIES:
            raise LabelApplyError(node, family.value, label, str(error)) from error
        log.warning(f"Could not apply label {label!r} to {node}: {error}")
        return
    log.debug(f"Applied label {label!r} to {node}")


def build_filesystem(
    session: CloneSession, backend: DiskBackend, partition: Partition
) -> bool:
    """Create the filesystem for ``partition`` on the destination.

    Returns:
        True if a filesystem was built, False if the type is not supported

    Raises:
        FilesystemCreateError: Creation failed (after the ID fallback, if any)
        LabelApplyError: An ext4 label could not be applied
    """
    family = partition.filesystem_family
    node = session.destination_partition(partition)
    if family is None:
        log.info(
            f"Skipping filesystem creation on {node}: unsupported type "
            f"{partition.filesystem_type or 'none'!r}"
        )
        return False

    log.info(f"Creating {family.value} file system on {node}")
    _create(backend, node, partition, family)

    if partition.resolved_label:
        _apply_label(backend, node, partition.resolved_label, family)
    return True
