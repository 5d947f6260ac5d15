"""Resolve and sanity check the identifiers a rebuilt partition should keep.

FAT volume IDs are reported by lsblk as ``XXXX-XXXX`` but mkfs.fat wants the
bare 8 hex digits; ext4 UUIDs are passed through in canonical form. Anything
that does not look like either is dropped so the filesystem is built with a
fresh identifier instead of failing.
"""

from __future__ import annotations

import re
from typing import Optional

from rpi_card_cloner.domain import Partition
from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.backend import DiskBackend

from .session import CloneSession


log = LoggerFactory.for_clone()

FAT_ID_LENGTH = 9  # "XXXX-XXXX"
UUID_LENGTH = 36
UUID_HYPHEN_POSITIONS = (8, 13, 18, 23)

_TABLE_ID_RE = re.compile(r"^[0-9a-f]{8}$")


def normalize_volume_id(value: Optional[str]) -> Optional[str]:
    """Validate a volume identifier, returning the form mkfs expects.

    >>> normalize_volume_id("1234-5678")
    '12345678'
    >>> normalize_volume_id("1234-567") is None
    True
    """
    if not value:
        return None
    value = value.strip()
    if len(value) == FAT_ID_LENGTH:
        if value[4] != "-":
            return None
        return value[:4] + value[5:]
    if len(value) == UUID_LENGTH:
        if all(value[position] == "-" for position in UUID_HYPHEN_POSITIONS):
            return value
        return None
    return None


def normalize_table_id(value: Optional[str]) -> Optional[str]:
    """Validate an MSDOS disk identifier (8 hex digits, optional 0x prefix)."""
    if not value:
        return None
    value = value.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    if not _TABLE_ID_RE.match(value):
        return None
    return value


def _query(description: str, query, target: str) -> str:
    try:
        return query(target) or ""
    except RuntimeError as error:
        log.debug(f"No {description} for {target}: {error}")
        return ""


def resolve_identifiers(
    session: CloneSession, backend: DiskBackend, partition: Partition
) -> Partition:
    """Fill in the identifiers ``partition`` should keep on the destination.

    Sets ``partition.resolved_volume_id`` and ``partition.resolved_label``
    and records the source disk identifier on the session, keeping the
    first valid one read. Missing or malformed values are logged and left
    as None; none of this is fatal.
    """
    source_node = session.source_partition(partition)

    raw_volume_id = _query("volume ID", backend.query_volume_id, source_node)
    partition.resolved_volume_id = normalize_volume_id(raw_volume_id)
    if raw_volume_id and partition.resolved_volume_id is None:
        log.warning(
            f"Ignoring malformed volume ID {raw_volume_id!r} on {source_node}; "
            "a new one will be assigned"
        )

    label = _query("label", backend.query_label, source_node).strip()
    partition.resolved_label = label or None

    if session.source_table_id is None:
        raw_table_id = _query(
            "partition table identifier", backend.query_table_id, session.source_device
        )
        session.source_table_id = normalize_table_id(raw_table_id)
        if raw_table_id and session.source_table_id is None:
            log.warning(
                f"Ignoring malformed partition table identifier {raw_table_id!r} "
                f"on {session.source_device}"
            )

    log.debug(
        f"Partition {partition.index}: volume_id={partition.resolved_volume_id} "
        f"label={partition.resolved_label} table_id={session.source_table_id}"
    )
    return partition
