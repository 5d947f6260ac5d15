"""Reading the source partition layout.

parted's sector listing looks like this::

    Model: SD SC16G (sd/mmc)
    Disk /dev/mmcblk0: 31116288s
    Sector size (logical/physical): 512B/512B
    Partition Table: msdos
    Disk Flags:

    Number  Start    End        Size       Type     File system  Flags
     1      8192s    532479s    524288s    primary  fat32        lba
     2      532480s  31116287s  30583808s  primary  ext4

Only the indented data rows describe partitions; everything else is header
or footer. Column boundaries for the optional "File system" and "Flags"
fields come from the column header, since either can be blank.
"""

from __future__ import annotations

import re
from typing import Optional

from rpi_card_cloner.domain import MAX_PARTITIONS, Partition, PartitionType
from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.backend import DiskBackend
from rpi_card_cloner.storage.exceptions import (
    PartitionTableParseError,
    SourceReadError,
    TooManyPartitionsError,
    UnsupportedTableFormatError,
)


log = LoggerFactory.for_clone()

SUPPORTED_TABLE_FORMAT = "msdos"

_TABLE_FORMAT_RE = re.compile(r"^Partition Table:\s*(\S*)", re.MULTILINE)
_ROW_RE = re.compile(
    r"^\s*(?P<index>\d+)\s+(?P<start>\d+)s\s+(?P<end>\d+)s\s+(?P<size>\d+)s"
    r"\s+(?P<ptype>\S+)(?P<rest>.*)$"
)

# Flag names parted prints for msdos tables
KNOWN_FLAGS = frozenset(
    {
        "boot",
        "diag",
        "esp",
        "hidden",
        "irst",
        "lba",
        "legacy_boot",
        "lvm",
        "palo",
        "prep",
        "raid",
        "root",
        "swap",
        "type",
    }
)


def parse_table_format(output: str) -> Optional[str]:
    """Return the value of the ``Partition Table:`` line, if present."""
    match = _TABLE_FORMAT_RE.search(output)
    if not match or not match.group(1):
        return None
    return match.group(1).strip().lower()


def _data_rows(output: str) -> list[str]:
    return [line for line in output.splitlines() if line[:1].isspace() and line.strip()]


def _column_offsets(output: str) -> Optional[tuple[int, int]]:
    for line in output.splitlines():
        if line.startswith("Number"):
            fs_col = line.find("File system")
            flags_col = line.find("Flags")
            if 0 < fs_col < flags_col:
                return fs_col, flags_col
            return None
    return None


def _parse_flags(value: str) -> frozenset[str]:
    return frozenset(flag.strip() for flag in value.split(",") if flag.strip())


def _split_rest(rest: str) -> tuple[str, str]:
    """Split the trailing "File system  Flags" text without a column header."""
    chunks = [chunk for chunk in re.split(r"\s{2,}", rest.strip()) if chunk]
    if not chunks:
        return "", ""
    if len(chunks) == 2:
        return chunks[0], chunks[1]
    if len(chunks) == 1:
        flags = _parse_flags(chunks[0])
        if flags and flags <= KNOWN_FLAGS:
            return "", chunks[0]
        return chunks[0], ""
    raise ValueError(f"unexpected trailing columns: {rest.strip()!r}")


def parse_partition_row(
    line: str, offsets: Optional[tuple[int, int]] = None
) -> Partition:
    """Parse a single data row into a Partition.

    Raises:
        ValueError: If the row does not have the expected shape
    """
    match = _ROW_RE.match(line)
    if not match:
        raise ValueError(f"unrecognised row: {line.strip()!r}")
    try:
        partition_type = PartitionType(match.group("ptype").lower())
    except ValueError:
        raise ValueError(f"unknown partition type {match.group('ptype')!r}") from None

    if offsets and match.end("ptype") <= offsets[0]:
        fs_col, flags_col = offsets
        filesystem_type = line[fs_col:flags_col].strip()
        flags_text = line[flags_col:].strip()
    else:
        filesystem_type, flags_text = _split_rest(match.group("rest"))

    partition = Partition(
        index=int(match.group("index")),
        start_sector=int(match.group("start")),
        end_sector=int(match.group("end")),
        partition_type=partition_type,
        filesystem_type=filesystem_type,
        flags=_parse_flags(flags_text),
    )
    if partition.start_sector >= partition.end_sector:
        raise ValueError(
            f"partition {partition.index} starts at or after its end "
            f"({partition.start_sector}s >= {partition.end_sector}s)"
        )
    return partition


def parse_partition_table(output: str, device: str) -> list[Partition]:
    """Turn parted output into an ordered list of partitions.

    Raises:
        UnsupportedTableFormatError: Table is not msdos
        TooManyPartitionsError: More than MAX_PARTITIONS rows
        PartitionTableParseError: Any row is malformed or the layout is inconsistent
    """
    table_format = parse_table_format(output)
    if table_format != SUPPORTED_TABLE_FORMAT:
        raise UnsupportedTableFormatError(device, table_format or "unknown")

    rows = _data_rows(output)
    if len(rows) > MAX_PARTITIONS:
        raise TooManyPartitionsError(device, len(rows), MAX_PARTITIONS)

    offsets = _column_offsets(output)
    partitions: list[Partition] = []
    for line in rows:
        try:
            partition = parse_partition_row(line, offsets)
        except ValueError as error:
            raise PartitionTableParseError(device, str(error)) from error
        if partition.index > MAX_PARTITIONS:
            raise PartitionTableParseError(
                device, f"partition number {partition.index} exceeds {MAX_PARTITIONS}"
            )
        if partitions and partition.index <= partitions[-1].index:
            raise PartitionTableParseError(
                device, f"partition {partition.index} listed out of order"
            )
        partitions.append(partition)

    extended = [partition.index for partition in partitions if partition.is_extended]
    if len(extended) > 1:
        raise PartitionTableParseError(
            device, f"multiple extended partitions: {extended}"
        )
    return partitions


def read_partition_table(backend: DiskBackend, device: str) -> list[Partition]:
    """Read and parse the partition table of ``device`` through the backend."""
    log.debug(f"Reading partition table from {device}")
    try:
        output = backend.print_partition_table(device)
    except RuntimeError as error:
        raise SourceReadError(device, str(error)) from error
    partitions = parse_partition_table(output, device)
    for partition in partitions:
        log.debug(f"Source partition {partition.describe()}")
    log.info(f"Read {len(partitions)} partition(s) from {device}")
    return partitions
