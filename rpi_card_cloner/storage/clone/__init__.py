"""SD card cloning by partition recreation and file-level copy.

The destination gets a fresh MSDOS table with the source's partition layout,
new filesystems carrying the source volume identifiers and labels, and then
a file copy of every data partition. The result can be smaller than the
source card, as long as each partition's data fits.

Main Functions:
    - clone_card(): Run the whole pipeline for one session
    - read_partition_table(): Parse the source layout
    - prepare_destination(): Wipe and repartition the destination
    - clone_partitions(): Copy every data partition with progress

Helper Functions:
    - resolve_identifiers(): Read volume id, label and disk id of a partition
    - build_filesystem(): mkfs plus label for one partition
    - apply_flags(): LBA flag for one partition
    - rewrite_table_references(): Patch fstab / cmdline.txt for a new disk id
"""

from .cancellation import CancellationToken
from .copy import CopyTask, check_capacity, clone_partitions, copy_partition
from .filesystems import build_filesystem
from .flags import apply_flags, apply_table_identifier
from .identifiers import normalize_table_id, normalize_volume_id, resolve_identifiers
from .operations import build_partitions, clone_card
from .partition_table import (
    parse_partition_row,
    parse_partition_table,
    parse_table_format,
    read_partition_table,
)
from .prepare import end_sector_for, prepare_destination, recreate_partitions, unmount_destination
from .progress import ProgressBar, estimate_fraction, format_progress_bar, poll_interval_for
from .session import CloneSession
from .uuid_rewrite import rewrite_session_references, rewrite_table_references


__all__ = [
    # Main operations
    "clone_card",
    "build_partitions",
    "read_partition_table",
    "prepare_destination",
    "clone_partitions",
    "copy_partition",
    # Session and cancellation
    "CloneSession",
    "CancellationToken",
    "CopyTask",
    # Partition table
    "parse_table_format",
    "parse_partition_row",
    "parse_partition_table",
    "unmount_destination",
    "recreate_partitions",
    "end_sector_for",
    # Identifiers and filesystems
    "normalize_volume_id",
    "normalize_table_id",
    "resolve_identifiers",
    "build_filesystem",
    "apply_flags",
    "apply_table_identifier",
    "rewrite_table_references",
    "rewrite_session_references",
    # Capacity and progress
    "check_capacity",
    "estimate_fraction",
    "poll_interval_for",
    "format_progress_bar",
    "ProgressBar",
]
