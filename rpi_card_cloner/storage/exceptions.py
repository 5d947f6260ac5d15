"""Custom exceptions for clone operations.

This module defines a hierarchy of exceptions for the clone pipeline so that
each fatal condition is distinguishable and carries a short message suitable
for the terminal.

Exception Hierarchy:
    StorageError (base)
        ├── PartitionTableError
        │   ├── SourceReadError
        │   ├── UnsupportedTableFormatError
        │   ├── TooManyPartitionsError
        │   └── PartitionTableParseError
        ├── DestinationPrepError
        ├── PartitionCreateError
        ├── FormatError
        │   └── FilesystemCreateError
        │       └── LabelApplyError
        ├── FlagApplyError
        │   └── TableIdentifierWriteError
        ├── MountError
        │   ├── MountFailedError
        │   └── UnmountFailedError
        └── CloneError
            ├── SourceDestinationSameError
            ├── InsufficientSpaceError
            ├── CloneOperationError
            └── CloneCancelledError

Usage:
    from rpi_card_cloner.storage.exceptions import TooManyPartitionsError

    if len(rows) > MAX_PARTITIONS:
        raise TooManyPartitionsError(device, len(rows), MAX_PARTITIONS)
"""


class StorageError(Exception):
    """Base exception for all storage operations."""

    user_message = "Clone failed."


class PartitionTableError(StorageError):
    """Base exception for source partition table problems."""

    user_message = "Unable to read source partition table."


class SourceReadError(PartitionTableError):
    """The source partition table could not be read at all."""

    user_message = "Unable to read source."

    def __init__(self, device_name: str, reason: str = ""):
        self.device_name = device_name
        self.reason = reason
        msg = f"Unable to read partition table from {device_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UnsupportedTableFormatError(PartitionTableError):
    """Source partition table is not a legacy MSDOS table."""

    user_message = "Non-MSDOS partition table on source."

    def __init__(self, device_name: str, table_format: str):
        self.device_name = device_name
        self.table_format = table_format
        super().__init__(
            f"Unsupported partition table on {device_name}: {table_format}"
        )


class TooManyPartitionsError(PartitionTableError):
    """Source has more partitions than the cloner supports."""

    user_message = "Too many partitions on source."

    def __init__(self, device_name: str, count: int, limit: int):
        self.device_name = device_name
        self.count = count
        self.limit = limit
        super().__init__(
            f"{device_name} has {count} partitions (maximum {limit})"
        )


class PartitionTableParseError(PartitionTableError):
    """A partition row could not be parsed or the layout is inconsistent."""

    def __init__(self, device_name: str, detail: str):
        self.device_name = device_name
        self.detail = detail
        super().__init__(f"Malformed partition table on {device_name}: {detail}")


class DestinationPrepError(StorageError):
    """Destination signature erase or table creation failed."""

    user_message = "Could not write to destination."

    def __init__(self, device_name: str, reason: str):
        self.device_name = device_name
        self.reason = reason
        super().__init__(f"Could not prepare {device_name}: {reason}")


class PartitionCreateError(StorageError):
    """Recreating a partition on the destination failed."""

    user_message = "Could not create partition."

    def __init__(self, device_name: str, index: int, reason: str = ""):
        self.device_name = device_name
        self.index = index
        self.reason = reason
        msg = f"Could not create partition {index} on {device_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class FormatError(StorageError):
    """Base exception for filesystem creation."""

    user_message = "Could not create file system."


class FilesystemCreateError(FormatError):
    """Building a filesystem on a destination partition failed."""

    def __init__(self, partition: str, filesystem: str, reason: str = ""):
        self.partition = partition
        self.filesystem = filesystem
        self.reason = reason
        msg = f"Could not create {filesystem} file system on {partition}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LabelApplyError(FilesystemCreateError):
    """Applying a volume label failed where the label is mandatory."""

    user_message = "Could not set file system label."

    def __init__(self, partition: str, filesystem: str, label: str, reason: str = ""):
        self.label = label
        super().__init__(partition, filesystem, reason)
        msg = f"Could not apply label {label!r} to {filesystem} on {partition}"
        if reason:
            msg += f": {reason}"
        self.args = (msg,)


class FlagApplyError(StorageError):
    """Setting a partition flag failed."""

    user_message = "Could not set flags."

    def __init__(self, device_name: str, index: int, flag: str, reason: str = ""):
        self.device_name = device_name
        self.index = index
        self.flag = flag
        self.reason = reason
        msg = f"Could not set {flag} flag on partition {index} of {device_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TableIdentifierWriteError(FlagApplyError):
    """Writing the disk identifier into the destination table failed."""

    user_message = "Could not set partition table identifier."

    def __init__(self, device_name: str, identifier: str, reason: str = ""):
        self.identifier = identifier
        super().__init__(device_name, 0, "disk identifier", reason)
        msg = f"Could not write disk identifier 0x{identifier} to {device_name}"
        if reason:
            msg += f": {reason}"
        self.args = (msg,)


class MountError(StorageError):
    """Base exception for mount-related errors."""


class MountFailedError(MountError):
    """Mounting a partition on a scratch mount point failed."""

    user_message = "Could not mount partition."

    def __init__(self, partition: str, mountpoint: str, reason: str = ""):
        self.partition = partition
        self.mountpoint = mountpoint
        self.reason = reason
        msg = f"Failed to mount {partition} on {mountpoint}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UnmountFailedError(MountError):
    """Failed to unmount a scratch mount point."""

    user_message = "Could not unmount partition."

    def __init__(self, mountpoint: str, reason: str = ""):
        self.mountpoint = mountpoint
        self.reason = reason
        msg = f"Failed to unmount {mountpoint}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CloneError(StorageError):
    """Base exception for clone operations."""


class SourceDestinationSameError(CloneError):
    """Source and destination devices are the same."""

    user_message = "Source and destination are the same device."

    def __init__(self, source_name: str, destination_name: str):
        self.source_name = source_name
        self.destination_name = destination_name
        super().__init__(
            f"Source and destination cannot be the same device: "
            f"{source_name} == {destination_name}"
        )


class InsufficientSpaceError(CloneError):
    """Destination partition is too small for the source data."""

    user_message = "Insufficient space. Backup aborted."

    def __init__(
        self,
        source_name: str,
        source_size: int,
        destination_name: str,
        destination_size: int,
    ):
        self.source_name = source_name
        self.source_size = source_size
        self.destination_name = destination_name
        self.destination_size = destination_size
        super().__init__(
            f"Destination {destination_name} ({destination_size} bytes free) "
            f"is too small for source {source_name} ({source_size} bytes used)"
        )


class CloneOperationError(CloneError):
    """Generic clone operation failure."""

    def __init__(self, message: str, source: str = None, destination: str = None):
        self.source = source
        self.destination = destination
        super().__init__(message)


class CloneCancelledError(CloneError):
    """The user asked the clone to stop."""

    user_message = "Copy cancelled."

    def __init__(self, stage: str = ""):
        self.stage = stage
        msg = "Clone cancelled"
        if stage:
            msg += f" during {stage}"
        super().__init__(msg)
