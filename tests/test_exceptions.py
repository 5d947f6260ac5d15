"""Tests for storage/exceptions.py - hierarchy and user messages."""

import pytest

from rpi_card_cloner.storage.exceptions import (
    CloneCancelledError,
    CloneError,
    CloneOperationError,
    DestinationPrepError,
    FilesystemCreateError,
    FlagApplyError,
    FormatError,
    InsufficientSpaceError,
    LabelApplyError,
    MountError,
    MountFailedError,
    PartitionCreateError,
    PartitionTableError,
    PartitionTableParseError,
    SourceDestinationSameError,
    SourceReadError,
    StorageError,
    TableIdentifierWriteError,
    TooManyPartitionsError,
    UnmountFailedError,
    UnsupportedTableFormatError,
)


@pytest.mark.parametrize(
    "error,parent",
    [
        (SourceReadError("/dev/mmcblk0"), PartitionTableError),
        (UnsupportedTableFormatError("/dev/mmcblk0", "gpt"), PartitionTableError),
        (TooManyPartitionsError("/dev/mmcblk0", 10, 9), PartitionTableError),
        (PartitionTableParseError("/dev/mmcblk0", "bad row"), PartitionTableError),
        (FilesystemCreateError("/dev/sda1", "fat"), FormatError),
        (LabelApplyError("/dev/sda2", "ext4", "rootfs"), FilesystemCreateError),
        (TableIdentifierWriteError("/dev/sda", "0badf00d"), FlagApplyError),
        (MountFailedError("/dev/sda1", "/tmp/x"), MountError),
        (UnmountFailedError("/tmp/x"), MountError),
        (SourceDestinationSameError("/dev/sda", "/dev/sda"), CloneError),
        (InsufficientSpaceError("/dev/mmcblk0p2", 10, "/dev/sda2", 5), CloneError),
        (CloneOperationError("measurement failed"), CloneError),
        (CloneCancelledError(), CloneError),
        (DestinationPrepError("/dev/sda", "wipe failed"), StorageError),
        (PartitionCreateError("/dev/sda", 2), StorageError),
    ],
)
def test_hierarchy(error, parent):
    assert isinstance(error, parent)
    assert isinstance(error, StorageError)
    assert error.user_message


@pytest.mark.parametrize(
    "error,message",
    [
        (UnsupportedTableFormatError("/dev/mmcblk0", "gpt"), "Non-MSDOS partition table on source."),
        (TooManyPartitionsError("/dev/mmcblk0", 10, 9), "Too many partitions on source."),
        (DestinationPrepError("/dev/sda", "x"), "Could not write to destination."),
        (PartitionCreateError("/dev/sda", 1), "Could not create partition."),
        (FilesystemCreateError("/dev/sda1", "fat"), "Could not create file system."),
        (FlagApplyError("/dev/sda", 1, "lba"), "Could not set flags."),
        (MountFailedError("/dev/sda1", "/tmp/x"), "Could not mount partition."),
        (UnmountFailedError("/tmp/x"), "Could not unmount partition."),
        (InsufficientSpaceError("a", 2, "b", 1), "Insufficient space. Backup aborted."),
    ],
)
def test_user_messages(error, message):
    assert error.user_message == message


def test_details_in_message():
    error = PartitionCreateError("/dev/sda", 2, "parted: overlap")

    assert str(error) == "Could not create partition 2 on /dev/sda: parted: overlap"
    assert error.index == 2


def test_label_error_message():
    error = LabelApplyError("/dev/sda2", "ext4", "rootfs", "e2label failed")

    assert "rootfs" in str(error)
    assert error.filesystem == "ext4"


def test_cancelled_stage():
    assert str(CloneCancelledError("copy of partition 2")) == "Clone cancelled during copy of partition 2"
    assert str(CloneCancelledError()) == "Clone cancelled"
