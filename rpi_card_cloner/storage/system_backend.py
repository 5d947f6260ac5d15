"""Disk backend that drives the standard Linux disk utilities.

Tools Used:
    parted:     print, mklabel msdos, mkpart, set <n> lba on|off
    dd:         zero the first sector of the destination
    partprobe:  re-read the partition table (followed by udevadm settle)
    lsblk:      per-partition UUID and LABEL
    blkid:      disk identifier (PTUUID)
    mkfs.fat:   FAT filesystems, -i for the volume ID
    fatlabel:   FAT volume labels
    mkfs.ext4:  ext4 filesystems, -U for the UUID
    e2label:    ext4 volume labels
    fdisk:      expert-mode disk identifier rewrite
    mount/umount, du, cp

All commands are passed as argument lists. Failures raise RuntimeError with
the tool's stderr, which the clone stages translate into their own errors.
"""

from __future__ import annotations

import contextlib
import shutil
import uuid
from pathlib import Path
from typing import Optional

import psutil

from rpi_card_cloner.domain import FilesystemFamily
from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage import mount as mount_ops
from rpi_card_cloner.storage.backend import DiskUsage
from rpi_card_cloner.storage.devices import (
    run_checked_command,
    run_command,
    validate_device_path,
)


log = LoggerFactory.for_system()


class SystemDiskBackend:
    """DiskBackend implementation using subprocess calls."""

    def print_partition_table(self, device: str) -> str:
        validate_device_path(device)
        return run_checked_command(["parted", "-s", device, "unit", "s", "print"])

    def wipe_signature(self, device: str) -> None:
        validate_device_path(device)
        run_checked_command(
            ["dd", "if=/dev/zero", f"of={device}", "bs=512", "count=1", "conv=fsync"]
        )

    def create_table(self, device: str, table_format: str) -> None:
        validate_device_path(device)
        run_checked_command(["parted", "-s", device, "mklabel", table_format])

    def create_partition(
        self,
        device: str,
        partition_type: str,
        filesystem_hint: str,
        start_sector: int,
        end_sector: Optional[int],
    ) -> None:
        validate_device_path(device)
        end = "-1s" if end_sector is None else f"{end_sector}s"
        command = ["parted", "-s", device, "--", "mkpart", partition_type]
        if filesystem_hint and partition_type != "extended":
            command.append(filesystem_hint)
        command.extend([f"{start_sector}s", end])
        run_checked_command(command)

    def refresh_table(self, device: str) -> None:
        validate_device_path(device)
        run_checked_command(["partprobe", device])
        if shutil.which("udevadm"):
            with contextlib.suppress(RuntimeError):
                run_checked_command(["udevadm", "settle", "--timeout=10"])

    def set_flag(self, device: str, index: int, flag: str, enabled: bool) -> None:
        validate_device_path(device)
        state = "on" if enabled else "off"
        run_checked_command(["parted", "-s", device, "set", str(index), flag, state])

    def rewrite_partition_table_id(self, device: str, new_id: str) -> None:
        validate_device_path(device)
        # fdisk expert menu: x (expert), i (identifier), value, r (return), w (write)
        script = f"x\ni\n0x{new_id}\nr\nw\n"
        run_checked_command(["fdisk", device], input_text=script)

    def query_volume_id(self, partition: str) -> str:
        validate_device_path(partition)
        return run_checked_command(["lsblk", "-n", "-o", "UUID", partition]).strip()

    def query_label(self, partition: str) -> str:
        validate_device_path(partition)
        return run_checked_command(["lsblk", "-n", "-o", "LABEL", partition]).strip()

    def query_table_id(self, device: str) -> str:
        validate_device_path(device)
        result = run_command(
            ["blkid", "-o", "value", "-s", "PTUUID", device], check=False
        )
        # blkid exits 2 when the tag is absent; that is "no identifier", not an error
        if result.returncode == 2:
            log.debug(f"No partition table identifier reported for {device}")
            return ""
        if result.returncode != 0:
            raise RuntimeError(
                f"Command failed (blkid {device}): {(result.stderr or '').strip()}"
            )
        return result.stdout.strip()

    def generate_identifier(self) -> str:
        return uuid.uuid4().hex[:8]

    def create_filesystem(
        self, partition: str, family: FilesystemFamily, volume_id: Optional[str]
    ) -> None:
        validate_device_path(partition)
        if family is FilesystemFamily.FAT:
            command = ["mkfs.fat"]
            if volume_id:
                command.extend(["-i", volume_id])
        elif family is FilesystemFamily.EXT4:
            command = ["mkfs.ext4", "-F"]
            if volume_id:
                command.extend(["-U", volume_id])
        else:
            raise RuntimeError(f"Unsupported filesystem family: {family}")
        command.append(partition)
        run_checked_command(command)

    def set_label(self, partition: str, family: FilesystemFamily, label: str) -> None:
        validate_device_path(partition)
        if family is FilesystemFamily.FAT:
            run_checked_command(["fatlabel", partition, label])
        elif family is FilesystemFamily.EXT4:
            run_checked_command(["e2label", partition, label])
        else:
            raise RuntimeError(f"Unsupported filesystem family: {family}")

    def mount(self, partition: str, mountpoint: Path) -> None:
        mount_ops.mount_partition(partition, mountpoint)

    def unmount(self, target) -> None:
        mount_ops.unmount_path(target)

    def disk_usage(self, path: Path) -> DiskUsage:
        try:
            usage = psutil.disk_usage(str(path))
        except OSError as error:
            raise RuntimeError(f"Unable to read disk usage of {path}: {error}") from error
        return DiskUsage(used=usage.used, available=usage.free)

    def directory_size(self, path: Path) -> int:
        output = run_checked_command(["du", "-s", "-B1", str(path)])
        try:
            return int(output.split()[0])
        except (IndexError, ValueError) as error:
            raise RuntimeError(f"Unexpected du output for {path}: {output!r}") from error

    def copy_tree(self, source: Path, destination: Path) -> None:
        # "-x" keeps the copy on the source filesystem; "/." copies contents
        # including dotfiles without creating a nested directory.
        run_checked_command(["cp", "-ax", f"{source}/.", f"{destination}/."])
