"""Mount helpers for the clone scratch mount points.

All commands run through subprocess argument lists; device and mount point
paths are validated before use so nothing reaches the tools unchecked.

Functions:
    - create_scratch_mountpoint(): Make a private temporary mount directory
    - remove_scratch_mountpoint(): Remove a scratch directory if it is idle
    - mount_partition(): Mount a partition node on a directory
    - unmount_path(): Unmount a mount point or device node
    - is_mounted(): Check whether a directory is an active mount point
"""

import os
import subprocess
import tempfile
from pathlib import Path

from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.devices import validate_device_path


log = LoggerFactory.for_system()

SCRATCH_PREFIX = "rpi-card-cloner-"


def _validate_mountpoint(mountpoint) -> str:
    path = str(mountpoint)
    if not path or not os.path.isabs(path):
        raise ValueError(f"Invalid mount point: {path}")
    if any(part == ".." for part in Path(path).parts):
        raise ValueError(f"Mount point contains parent references: {path}")
    return path


def create_scratch_mountpoint(label: str) -> Path:
    """Create an empty private directory to mount a partition on."""
    path = Path(tempfile.mkdtemp(prefix=f"{SCRATCH_PREFIX}{label}-"))
    log.debug(f"Created scratch mount point {path}")
    return path


def remove_scratch_mountpoint(path: Path) -> bool:
    """Remove a scratch directory.

    Returns False (and leaves the directory alone) if it is still mounted or
    not empty, so a failed run never deletes data below a live mount.
    """
    if not path.exists():
        return True
    if is_mounted(path):
        log.warning(f"Scratch mount point {path} still mounted; leaving it in place")
        return False
    try:
        path.rmdir()
    except OSError as error:
        log.warning(f"Could not remove scratch mount point {path}: {error}")
        return False
    log.debug(f"Removed scratch mount point {path}")
    return True


def is_mounted(path) -> bool:
    return os.path.ismount(str(path))


def mount_partition(partition: str, mountpoint) -> None:
    """Mount a partition node on an existing directory.

    Args:
            partition: Device node (e.g., '/dev/sda1')
            mountpoint: Absolute directory path

    Raises:
            ValueError: If inputs are invalid
            RuntimeError: If mount operation fails
    """
    validate_device_path(partition)
    target = _validate_mountpoint(mountpoint)
    try:
        subprocess.run(
            ["mount", partition, target], check=True, capture_output=True, text=True
        )
    except subprocess.CalledProcessError as e:
        raise RuntimeError(
            f"Failed to mount {partition} to {target}: {e.stderr.strip()}"
        ) from e
    log.debug(f"Mounted {partition} on {target}")


def unmount_path(target) -> None:
    """Unmount a mount point or device node.

    Raises:
            ValueError: If the target is not an absolute path
            RuntimeError: If unmount fails
    """
    target = _validate_mountpoint(target)
    if target.startswith("/dev/"):
        validate_device_path(target)
    try:
        subprocess.run(["umount", target], check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"Failed to unmount {target}: {e.stderr.strip()}") from e
    log.debug(f"Unmounted {target}")
