"""
Pytest configuration and shared fixtures for rpi-card-cloner tests.

This module provides an in-memory disk backend and canned parted output so
that no test ever runs a real disk utility.
"""

import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from rpi_card_cloner.storage.backend import DiskUsage
from rpi_card_cloner.storage.clone import CancellationToken, CloneSession


SOURCE_DEVICE = "/dev/mmcblk0"
DESTINATION_DEVICE = "/dev/sda"
DESTINATION_SECTORS = 62_521_344

SOURCE_TABLE_ID = "5e3da3da"
NEW_TABLE_ID = "0badf00d"


# ==============================================================================
# Parted Output Fixtures
# ==============================================================================

_COLUMN_WIDTHS = (
    ("Number", 8),
    ("Start", 10),
    ("End", 11),
    ("Size", 11),
    ("Type", 10),
    ("File system", 13),
)

Row = Tuple[int, int, int, str, str, str]

RASPBIAN_ROWS: List[Row] = [
    (1, 8192, 532479, "primary", "fat32", "lba"),
    (2, 532480, 31116287, "primary", "ext4", ""),
]

NOOBS_ROWS: List[Row] = [
    (1, 8192, 137215, "primary", "fat32", "lba"),
    (2, 137216, 31116287, "extended", "", "lba"),
    (5, 139264, 204797, "logical", "fat16", ""),
    (6, 204800, 270333, "logical", "fat32", "lba"),
    (7, 270336, 31116287, "logical", "ext4", ""),
]


def parted_output(
    rows: List[Row], table_format: str = "msdos", device: str = SOURCE_DEVICE
) -> str:
    """Render rows the way ``parted -s <device> unit s print`` does."""
    header = "".join(name.ljust(width) for name, width in _COLUMN_WIDTHS) + "Flags"
    lines = [
        "Model: SD SC16G (sd/mmc)",
        f"Disk {device}: 31116288s",
        "Sector size (logical/physical): 512B/512B",
        f"Partition Table: {table_format}",
        "Disk Flags: ",
        "",
        header,
    ]
    for index, start, end, ptype, filesystem, flags in rows:
        values = (f" {index}", f"{start}s", f"{end}s", f"{end - start + 1}s", ptype, filesystem)
        cells = "".join(
            value.ljust(width) for value, (_, width) in zip(values, _COLUMN_WIDTHS)
        )
        lines.append(f"{cells}{flags}".rstrip())
    lines.append("")
    return "\n".join(lines) + "\n"


def source_files() -> Dict[str, Dict[str, bytes]]:
    return {
        f"{SOURCE_DEVICE}p1": {
            "cmdline.txt": (
                f"console=serial0,115200 root=PARTUUID={SOURCE_TABLE_ID}-02 "
                "rootfstype=ext4 fsck.repair=yes rootwait\n"
            ).encode(),
            "config.txt": b"dtparam=audio=on\n",
        },
        f"{SOURCE_DEVICE}p2": {
            "etc/fstab": (
                "proc  /proc  proc  defaults  0  0\n"
                f"PARTUUID={SOURCE_TABLE_ID}-01  /boot/firmware  vfat  defaults  0  2\n"
                f"PARTUUID={SOURCE_TABLE_ID}-02  /  ext4  defaults,noatime  0  1\n"
            ).encode(),
            "home/pi/.bashrc": b"export PATH=$PATH:/home/pi/bin\n",
        },
    }


# ==============================================================================
# Fake Disk Backend
# ==============================================================================


class FakeDiskBackend:
    """In-memory DiskBackend.

    Records every call in ``calls`` as ``(method, *args)``. Partition contents
    live in ``files`` keyed by device node; mounting writes them into the
    (real, temporary) mount point and unmounting reads them back, so copies
    and file rewrites behave like they would on disk.

    ``fail(method, when=...)`` makes a method raise RuntimeError, optionally
    only when ``when(*args)`` is true.
    """

    def __init__(self, table_output: Optional[str] = None):
        self.table_output = table_output or parted_output(RASPBIAN_ROWS)
        self.calls: List[tuple] = []
        self.failures: Dict[str, tuple] = {}
        self.volume_ids: Dict[str, str] = {
            f"{SOURCE_DEVICE}p1": "5DE4-665C",
            f"{SOURCE_DEVICE}p2": "7295bbc3-bbc2-4267-9fa0-099e10ef5bf0",
        }
        self.labels: Dict[str, str] = {
            f"{SOURCE_DEVICE}p1": "bootfs",
            f"{SOURCE_DEVICE}p2": "rootfs",
        }
        self.table_id = SOURCE_TABLE_ID
        self.new_identifier = NEW_TABLE_ID
        self.device_sectors = DESTINATION_SECTORS
        self.files: Dict[str, Dict[str, bytes]] = source_files()
        self.usage: Dict[str, DiskUsage] = {}
        self.mounted: Dict[str, str] = {}
        self.created: List[dict] = []
        self.copy_hook = None

    # Helpers

    def fail(self, method: str, error: Optional[Exception] = None, when=None) -> None:
        self.failures[method] = (error or RuntimeError(f"{method} failed"), when)

    def calls_to(self, method: str) -> List[tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    def methods_called(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        failure = self.failures.get(method)
        if failure:
            error, when = failure
            if when is None or when(*args):
                raise error

    @staticmethod
    def _tree_size(root: Path) -> int:
        return sum(path.stat().st_size for path in root.rglob("*") if path.is_file())

    # Partition table

    def print_partition_table(self, device):
        self._record("print_partition_table", device)
        return self.table_output

    def wipe_signature(self, device):
        self._record("wipe_signature", device)

    def create_table(self, device, table_format):
        self._record("create_table", device, table_format)
        self.created = []

    def create_partition(self, device, partition_type, filesystem_hint, start_sector, end_sector):
        self._record(
            "create_partition", device, partition_type, filesystem_hint, start_sector, end_sector
        )
        self.created.append(
            {
                "type": partition_type,
                "start": start_sector,
                "end": self.device_sectors - 1 if end_sector is None else end_sector,
            }
        )

    def refresh_table(self, device):
        self._record("refresh_table", device)

    def set_flag(self, device, index, flag, enabled):
        self._record("set_flag", device, index, flag, enabled)

    def rewrite_partition_table_id(self, device, new_id):
        self._record("rewrite_partition_table_id", device, new_id)

    # Identifiers

    def query_volume_id(self, partition):
        self._record("query_volume_id", partition)
        return self.volume_ids.get(partition, "")

    def query_label(self, partition):
        self._record("query_label", partition)
        return self.labels.get(partition, "")

    def query_table_id(self, device):
        self._record("query_table_id", device)
        return self.table_id

    def generate_identifier(self):
        self._record("generate_identifier")
        return self.new_identifier

    # Filesystems

    def create_filesystem(self, partition, family, volume_id):
        self._record("create_filesystem", partition, family, volume_id)
        self.files[partition] = {}

    def set_label(self, partition, family, label):
        self._record("set_label", partition, family, label)

    # Mounts and data

    def mount(self, partition, mountpoint):
        self._record("mount", partition, mountpoint)
        root = Path(mountpoint)
        for relative, data in self.files.get(partition, {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        self.mounted[str(mountpoint)] = partition

    def unmount(self, target):
        self._record("unmount", target)
        key = str(target)
        if key not in self.mounted:
            matches = [point for point, node in self.mounted.items() if node == key]
            if not matches:
                raise RuntimeError(f"umount: {key}: not mounted")
            key = matches[0]
        partition = self.mounted.pop(key)
        root = Path(key)
        self.files[partition] = {
            path.relative_to(root).as_posix(): path.read_bytes()
            for path in root.rglob("*")
            if path.is_file()
        }
        for child in root.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            else:
                child.unlink()

    def disk_usage(self, path):
        self._record("disk_usage", path)
        node = self.mounted.get(str(path))
        if node in self.usage:
            return self.usage[node]
        return DiskUsage(used=self._tree_size(Path(path)), available=1 << 30)

    def directory_size(self, path):
        self._record("directory_size", path)
        return self._tree_size(Path(path))

    def copy_tree(self, source, destination):
        self._record("copy_tree", source, destination)
        if self.copy_hook is not None:
            self.copy_hook()
        shutil.copytree(source, destination, dirs_exist_ok=True)


# ==============================================================================
# Pipeline Fixtures
# ==============================================================================


@pytest.fixture
def fake_backend() -> FakeDiskBackend:
    """Backend serving a two partition Raspberry Pi OS layout."""
    return FakeDiskBackend()


@pytest.fixture
def noobs_backend() -> FakeDiskBackend:
    """Backend serving a NOOBS style layout with an extended partition."""
    backend = FakeDiskBackend(parted_output(NOOBS_ROWS))
    backend.files = {}
    return backend


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def session(tmp_path):
    """Open session whose scratch mount points live under tmp_path."""
    source_mount = tmp_path / "src"
    destination_mount = tmp_path / "dst"
    source_mount.mkdir()
    destination_mount.mkdir()
    clone_session = CloneSession(
        source_device=SOURCE_DEVICE,
        destination_device=DESTINATION_DEVICE,
        source_mount=source_mount,
        destination_mount=destination_mount,
    )
    yield clone_session
    clone_session.close()


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """Temporary settings file path."""
    settings_dir = tmp_path / "config"
    settings_dir.mkdir()
    return settings_dir / "settings.json"
