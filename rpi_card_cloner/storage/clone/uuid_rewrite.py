"""Patch files on the copied card that refer to the old disk identifier.

Raspberry Pi OS mounts and boots by PARTUUID (``PARTUUID=<disk id>-02``), so
once the destination gets a new disk identifier the mount table on the root
partition and the kernel command line on the boot partition must follow.
Both paths are checked on every copied partition; whichever exists is
rewritten.
"""

from __future__ import annotations

from pathlib import Path

from rpi_card_cloner.logging import LoggerFactory

from .session import CloneSession


log = LoggerFactory.for_clone()

# Relative to the root of a mounted destination partition
REWRITE_TARGETS = (
    Path("etc") / "fstab",
    Path("cmdline.txt"),
)


def rewrite_file(path: Path, old_id: str, new_id: str) -> bool:
    """Replace every occurrence of ``old_id`` in ``path``. Returns True if changed."""
    data = path.read_bytes()
    updated = data.replace(old_id.encode(), new_id.encode())
    if updated == data:
        return False
    path.write_bytes(updated)
    return True


def rewrite_table_references(root: Path, old_id: str, new_id: str) -> list[Path]:
    """Rewrite the known configuration files below ``root``.

    Files that do not exist are skipped silently.

    Returns:
        The files that were changed
    """
    rewritten: list[Path] = []
    for relative in REWRITE_TARGETS:
        path = root / relative
        if not path.is_file():
            continue
        if rewrite_file(path, old_id, new_id):
            log.info(f"Replaced {old_id} with {new_id} in /{relative.as_posix()}")
            rewritten.append(path)
    return rewritten


def rewrite_session_references(session: CloneSession) -> list[Path]:
    """Apply :func:`rewrite_table_references` to the mounted destination, if needed."""
    if not session.rewrites_table_id or session.destination_mount is None:
        return []
    return rewrite_table_references(
        session.destination_mount, session.source_table_id, session.new_table_id
    )
