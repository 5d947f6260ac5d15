"""File-level copy of each partition with progress polling.

For every data partition, both sides are mounted on the session's scratch
mount points and the source tree is copied by a background thread. The
controlling thread polls how much data has arrived on the destination,
reports a progress fraction and watches the cancellation token.

The copy thread cannot be interrupted. Cancelling stops the polling loop,
but the current copy is still waited for before anything else happens;
the next partition is never started.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional

from rpi_card_cloner.domain import Partition
from rpi_card_cloner.logging import EventLogger, LoggerFactory, ThrottledLogger
from rpi_card_cloner.storage.backend import DiskBackend
from rpi_card_cloner.storage.devices import human_size
from rpi_card_cloner.storage.exceptions import (
    CloneCancelledError,
    CloneOperationError,
    InsufficientSpaceError,
    MountFailedError,
    UnmountFailedError,
)

from .cancellation import CancellationToken
from .progress import estimate_fraction, format_copy_title, poll_interval_for
from .session import CloneSession
from .uuid_rewrite import rewrite_session_references


log = LoggerFactory.for_clone()

ProgressCallback = Callable[[float], None]


class CopyTask:
    """Run ``backend.copy_tree`` on a background thread.

    The outcome is kept on the task: ``error`` holds the exception the copy
    raised, if any.
    """

    def __init__(self, backend: DiskBackend, source: Path, destination: Path):
        self.backend = backend
        self.source = source
        self.destination = destination
        self.error: Optional[BaseException] = None
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="partition-copy", daemon=True
        )

    def _run(self) -> None:
        try:
            self.backend.copy_tree(self.source, self.destination)
        except Exception as error:
            self.error = error
        finally:
            self._done.set()

    def start(self) -> CopyTask:
        self._thread.start()
        return self

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds; True once the copy has finished."""
        return self._done.wait(timeout)

    def join(self) -> None:
        self._thread.join()


def _release(backend: DiskBackend, mountpoints: list[Path]) -> None:
    """Best-effort unmount on an aborted step."""
    for mountpoint in reversed(mountpoints):
        try:
            backend.unmount(mountpoint)
        except (RuntimeError, ValueError) as error:
            log.warning(f"Could not release {mountpoint}: {error}")


def _mount_both(
    session: CloneSession, backend: DiskBackend, partition: Partition
) -> list[Path]:
    mounted: list[Path] = []
    pairs = (
        (session.destination_partition(partition), session.destination_mount),
        (session.source_partition(partition), session.source_mount),
    )
    for node, mountpoint in pairs:
        try:
            backend.mount(node, mountpoint)
        except (RuntimeError, ValueError) as error:
            _release(backend, mounted)
            raise MountFailedError(node, str(mountpoint), str(error)) from error
        mounted.append(mountpoint)
    return mounted


def check_capacity(
    session: CloneSession, backend: DiskBackend, partition: Partition
) -> int:
    """Make sure the source data fits on the destination partition.

    Returns:
        Bytes used on the source filesystem

    Raises:
        InsufficientSpaceError: used source space >= available destination space
    """
    source_used = backend.disk_usage(session.source_mount).used
    destination_available = backend.disk_usage(session.destination_mount).available
    log.debug(
        f"Partition {partition.index}: source uses {human_size(source_used)}, "
        f"destination has {human_size(destination_available)} free"
    )
    if source_used >= destination_available:
        raise InsufficientSpaceError(
            session.source_partition(partition),
            source_used,
            session.destination_partition(partition),
            destination_available,
        )
    return source_used


def _poll_until_done(
    session: CloneSession,
    backend: DiskBackend,
    partition: Partition,
    task: CopyTask,
    total_bytes: int,
    token: CancellationToken,
    progress_callback: Optional[ProgressCallback],
) -> bool:
    """Report progress until the copy finishes. Returns False if cancelled."""
    interval = poll_interval_for(total_bytes)
    progress_log = LoggerFactory.for_progress(session.job_id)
    throttled = ThrottledLogger(log, interval_seconds=30.0)
    fraction = 0.0
    log.debug(f"Polling every {interval}s for {human_size(total_bytes)}")
    while not task.wait(interval):
        try:
            copied = backend.directory_size(session.destination_mount)
        except RuntimeError as error:
            progress_log.warning(f"Progress poll failed: {error}")
        else:
            fraction = estimate_fraction(copied, total_bytes, fraction)
            EventLogger.log_clone_progress(progress_log, partition.index, fraction, copied)
            throttled.debug(
                session.job_id,
                f"Partition {partition.index}: {int(fraction * 100)}% copied",
            )
            if progress_callback:
                progress_callback(fraction)
        if token.is_cancelled:
            log.warning(
                f"Cancellation requested; waiting for partition {partition.index} "
                "copy to finish"
            )
            return False
    return True


def _unmount_both(session: CloneSession, backend: DiskBackend, token: CancellationToken) -> None:
    """Unmount destination then source, always attempting both."""
    failures = []
    for mountpoint in (session.destination_mount, session.source_mount):
        try:
            backend.unmount(mountpoint)
        except (RuntimeError, ValueError) as error:
            log.error(f"Unmount of {mountpoint} failed: {error}")
            failures.append((mountpoint, error))
    if failures:
        mountpoint, error = failures[0]
        raise UnmountFailedError(str(mountpoint), str(error)) from error
    token.check("unmount")


def copy_partition(
    session: CloneSession,
    backend: DiskBackend,
    partition: Partition,
    token: CancellationToken,
    progress_callback: Optional[ProgressCallback] = None,
) -> None:
    """Copy the files of one partition from source to destination.

    Raises:
        MountFailedError: Either partition could not be mounted
        InsufficientSpaceError: The data does not fit
        UnmountFailedError: Either partition could not be unmounted afterwards
        CloneCancelledError: Cancellation was requested
    """
    if partition.is_extended:
        raise ValueError(f"Partition {partition.index} is extended and holds no data")

    mounted = _mount_both(session, backend, partition)
    try:
        token.check("mount")
        check_capacity(session, backend, partition)
        total_bytes = backend.directory_size(session.source_mount)
    except RuntimeError as error:
        _release(backend, mounted)
        raise CloneOperationError(
            f"Unable to measure partition {partition.index}: {error}",
            source=session.source_partition(partition),
            destination=session.destination_partition(partition),
        ) from error
    except (CloneCancelledError, InsufficientSpaceError):
        _release(backend, mounted)
        raise

    log.info(
        f"Copying partition {partition.index} ({human_size(total_bytes)}) "
        f"from {session.source_partition(partition)} "
        f"to {session.destination_partition(partition)}"
    )
    task = CopyTask(backend, session.source_mount, session.destination_mount).start()
    completed = False
    try:
        if progress_callback:
            progress_callback(0.0)
        completed = _poll_until_done(
            session, backend, partition, task, total_bytes, token, progress_callback
        )
    finally:
        task.wait()
        task.join()
        if not completed:
            _release(backend, mounted)

    if task.error is not None:
        # cp -a onto FAT cannot preserve ownership and exits non-zero
        log.warning(f"Copy of partition {partition.index} reported errors: {task.error}")

    if not completed:
        raise CloneCancelledError(f"copy of partition {partition.index}")

    try:
        if progress_callback:
            progress_callback(1.0)
        for path in rewrite_session_references(session):
            log.debug(f"Rewrote partition table identifier in {path}")
    except Exception:
        _release(backend, mounted)
        raise

    _unmount_both(session, backend, token)
    log.info(f"Partition {partition.index} copied")


def clone_partitions(
    session: CloneSession,
    backend: DiskBackend,
    token: CancellationToken,
    progress=None,
) -> None:
    """Copy every data partition in order, one at a time.

    ``progress`` is an optional ProgressBar-like object with ``message``,
    ``update`` and ``finish``.
    """
    count = len(session.partitions)
    for partition in session.copy_targets:
        token.check("copy")
        title = format_copy_title(partition.index, count)
        log.info(title)
        if progress is not None:
            progress.message(title)
        try:
            copy_partition(
                session,
                backend,
                partition,
                token,
                progress.update if progress is not None else None,
            )
        finally:
            if progress is not None:
                progress.finish()
