"""Clone pipeline: the stages in order, with cancellation checkpoints.

Stages:
    1. Read the source partition table
    2. Wipe and repartition the destination
    3. Per partition: resolve identifiers, build filesystem, set flags
    4. Write the disk identifier
    5. Per partition: copy files, rewrite identifier references

Any stage may raise a StorageError subclass, which ends the run. Nothing is
rolled back; a failed or cancelled run can leave the destination partially
written.
"""

from __future__ import annotations

from rpi_card_cloner.domain import JobState
from rpi_card_cloner.logging import EventLogger, operation_context
from rpi_card_cloner.storage.backend import DiskBackend
from rpi_card_cloner.storage.exceptions import (
    CloneCancelledError,
    SourceDestinationSameError,
)

from .cancellation import CancellationToken
from .copy import clone_partitions
from .filesystems import build_filesystem
from .flags import apply_flags, apply_table_identifier
from .identifiers import resolve_identifiers
from .partition_table import read_partition_table
from .prepare import prepare_destination
from .session import CloneSession


def _message(progress, text: str) -> None:
    if progress is not None:
        progress.message(text)


def build_partitions(
    session: CloneSession, backend: DiskBackend, token: CancellationToken
) -> None:
    """Resolve identifiers, build filesystems and set flags for each partition."""
    for partition in session.copy_targets:
        resolve_identifiers(session, backend, partition)
        build_filesystem(session, backend, partition)
        token.check("filesystem creation")
        apply_flags(session, backend, partition)
        token.check("flag update")


def clone_card(
    session: CloneSession,
    backend: DiskBackend,
    token: CancellationToken,
    progress=None,
) -> CloneSession:
    """Clone ``session.source_device`` onto ``session.destination_device``.

    The session must be open (scratch mount points created).

    Args:
        session: Run state; filled in as the stages progress
        backend: Disk utility backend
        token: Cancellation token checked between steps
        progress: Optional ProgressBar for terminal messages and the copy bar

    Returns:
        The session, in state COMPLETED

    Raises:
        StorageError: Any fatal condition; CloneCancelledError on cancellation
    """
    if session.source_device == session.destination_device:
        raise SourceDestinationSameError(session.source_device, session.destination_device)

    session.state = JobState.RUNNING
    try:
        with operation_context(
            "clone",
            job_id=session.job_id,
            source=session.source_device,
            target=session.destination_device,
        ) as log:
            EventLogger.log_clone_started(
                log,
                session.source_device,
                session.destination_device,
                session.reuse_identifiers,
            )
            token.check("start")

            _message(progress, "Reading partitions...")
            session.partitions = read_partition_table(backend, session.source_device)
            token.check("partition table read")

            session.new_table_id = backend.generate_identifier()

            _message(progress, "Preparing target...")
            prepare_destination(session, backend, token)

            _message(progress, "Preparing partitions...")
            build_partitions(session, backend, token)
            apply_table_identifier(session, backend)
            token.check("partition table identifier")

            clone_partitions(session, backend, token, progress)
    except CloneCancelledError:
        session.state = JobState.CANCELLED
        raise
    except Exception:
        session.state = JobState.FAILED
        raise

    session.state = JobState.COMPLETED
    _message(progress, "Copy complete.")
    return session
