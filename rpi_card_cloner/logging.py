from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "RPI_CARD_CLONER_LOG_DIR",
        Path.home() / ".local" / "state" / "rpi-card-cloner" / "logs",
    )
)


def _should_log_progress(record) -> bool:
    """Filter per-poll progress logs - only show in TRACE mode."""
    tags = record["extra"].get("tags", [])

    if "progress" in tags:
        return record["level"].no <= logger.level("TRACE").no or (
            record["level"].no >= logger.level("WARNING").no
        )

    return True


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Clone failures, unrecoverable errors
    - SUCCESS/INFO: Pipeline stages, partition progress milestones
    - DEBUG: Detailed diagnostics, command execution
    - TRACE: Ultra-verbose (every progress poll)

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when --debug is enabled (3 day retention)
    - trace.log: TRACE+ events when --trace is enabled (1 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/rpi-card-cloner/logs)
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - stdout is reserved for the progress bar
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_should_log_progress,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <8}</cyan> | "
            "<blue>{extra[job_id]: <14}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <8} | "
            "{extra[job_id]: <14} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Detailed diagnostics (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <8} | "
                "{extra[job_id]: <14} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Trace Log - Ultra-verbose (TRACE only, when trace=True)
    if trace:
        logger.add(
            log_dir / "trace.log",
            level="TRACE",
            rotation="50 MB",
            retention="1 day",
            compression="zip",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{extra[source]: <8} | "
                "{extra[job_id]: <14} | "
                "{message}"
            ),
        )

    # SINK 5: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
    )

    return logger


@contextmanager
def operation_context(operation: str, job_id: str | None = None, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Automatically logs operation start, completion, and failure with duration tracking.

    Args:
        operation: Operation name (e.g., "clone")
        job_id: Job identifier; generated from the operation name when omitted
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("clone", source="/dev/mmcblk0", target="/dev/sda") as log:
            log.debug("Reading partition table")
    """
    if job_id is None:
        job_id = f"{operation}-{uuid.uuid4().hex[:8]}"

    with logger.contextualize(
        job_id=job_id,
        operation=operation,
        **details,
    ):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.

    Each factory method returns a logger pre-configured with appropriate
    source, tags, and context for the domain.
    """

    @staticmethod
    def for_clone(job_id: str | None = None, **details) -> Logger:
        """Logger for clone pipeline stages."""
        if job_id is None:
            return logger.bind(source="clone", tags=["clone", "storage"], **details)
        return logger.bind(
            job_id=job_id, source="clone", tags=["clone", "storage"], **details
        )

    @staticmethod
    def for_progress(job_id: str | None = None) -> Logger:
        """Logger for copy progress polling (TRACE-filtered on the console)."""
        extras: dict[str, object] = {"source": "copy", "tags": ["clone", "progress"]}
        if job_id is not None:
            extras["job_id"] = job_id
        return logger.bind(**extras)

    @staticmethod
    def for_system() -> Logger:
        """Logger for system operations (commands, mounts, config)."""
        return logger.bind(source="system", tags=["system"])


class ThrottledLogger:
    """
    Logger wrapper that throttles high-frequency log events.

    Useful for progress updates or other high-volume logs that should
    only be emitted at intervals.
    """

    def __init__(self, log: Logger, interval_seconds: float = 5.0):
        """
        Initialize throttled logger.

        Args:
            log: Base logger to wrap
            interval_seconds: Minimum seconds between log emissions
        """
        self.log = log
        self.interval = interval_seconds
        self.last_log_time: dict[str, float] = {}

    def debug(self, key: str, message: str, **kwargs) -> None:
        """Log at DEBUG level, throttled by key."""
        self._throttled_log("DEBUG", key, message, **kwargs)

    def _throttled_log(self, level: str, key: str, message: str, **kwargs) -> None:
        now = time.time()
        last_time = self.last_log_time.get(key, 0)

        if now - last_time >= self.interval:
            log_method = getattr(self.log, level.lower())
            log_method(message, **kwargs)
            self.last_log_time[key] = now


class EventLogger:
    """
    Structured event logger using standardized schemas.

    Provides methods for logging common clone events with
    consistent structure and fields.
    """

    @staticmethod
    def log_clone_started(
        log: Logger, source: str, target: str, reuse_identifiers: bool, **extra
    ) -> None:
        """Log clone operation start."""
        log.info(
            "Clone operation started",
            event_type="clone_started",
            source_device=source,
            target_device=target,
            reuse_identifiers=reuse_identifiers,
            **extra,
        )

    @staticmethod
    def log_clone_progress(
        log: Logger, partition: int, fraction: float, bytes_copied: int, **extra
    ) -> None:
        """Log clone progress update."""
        log.trace(
            "Clone progress update",
            event_type="clone_progress",
            partition=partition,
            percent=round(fraction * 100, 2),
            bytes_copied=bytes_copied,
            **extra,
        )
