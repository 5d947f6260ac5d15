"""Cooperative cancellation for the clone pipeline.

A single token is shared by the controlling thread and the interrupt
handler. The handler only sets the flag; every pipeline stage decides at its
own checkpoints whether to stop. Nothing is rolled back when it does.

Usage:
    token = CancellationToken()
    token.install_signal_handler()
    ...
    token.check("partition creation")  # raises CloneCancelledError once set
"""

from __future__ import annotations

import signal
import threading

from rpi_card_cloner.logging import LoggerFactory
from rpi_card_cloner.storage.exceptions import CloneCancelledError


log = LoggerFactory.for_clone()


class CancellationToken:
    """Thread-safe, set-once cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            log.warning("Cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, stage: str = "") -> None:
        """Raise CloneCancelledError if cancellation has been requested."""
        if self._event.is_set():
            log.warning(f"Cancelled during {stage or 'clone'}")
            raise CloneCancelledError(stage)

    def install_signal_handler(self, signum: int = signal.SIGINT):
        """Route ``signum`` to :meth:`cancel`. Returns the previous handler."""

        # No logging here: the handler can interrupt a thread holding a sink lock
        def _handler(received_signum, frame):
            self._event.set()

        return signal.signal(signum, _handler)
