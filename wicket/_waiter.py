"""Completion Waiter -- waits for a final match within a fixed budget."""

import enum
import logging
import threading
import time

from wicket._request import ResolutionResult

logger = logging.getLogger("wicket")

DEFAULT_RESOLVE_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 0.1


class Outcome(enum.Enum):
    RUNNING = "running"
    MATCHED = "matched"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class CompletionWaiter:
    """Samples the run state until it matches, times out or is cancelled.

    Never touches the session except to destroy it on the way out, which
    happens on every exit path.
    """

    def __init__(
        self,
        state,
        handle,
        timeout: float = DEFAULT_RESOLVE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel: threading.Event | None = None,
    ):
        self._state = state
        self._handle = handle
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._cancel = cancel
        self.outcome = Outcome.RUNNING

    def wait(self) -> ResolutionResult:
        deadline = time.monotonic() + self.timeout
        try:
            while True:
                if self._state.matched:
                    self.outcome = Outcome.MATCHED
                    break
                if self._cancel is not None and self._cancel.is_set():
                    self.outcome = Outcome.CANCELLED
                    logger.info("Resolution cancelled")
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self.outcome = Outcome.TIMED_OUT
                    logger.info(
                        "Session timeout after %.0fs", self.timeout
                    )
                    break
                self._state.wait_matched(min(self.poll_interval, remaining))
        finally:
            self._state.close()
            self._handle.destroy()
        # A match recorded just before close still counts
        if self.outcome is not Outcome.MATCHED and self._state.matched:
            self.outcome = Outcome.MATCHED
        return self._state.result()
