"""ResolutionState -- result state shared by the classifier and the waiter."""

import threading

from wicket._request import ResolutionRequest, ResolutionResult


class ResolutionState:
    """Final match, collected requests and the open/closed flag of one run.

    Written from the session's interception context, read by the
    waiter.  All fields are guarded by one lock; the match is also
    published through an Event so the waiter can sleep on it.  Once
    closed, nothing more is recorded.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._matched = threading.Event()
        self._final: ResolutionRequest | None = None
        self._collected: list[ResolutionRequest] = []
        self._closed = False

    @property
    def matched(self) -> bool:
        return self._matched.is_set()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def record_final(self, request: ResolutionRequest) -> bool:
        """Record the final request. First match wins; False if ignored."""
        with self._lock:
            if self._closed or self._final is not None:
                return False
            self._final = request
        self._matched.set()
        return True

    def record_auxiliary(self, request: ResolutionRequest) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._collected.append(request)
            return True

    def wait_matched(self, timeout: float) -> bool:
        return self._matched.wait(timeout)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def result(self) -> ResolutionResult:
        with self._lock:
            return ResolutionResult(self._final, tuple(self._collected))
