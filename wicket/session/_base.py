"""The rendering-session interface consumed by the resolver.

Any scriptable browsing backend can drive a resolution run by
subclassing ``RenderingSession``.  The backend calls the request
handler once per outgoing request, before sending it, and applies the
returned ``Decision``.
"""

import enum
from concurrent.futures import Future
from dataclasses import dataclass, field

from wicket._response import SyntheticResponse


@dataclass(frozen=True)
class InterceptedRequest:
    """A request the session is about to send."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    resource_type: str = ""
    is_navigation: bool = False


@dataclass(frozen=True)
class CertificateError:
    """A TLS certificate problem reported by the session."""

    url: str
    reason: str = ""


class Action(enum.Enum):
    CONTINUE = "continue"
    FULFILL = "fulfill"
    ABORT = "abort"
    DEFER = "defer"


@dataclass(frozen=True)
class Decision:
    """What the session should do with one intercepted request.

    ``DEFER`` carries a future that resolves to a ``FULFILL`` or
    ``ABORT`` decision; the backend must keep serving other requests
    while it waits.
    """

    action: Action
    response: SyntheticResponse | None = None
    pending: Future | None = None

    @classmethod
    def continue_(cls) -> "Decision":
        return cls(Action.CONTINUE)

    @classmethod
    def abort(cls) -> "Decision":
        return cls(Action.ABORT)

    @classmethod
    def fulfill(cls, response: SyntheticResponse) -> "Decision":
        return cls(Action.FULFILL, response=response)

    @classmethod
    def defer(cls, pending: Future) -> "Decision":
        return cls(Action.DEFER, pending=pending)


class RenderingSession:
    """A scriptable browsing context that reports its requests.

    Implementations must tolerate ``stop()`` and ``destroy()`` being
    called more than once and from any thread, including from inside
    the request handler.
    """

    def configure(
        self,
        scripting_enabled: bool,
        storage_enabled: bool,
        client_identifier: str,
        block_images: bool,
    ) -> None:
        raise NotImplementedError

    def load(self, url: str, headers: dict[str, str]) -> None:
        raise NotImplementedError

    def on_before_request(self, handler) -> None:
        """Register ``handler(InterceptedRequest) -> Decision``."""
        raise NotImplementedError

    def on_certificate_error(self, handler) -> None:
        """Register ``handler(CertificateError) -> bool`` (True proceeds)."""
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def destroy(self) -> None:
        raise NotImplementedError

    def join(self, timeout: float | None = None) -> None:
        """Wait for teardown started by ``destroy()`` to finish.

        Optional; backends that destroy synchronously need not override.
        Must return immediately when called from the session's own thread.
        """
