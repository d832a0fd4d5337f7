"""ResolutionRequest and ResolutionResult."""

import datetime
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, NamedTuple

# Requests rebuilt from the session may trigger slow downstream fetches.
DEFAULT_REQUEST_TIMEOUT = datetime.timedelta(minutes=10)


@dataclass(frozen=True)
class ResolutionRequest:
    """An HTTP request going into, or coming out of, a resolution run.

    Built either by the caller (the URL to load) or from a request the
    rendering session attempted.  Headers are stored read-only.
    """

    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    method: str = "GET"
    body: bytes | None = None
    timeout: datetime.timedelta | None = None

    def __post_init__(self):
        object.__setattr__(
            self, "headers", MappingProxyType(dict(self.headers))
        )
        object.__setattr__(self, "method", self.method.upper())

    def __hash__(self) -> int:
        # Headers are a read-only mapping, which does not hash
        return hash((self.url, self.method, self.body))

    @classmethod
    def from_intercepted(cls, request) -> "ResolutionRequest":
        """Rebuild a request the session attempted.

        Only URL and headers survive: the session has already applied
        the body to its own navigation, so the rebuilt request carries
        none.
        """
        method = "POST" if request.method.upper() == "POST" else "GET"
        return cls(
            url=request.url,
            headers=dict(request.headers),
            method=method,
            timeout=DEFAULT_REQUEST_TIMEOUT,
        )

    def __repr__(self) -> str:
        return f"<ResolutionRequest [{self.method}] {self.url}>"


class ResolutionResult(NamedTuple):
    """Outcome of one resolution run.

    ``final`` is set only when the intercept pattern matched before the
    run ended; ``collected`` holds every auxiliary match in the order
    the session attempted them.
    """

    final: ResolutionRequest | None
    collected: tuple[ResolutionRequest, ...] = ()

    @property
    def matched(self) -> bool:
        return self.final is not None
