"""wicket -- resolve anti-bot challenges by driving a real browser session."""

import logging
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wicket-py")
except PackageNotFoundError:
    __version__ = "0.0.0"

from wicket._client import ProxyClient
from wicket._driver import DEFAULT_USER_AGENT, SessionDriver, SessionHandle
from wicket._errors import (
    FetchFailed,
    SessionUnavailable,
    WicketError,
    WicketHTTPError,
)
from wicket._request import (
    DEFAULT_REQUEST_TIMEOUT,
    ResolutionRequest,
    ResolutionResult,
)
from wicket._resolver import Resolver
from wicket._response import Response, SyntheticResponse, parse_content_type
from wicket._waiter import Outcome

__all__ = [
    "__version__",
    "Resolver",
    "ResolutionRequest",
    "ResolutionResult",
    "Response",
    "SyntheticResponse",
    "ProxyClient",
    "SessionDriver",
    "SessionHandle",
    "Outcome",
    "WicketError",
    "WicketHTTPError",
    "SessionUnavailable",
    "FetchFailed",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_USER_AGENT",
    "parse_content_type",
    "resolve",
]

# Silent by default; callers opt in via logging.getLogger("wicket").setLevel(...)
logging.getLogger("wicket").addHandler(logging.NullHandler())


def resolve(
    url: str,
    intercept_url,
    additional_urls=(),
    headers: dict[str, str] | None = None,
    on_match=None,
    **kwargs,
) -> ResolutionResult:
    """Module-level convenience: one-shot resolution run."""
    resolver = Resolver(intercept_url, additional_urls, **kwargs)
    return resolver.resolve(
        ResolutionRequest(url, headers or {}), on_match=on_match
    )
