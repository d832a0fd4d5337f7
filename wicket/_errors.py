"""Typed exceptions for wicket."""


class WicketError(Exception):
    """Base exception for all wicket errors."""


class SessionUnavailable(WicketError):
    """A rendering session could not be created or started."""

    def __init__(self, reason: str, url: str | None = None):
        self.reason = reason
        self.url = url
        msg = f"Rendering session unavailable: {reason}"
        if url is not None:
            msg += f" (loading {url})"
        super().__init__(msg)


class FetchFailed(WicketError):
    """The proxy HTTP client failed to perform a request."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Fetch failed for {url}: {reason}")


class WicketHTTPError(WicketError):
    """HTTP error raised by raise_for_status()."""

    def __init__(self, status_code: int, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(
            f"HTTP {status_code} at {url}"
        )
