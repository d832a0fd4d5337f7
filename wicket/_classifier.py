"""Request Classifier & Proxy -- decides the fate of every session request."""

import logging
from urllib.parse import urlparse

from wicket._request import ResolutionRequest
from wicket._response import empty_image_response, synthesize
from wicket.session._base import Decision

logger = logging.getLogger("wicket")

# Never shown anywhere, so never fetched
_BLOCKED_SUFFIXES = (".jpg", ".png", ".webp", ".jpeg", ".webm", ".mp4")

# Challenge widgets fingerprint the exact browser request; the headers the
# session reports are incomplete, so these are never proxied.
DEFAULT_PASSTHROUGH_MARKERS = (
    "recaptcha",
    "hcaptcha",
    "challenges.cloudflare.com",
)

_PROXIED_METHODS = ("GET", "POST")


def _is_blocked_file(url: str) -> bool:
    path = urlparse(url).path.lower()
    return path.endswith(_BLOCKED_SUFFIXES) or path.endswith("/favicon.ico")


class RequestClassifier:
    """Request handler for one resolution run.

    Called by the session once per outgoing request.  Decision order,
    first match wins:

    1. intercept pattern: notify, record the final request, tear the
       session down, deny
    2. auxiliary patterns: notify and record the request (also applies
       on top of 1, recorded before the final request)
    3. image/video files and favicons: empty image, no fetch
    4. challenge endpoints: session fetches natively
    5. GET/POST: fetched by the proxy client on a worker thread
    6. anything else: session fetches natively
    """

    def __init__(
        self,
        intercept_url,
        additional_urls,
        state,
        client,
        executor,
        on_match=None,
        passthrough_markers=DEFAULT_PASSTHROUGH_MARKERS,
    ):
        self._intercept_url = intercept_url
        self._additional_urls = tuple(additional_urls)
        self._state = state
        self._client = client
        self._executor = executor
        self._on_match = on_match
        self._passthrough_markers = tuple(passthrough_markers)
        self._handle = None

    def bind(self, handle) -> None:
        """Attach the session handle torn down on a final match."""
        self._handle = handle

    def __call__(self, request) -> Decision:
        if self._state.closed:
            return Decision.abort()

        url = request.url
        final = None
        auxiliary = None

        # Observers run before anything is recorded: recording the final
        # request wakes the waiter, which ends the run.
        if self._intercept_url.search(url):
            final = ResolutionRequest.from_intercepted(request)
            self._notify(final)

        if any(p.search(url) for p in self._additional_urls):
            auxiliary = ResolutionRequest.from_intercepted(request)
            self._notify(auxiliary)

        if auxiliary is not None and self._state.record_auxiliary(auxiliary):
            logger.debug("Collected request: %s", url)

        if final is not None:
            if self._state.record_final(final):
                logger.info("Session request finished: %s", url)
            self._teardown()
            return Decision.abort()

        return self.classify(request)

    def classify(self, request) -> Decision:
        """Steps 3-6: serve, pass through, or proxy a non-matching request."""
        url = request.url

        if _is_blocked_file(url):
            return Decision.fulfill(empty_image_response())

        if any(marker in url for marker in self._passthrough_markers):
            logger.debug("Challenge passthrough: %s", url)
            return Decision.continue_()

        if request.method.upper() in _PROXIED_METHODS:
            try:
                pending = self._executor.submit(self._proxy, request)
            except RuntimeError:
                # Executor shut down: the run is over
                return Decision.abort()
            return Decision.defer(pending)

        return Decision.continue_()

    def _proxy(self, request) -> Decision:
        if self._state.closed:
            return Decision.abort()
        method = request.method.upper()
        try:
            resp = self._client.fetch(
                method,
                request.url,
                headers=request.headers,
                body=request.body if method == "POST" else None,
            )
            return Decision.fulfill(synthesize(resp))
        except Exception:
            logger.debug(
                "Proxy fetch failed for %s, denying",
                request.url,
                exc_info=True,
            )
            return Decision.abort()

    def _notify(self, request: ResolutionRequest) -> None:
        if self._on_match is None:
            return
        try:
            self._on_match(request)
        except Exception:
            logger.warning(
                "Request callback failed for %s",
                request.url,
                exc_info=True,
            )

    def _teardown(self) -> None:
        self._state.close()
        if self._handle is not None:
            self._handle.destroy()
