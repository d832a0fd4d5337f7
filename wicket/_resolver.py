"""Resolver -- the request resolution engine."""

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from wicket._classifier import DEFAULT_PASSTHROUGH_MARKERS, RequestClassifier
from wicket._client import ProxyClient
from wicket._driver import DEFAULT_USER_AGENT, SessionDriver
from wicket._request import ResolutionRequest, ResolutionResult
from wicket._response import Response, _decode_headers
from wicket._state import ResolutionState
from wicket._waiter import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RESOLVE_TIMEOUT,
    CompletionWaiter,
)

logger = logging.getLogger("wicket")


def _compile(pattern) -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)


def _default_session_factory():
    from wicket.session import PatchrightSession

    return PatchrightSession()


class Resolver:
    """Loads a URL in a rendering session until a final request shows up.

    ``intercept_url`` is the pattern of the request that ends a run;
    ``additional_urls`` are patterns of requests collected along the
    way.  Patterns use ``re.search`` semantics and may be strings or
    compiled patterns.

    Each ``resolve()`` call owns its own session, state and fetch pool,
    so one Resolver can serve concurrent calls.

    Example::

        resolver = Resolver(r"/final-redirect", [r"/api/token"])
        final, collected = resolver.resolve("https://example.com/")
    """

    def __init__(
        self,
        intercept_url,
        additional_urls=(),
        *,
        session_factory=None,
        client: ProxyClient | None = None,
        timeout: float = DEFAULT_RESOLVE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        user_agent: str = DEFAULT_USER_AGENT,
        block_images: bool = True,
        passthrough_markers=DEFAULT_PASSTHROUGH_MARKERS,
        max_fetch_workers: int = 8,
    ):
        self.intercept_url = _compile(intercept_url)
        self.additional_urls = tuple(_compile(p) for p in additional_urls)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.passthrough_markers = tuple(passthrough_markers)
        self.max_fetch_workers = max_fetch_workers
        self._client = client
        self._client_lock = threading.Lock()
        self._driver = SessionDriver(
            session_factory or _default_session_factory,
            user_agent=user_agent,
            block_images=block_images,
        )

    @property
    def client(self) -> ProxyClient:
        """Proxy client, created on first use."""
        with self._client_lock:
            if self._client is None:
                self._client = ProxyClient()
            return self._client

    def resolve(
        self,
        request,
        on_match=None,
        cancel: threading.Event | None = None,
    ) -> ResolutionResult:
        """Run one resolution.

        Args:
            request: ResolutionRequest (or plain URL) to load.
            on_match: called with every final or collected request as it
                is recorded, from the session's context.
            cancel: optional Event that ends the run early.

        Returns:
            ``(final, collected)``.  ``final`` is None when nothing
            matched the intercept pattern in time; ``collected`` holds
            whatever auxiliary requests were seen either way.

        Raises:
            SessionUnavailable: no session could be started.
        """
        if isinstance(request, str):
            request = ResolutionRequest(request)

        state = ResolutionState()
        executor = ThreadPoolExecutor(
            max_workers=self.max_fetch_workers,
            thread_name_prefix="wicket-proxy",
        )
        classifier = RequestClassifier(
            self.intercept_url,
            self.additional_urls,
            state,
            self.client,
            executor,
            on_match=on_match,
            passthrough_markers=self.passthrough_markers,
        )
        handle = None
        try:
            handle = self._driver.open(classifier)
            classifier.bind(handle)
            handle.load(request.url, dict(request.headers))
            waiter = CompletionWaiter(
                state,
                handle,
                timeout=self.timeout,
                poll_interval=self.poll_interval,
                cancel=cancel,
            )
            result = waiter.wait()
            logger.debug(
                "Resolution of %s ended: %s (%d collected)",
                request.url,
                waiter.outcome.value,
                len(result.collected),
            )
            return result
        finally:
            state.close()
            if handle is not None:
                handle.destroy()
            # In-flight fetches finish or are dropped; nobody reads them
            executor.shutdown(wait=False, cancel_futures=True)

    def intercept(self, request) -> Response:
        """Resolve, then send the final request through the proxy client.

        Falls back to sending *request* itself when the session produced
        no final request.  Collected requests are not returned here; use
        ``resolve()`` for those.

        Raises:
            SessionUnavailable: no session could be started.
            FetchFailed: the final request could not be sent.
        """
        if isinstance(request, str):
            request = ResolutionRequest(request)
        start_time = time.monotonic()
        final = self.resolve(request).final
        target = final or request
        resp = self.client.fetch(
            target.method,
            target.url,
            headers=dict(target.headers),
            body=target.body,
            timeout=target.timeout,
        )
        return Response(
            status_code=resp.status.as_int(),
            headers=_decode_headers(resp.headers),
            url=target.url,
            content=resp.bytes(),
            resolved=final is not None,
            elapsed=time.monotonic() - start_time,
        )
