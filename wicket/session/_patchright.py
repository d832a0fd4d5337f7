"""Patchright-backed rendering session (real Chrome).

The patchright async API runs on a dedicated thread with its own event
loop.  Route handling, fulfills and browser teardown all happen on that
loop; other threads only schedule work onto it.  Each route is handled
in its own task, so a deferred decision waiting on a slow proxy fetch
never holds up the session's other requests.
"""

import asyncio
import logging
import threading

from wicket._errors import SessionUnavailable
from wicket.session._base import (
    Action,
    CertificateError,
    Decision,
    InterceptedRequest,
    RenderingSession,
)

logger = logging.getLogger("wicket")

# rnet hands back a decompressed body while the headers keep the original
# Content-Encoding. Forwarding both makes the browser decompress twice.
_DROPPED_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "content-type"}
)


def _fulfill_headers(response) -> dict[str, str]:
    """Headers to forward with a synthetic response (Content-Type is
    passed separately)."""
    return {
        k: v for k, v in response.headers.items()
        if k.lower() not in _DROPPED_HEADERS
    }


class PatchrightSession(RenderingSession):
    """One Chrome browser, one context, one page.

    Launches system Chrome through patchright when ``load()`` is called
    and closes it on ``destroy()``.  A session is single-use: it loads
    one URL and is then destroyed.
    """

    def __init__(
        self,
        headless: bool = True,
        channel: str | None = "chrome",
        launch_timeout: float = 30.0,
        extra_args: list[str] | None = None,
    ):
        self._headless = headless
        self._channel = channel
        self._launch_timeout = launch_timeout
        self._extra_args = list(extra_args or [])
        self._scripting_enabled = True
        self._storage_enabled = True
        self._user_agent: str | None = None
        self._block_images = False
        self._request_handler = None
        self._certificate_handler = None
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closing: asyncio.Event | None = None
        self._page = None
        self._ready = threading.Event()
        self._error: BaseException | None = None
        self._stopped = False
        self._destroyed = False
        self._load_headers: dict[str, str] = {}

    # ------------------------------------------------------------------
    # RenderingSession interface
    # ------------------------------------------------------------------

    def configure(
        self,
        scripting_enabled: bool,
        storage_enabled: bool,
        client_identifier: str,
        block_images: bool,
    ) -> None:
        self._scripting_enabled = scripting_enabled
        self._storage_enabled = storage_enabled
        self._user_agent = client_identifier
        self._block_images = block_images
        if not storage_enabled:
            logger.debug(
                "Chrome keeps DOM storage enabled; storage_enabled=False "
                "has no effect"
            )

    def on_before_request(self, handler) -> None:
        self._request_handler = handler

    def on_certificate_error(self, handler) -> None:
        self._certificate_handler = handler

    def load(self, url: str, headers: dict[str, str]) -> None:
        """Launch the browser and start navigating to *url*.

        Returns once the page is ready and navigation has been issued;
        does not wait for the page to load.  Raises SessionUnavailable
        if the browser cannot be started.
        """
        with self._lock:
            if self._destroyed:
                raise SessionUnavailable("session already destroyed", url)
            if self._thread is not None:
                raise RuntimeError("PatchrightSession loads at most one URL")
            self._load_headers = dict(headers or {})
            self._thread = threading.Thread(
                target=self._run,
                args=(url,),
                name="wicket-session",
                daemon=True,
            )
            self._thread.start()

        if not self._ready.wait(self._launch_timeout):
            self.destroy()
            raise SessionUnavailable(
                f"browser did not start within {self._launch_timeout:.0f}s",
                url,
            )
        if self._error is not None:
            raise SessionUnavailable(
                str(self._error) or type(self._error).__name__, url
            ) from self._error

    def stop(self) -> None:
        """Stop in-flight loads; later requests are aborted."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            loop = self._loop
        if loop is not None:
            try:
                asyncio.run_coroutine_threadsafe(self._stop_loading(), loop)
            except RuntimeError:
                pass  # loop already closed

    def destroy(self) -> None:
        """Close the browser. Safe from any thread, any number of times.

        Off the session thread this waits for the browser to close, even
        when teardown was first requested from a route handler.
        """
        with self._lock:
            first = not self._destroyed
            self._destroyed = True
            self._stopped = True
            loop, closing = self._loop, self._closing
        if first and loop is not None and closing is not None:
            try:
                loop.call_soon_threadsafe(closing.set)
            except RuntimeError:
                pass  # loop already closed
        self.join()
        if first:
            logger.debug("Browser session destroyed")

    def join(self, timeout: float | None = None) -> None:
        """Wait for the session thread to finish closing the browser.

        A no-op before ``load()`` and on the session thread itself, where
        the loop finishes teardown once the route handler returns.
        """
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        if timeout is None:
            timeout = self._launch_timeout
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Browser session still closing after %.0fs", timeout)

    # ------------------------------------------------------------------
    # Session thread
    # ------------------------------------------------------------------

    def _launch_args(self) -> list[str]:
        args = ["--disable-blink-features=AutomationControlled"]
        if self._block_images:
            args.append("--blink-settings=imagesEnabled=false")
        args.extend(self._extra_args)
        return args

    def _proceed_on_certificate_error(self, url: str) -> bool:
        """Ask the handler once whether certificate errors are ignored.

        Chrome exposes no per-error hook through patchright, so the
        answer applies to the whole browser context.
        """
        if self._certificate_handler is None:
            return False
        try:
            return bool(
                self._certificate_handler(
                    CertificateError(url=url, reason="context policy")
                )
            )
        except Exception:
            logger.debug("Certificate handler failed", exc_info=True)
            return False

    def _fail(self, error: BaseException) -> None:
        self._error = error
        self._ready.set()

    def _run(self, url: str) -> None:
        asyncio.run(self._main(url))

    async def _main(self, url: str) -> None:
        self._closing = asyncio.Event()
        self._loop = asyncio.get_running_loop()

        try:
            from patchright.async_api import async_playwright
        except ImportError:
            self._fail(ImportError(
                "patchright is required for browser sessions. "
                "Install with: pip install wicket-py[browser]"
            ))
            return

        try:
            async with async_playwright() as pw:
                browser = await pw.chromium.launch(
                    channel=self._channel,
                    headless=self._headless,
                    args=self._launch_args(),
                )
                try:
                    context = await browser.new_context(
                        user_agent=self._user_agent,
                        java_script_enabled=self._scripting_enabled,
                        ignore_https_errors=(
                            self._proceed_on_certificate_error(url)
                        ),
                    )
                    page = await context.new_page()
                    await page.route("**/*", self._on_route)
                    self._page = page
                    self._ready.set()
                    logger.info(
                        "Browser session launched (headless=%s)",
                        self._headless,
                    )

                    navigation = asyncio.ensure_future(
                        self._navigate(page, url)
                    )
                    # destroy() may have run before the loop was visible
                    if self._destroyed:
                        self._closing.set()
                    await self._closing.wait()
                    navigation.cancel()
                finally:
                    self._page = None
                    try:
                        await browser.close()
                    except Exception:
                        logger.debug("Browser close failed", exc_info=True)
        except Exception as e:
            if not self._ready.is_set():
                self._fail(e)
            else:
                logger.debug("Browser session failed", exc_info=True)
        finally:
            self._ready.set()

    async def _navigate(self, page, url: str) -> None:
        # No navigation timeout: the resolver owns the overall deadline.
        try:
            await page.goto(url, wait_until="commit", timeout=0)
        except Exception:
            logger.debug(
                "Session navigation error for %s", url, exc_info=True
            )

    async def _stop_loading(self) -> None:
        page = self._page
        if page is None:
            return
        try:
            await page.evaluate("window.stop()")
        except Exception:
            logger.debug("window.stop() failed", exc_info=True)

    async def _on_route(self, route) -> None:
        request = route.request
        if self._stopped:
            await self._settle(route, Decision.abort())
            return
        if self._request_handler is None:
            await self._settle(route, Decision.continue_())
            return

        try:
            headers = await request.all_headers()
        except Exception:
            headers = dict(request.headers)
        headers = {k: v for k, v in headers.items() if not k.startswith(":")}

        # Caller headers apply to the initial navigation only
        override = None
        is_navigation = request.is_navigation_request()
        if is_navigation and self._load_headers:
            headers.update(self._load_headers)
            self._load_headers = {}
            override = headers

        intercepted = InterceptedRequest(
            url=request.url,
            method=request.method,
            headers=headers,
            body=request.post_data_buffer,
            resource_type=request.resource_type,
            is_navigation=is_navigation,
        )
        try:
            decision = self._request_handler(intercepted)
        except Exception:
            logger.warning(
                "Request handler failed for %s", request.url, exc_info=True
            )
            decision = Decision.abort()

        if decision.action is Action.DEFER:
            pending = decision.pending
            try:
                decision = await asyncio.wrap_future(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                decision = Decision.abort()
            except Exception:
                logger.debug(
                    "Deferred decision failed for %s",
                    request.url,
                    exc_info=True,
                )
                decision = Decision.abort()

        await self._settle(route, decision, override)

    async def _settle(
        self,
        route,
        decision: Decision,
        headers: dict[str, str] | None = None,
    ) -> None:
        # Nothing but aborts once the session is going away
        if self._stopped and decision.action is not Action.ABORT:
            decision = Decision.abort()
        try:
            if decision.action is Action.FULFILL:
                response = decision.response
                body = await asyncio.get_running_loop().run_in_executor(
                    None, response.read
                )
                await route.fulfill(
                    status=response.status,
                    headers=_fulfill_headers(response),
                    content_type=response.content_type_header,
                    body=body,
                )
            elif decision.action is Action.CONTINUE:
                if headers:
                    await route.continue_(headers=headers)
                else:
                    await route.continue_()
            else:
                await route.abort()
        except Exception:
            logger.debug(
                "Could not settle route for %s",
                route.request.url,
                exc_info=True,
            )
