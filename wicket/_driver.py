"""Session Driver -- creates, configures, loads and destroys sessions."""

import logging
import threading

from wicket._errors import SessionUnavailable

logger = logging.getLogger("wicket")

# Chrome 145 on Windows, matching the proxy client's rnet emulation
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/145.0.0.0 Safari/537.36"
)


def _always_proceed(error) -> bool:
    logger.debug("Ignoring certificate error for %s", error.url)
    return True


class SessionHandle:
    """Exclusive owner of one rendering session.

    Loads at most one URL.  ``destroy()`` releases the session exactly
    once; later calls are no-ops.  Thread-safe.
    """

    def __init__(self, session):
        self._session = session
        self._lock = threading.Lock()
        self._loaded = False
        self._destroyed = False

    @property
    def session(self):
        return self._session

    @property
    def destroyed(self) -> bool:
        with self._lock:
            return self._destroyed

    def load(self, url: str, headers: dict[str, str] | None = None) -> None:
        with self._lock:
            if self._destroyed:
                raise RuntimeError("Session handle already destroyed")
            if self._loaded:
                raise RuntimeError("Session handle loads at most one URL")
            self._loaded = True
        # Outside the lock: sessions may call back into destroy() while loading
        logger.info("Initial session request: %s", url)
        self._session.load(url, dict(headers or {}))

    def destroy(self) -> bool:
        """Stop and destroy the session. Returns False if already done.

        Every call waits for the session to finish closing, unless made
        from the session's own thread.
        """
        with self._lock:
            first = not self._destroyed
            self._destroyed = True
        if first:
            try:
                self._session.stop()
            except Exception:
                logger.debug("Session stop failed", exc_info=True)
            try:
                self._session.destroy()
            except Exception:
                logger.debug("Session destroy failed", exc_info=True)
            logger.debug("Destroyed session")
        try:
            self._session.join()
        except Exception:
            logger.debug("Session join failed", exc_info=True)
        return first


class SessionDriver:
    """Builds configured sessions from a factory.

    Every session gets scripting and storage enabled, the fixed client
    identifier, and image loading disabled (images are rarely needed to
    pass a challenge and are one more thing for its scripts to trip on).
    """

    def __init__(
        self,
        session_factory,
        user_agent: str = DEFAULT_USER_AGENT,
        block_images: bool = True,
    ):
        self._session_factory = session_factory
        self.user_agent = user_agent
        self.block_images = block_images

    def open(self, on_request, on_certificate_error=None) -> SessionHandle:
        """Create and configure a session without loading anything."""
        try:
            session = self._session_factory()
        except SessionUnavailable:
            raise
        except Exception as e:
            raise SessionUnavailable(str(e) or type(e).__name__) from e
        if session is None:
            raise SessionUnavailable("session factory returned no session")

        try:
            session.configure(
                scripting_enabled=True,
                storage_enabled=True,
                client_identifier=self.user_agent,
                block_images=self.block_images,
            )
            session.on_before_request(on_request)
            session.on_certificate_error(
                on_certificate_error or _always_proceed
            )
        except Exception as e:
            SessionHandle(session).destroy()
            reason = str(e) or type(e).__name__
            raise SessionUnavailable(
                f"session configuration failed: {reason}"
            ) from e
        return SessionHandle(session)

    def start(
        self,
        url: str,
        headers: dict[str, str] | None,
        on_request,
        on_certificate_error=None,
    ) -> SessionHandle:
        """Open a session and load *url* in it."""
        handle = self.open(on_request, on_certificate_error)
        try:
            handle.load(url, headers)
        except BaseException:
            handle.destroy()
            raise
        return handle

    def destroy(self, handle: SessionHandle) -> bool:
        return handle.destroy()
