"""ProxyClient -- the real HTTP client behind substituted session requests."""

import datetime
import logging
import platform
import subprocess

import rnet.blocking
from rnet import CertStore, Emulation, Method

from wicket._errors import FetchFailed

logger = logging.getLogger("wicket")

_METHOD_MAP: dict[str, Method] = {
    "GET": Method.GET,
    "POST": Method.POST,
    "PUT": Method.PUT,
    "DELETE": Method.DELETE,
    "HEAD": Method.HEAD,
    "OPTIONS": Method.OPTIONS,
    "PATCH": Method.PATCH,
    "TRACE": Method.TRACE,
}


def _to_method(method: str) -> Method:
    """Convert a string HTTP method to rnet Method enum."""
    try:
        return _METHOD_MAP[method.upper()]
    except KeyError:
        raise ValueError(f"Unknown HTTP method: {method}") from None


def _load_system_cert_store() -> CertStore | None:
    """Load system CA certificates into an rnet CertStore."""
    try:
        if platform.system() == "Darwin":
            result = subprocess.run(
                [
                    "security",
                    "find-certificate",
                    "-a",
                    "-p",
                    "/System/Library/Keychains/"
                    "SystemRootCertificates.keychain",
                ],
                capture_output=True,
            )
            if result.returncode == 0 and result.stdout:
                return CertStore.from_pem_stack(result.stdout)
        elif platform.system() == "Linux":
            for path in [
                "/etc/ssl/certs/ca-certificates.crt",
                "/etc/pki/tls/certs/ca-bundle.crt",
                "/etc/ssl/ca-bundle.pem",
            ]:
                try:
                    with open(path, "rb") as f:
                        return CertStore.from_pem_stack(f.read())
                except FileNotFoundError:
                    continue
    except Exception:
        logger.debug(
            "Failed to load system certs", exc_info=True
        )
    return None


_SYSTEM_CERT_STORE = _load_system_cert_store()

# Matches the Chrome version of DEFAULT_USER_AGENT
DEFAULT_EMULATION = Emulation.Chrome145

DEFAULT_CONNECT_TIMEOUT = datetime.timedelta(seconds=10)
DEFAULT_TIMEOUT = datetime.timedelta(seconds=30)


def _normalize_timeout(val) -> datetime.timedelta:
    if isinstance(val, datetime.timedelta):
        return val
    return datetime.timedelta(seconds=float(val))


class ProxyClient:
    """Performs session requests outside the browser.

    Wraps a single ``rnet.blocking.Client`` with Chrome TLS emulation.
    Headers are sent exactly as the session observed them; no client-level
    defaults are added.  Redirects are returned to the caller instead of
    followed, so the session sees every hop.

    Safe to share between worker threads.
    """

    def __init__(
        self,
        emulation: Emulation | None = None,
        connect_timeout: datetime.timedelta | float | int | None = None,
        timeout: datetime.timedelta | float | int | None = None,
        proxy: str | None = None,
    ):
        self.emulation = emulation or DEFAULT_EMULATION
        self.connect_timeout = (
            _normalize_timeout(connect_timeout)
            if connect_timeout is not None
            else DEFAULT_CONNECT_TIMEOUT
        )
        self.timeout = (
            _normalize_timeout(timeout)
            if timeout is not None
            else DEFAULT_TIMEOUT
        )
        self._proxy = None
        if proxy:
            from rnet import Proxy

            self._proxy = Proxy.all(proxy)
        self._client = rnet.blocking.Client(**self._build_client_kwargs())
        logger.debug(
            "Proxy client created with emulation=%s, timeout=%s",
            self.emulation,
            self.timeout,
        )

    def _build_client_kwargs(self) -> dict:
        # The session owns cookies; a client-side jar would send them twice.
        kwargs = {
            "emulation": self.emulation,
            "connect_timeout": self.connect_timeout,
            "timeout": self.timeout,
            "cookie_store": False,
        }
        if _SYSTEM_CERT_STORE is not None:
            kwargs["verify"] = _SYSTEM_CERT_STORE
        if self._proxy is not None:
            kwargs["proxies"] = [self._proxy]
        return kwargs

    def fetch(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
        timeout: datetime.timedelta | float | int | None = None,
    ):
        """Send one request and return the raw rnet response.

        Raises FetchFailed on any transport error.
        """
        m = _to_method(method)
        kwargs: dict = {}
        if headers:
            kwargs["headers"] = dict(headers)
        if body:
            kwargs["body"] = body
        if timeout is not None:
            kwargs["timeout"] = _normalize_timeout(timeout)
        logger.debug("%s %s (proxy)", method, url)
        try:
            return self._client.request(m, url, **kwargs)
        except Exception as e:
            raise FetchFailed(url, str(e)) from e
