"""Shared mock objects and factories for wicket tests."""

import threading
import time
from concurrent.futures import CancelledError

from wicket._client import DEFAULT_CONNECT_TIMEOUT, DEFAULT_EMULATION, DEFAULT_TIMEOUT
from wicket.session import Action, Decision, InterceptedRequest, RenderingSession

# ---------------------------------------------------------------------------
# Mock rnet types
# ---------------------------------------------------------------------------


class MockStatus:
    def __init__(self, code: int):
        self._code = code

    def as_int(self) -> int:
        return self._code

    def is_success(self) -> bool:
        return 200 <= self._code < 300


class MockHeaderMap:
    """Mock rnet HeaderMap with bytes keys and bytes values.

    Mirrors rnet's real HeaderMap behavior:
    - keys() returns unique bytes keys
    - get()/[] returns first value only
    - get_all() returns list of all values for a key

    Pass a list of pairs to repeat a header.
    """

    def __init__(self, data=None):
        self._raw: dict[bytes, list[bytes]] = {}
        items = data.items() if isinstance(data, dict) else (data or [])
        for k, v in items:
            bk = k.lower().encode("ascii")
            if bk not in self._raw:
                self._raw[bk] = []
            self._raw[bk].append(v.encode("utf-8"))

    def keys(self):
        return list(self._raw.keys())

    def __getitem__(self, key):
        if isinstance(key, str):
            key = key.lower().encode("ascii")
        return self._raw[key][0]

    def get(self, key):
        try:
            return self[key]
        except KeyError:
            return None

    def get_all(self, key):
        if isinstance(key, str):
            key = key.lower().encode("ascii")
        return list(self._raw.get(key, []))


class MockResponse:
    def __init__(
        self,
        status_code: int = 200,
        headers=None,
        body: str | bytes = "",
    ):
        self.status = MockStatus(status_code)
        self.headers = MockHeaderMap(headers)
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self.streamed = False

    def bytes(self):
        return self._body

    def text(self):
        return self._body.decode("utf-8")

    def stream(self):
        self.streamed = True
        half = len(self._body) // 2
        return iter([self._body[:half], self._body[half:]])


class MockClient:
    """Mock rnet blocking client that returns responses from a sequence.

    Entries may be a response, an Exception (raised), or a dict keyed by
    URL substring for order-independent lookups.
    """

    def __init__(self, responses, delays: dict[str, float] | None = None):
        self._responses = responses
        self._delays = delays or {}
        self._index = 0
        self._lock = threading.Lock()
        self.request_count = 0
        self.last_kwargs: dict = {}
        self.request_log: list[tuple] = []

    def request(self, method, url, **kwargs):
        for fragment, delay in self._delays.items():
            if fragment in url:
                time.sleep(delay)
        with self._lock:
            self.last_kwargs = kwargs
            resp = self._responses[
                min(self._index, len(self._responses) - 1)
            ]
            self._index += 1
            self.request_count += 1
            self.request_log.append((method, url, kwargs))
        if isinstance(resp, Exception):
            raise resp
        return resp


# ---------------------------------------------------------------------------
# Mock rendering session
# ---------------------------------------------------------------------------


class MockRenderingSession(RenderingSession):
    """Scripted session that attempts a fixed list of requests.

    Requests are emitted from ``load()`` (or a background thread when
    ``threaded=True``), stopping as soon as the session is destroyed.
    Deferred decisions are waited on unless ``await_deferred=False``.
    """

    def __init__(
        self,
        script=(),
        threaded: bool = False,
        delay: float = 0.0,
        await_deferred: bool = True,
        fail_load: Exception | None = None,
    ):
        self.script = [
            InterceptedRequest(url=s) if isinstance(s, str) else s
            for s in script
        ]
        self.threaded = threaded
        self.delay = delay
        self.await_deferred = await_deferred
        self.fail_load = fail_load
        self.configured: dict | None = None
        self.handler = None
        self.certificate_handler = None
        self.loaded: list[tuple[str, dict]] = []
        self.observed: list[str] = []
        self.decisions: list[tuple[str, Decision]] = []
        self.pending: list = []
        self.stop_calls = 0
        self.destroy_calls = 0
        self.join_calls = 0
        self._destroyed = threading.Event()
        self._thread: threading.Thread | None = None

    def configure(
        self,
        scripting_enabled,
        storage_enabled,
        client_identifier,
        block_images,
    ):
        self.configured = {
            "scripting_enabled": scripting_enabled,
            "storage_enabled": storage_enabled,
            "client_identifier": client_identifier,
            "block_images": block_images,
        }

    def on_before_request(self, handler):
        self.handler = handler

    def on_certificate_error(self, handler):
        self.certificate_handler = handler

    def load(self, url, headers):
        if self.fail_load is not None:
            raise self.fail_load
        self.loaded.append((url, dict(headers)))
        if self.threaded:
            self._thread = threading.Thread(target=self._emit, daemon=True)
            self._thread.start()
        else:
            self._emit()

    def _emit(self):
        for request in self.script:
            if self.delay:
                time.sleep(self.delay)
            if self._destroyed.is_set():
                return
            self.observed.append(request.url)
            decision = self.handler(request)
            if decision.action is Action.DEFER:
                self.pending.append(decision.pending)
                if not self.await_deferred:
                    continue
                try:
                    decision = decision.pending.result(timeout=5)
                except CancelledError:
                    decision = Decision.abort()
            self.decisions.append((request.url, decision))

    def stop(self):
        self.stop_calls += 1

    def destroy(self):
        self.destroy_calls += 1
        self._destroyed.set()

    def join(self, timeout: float | None = 5.0):
        self.join_calls += 1
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(5.0 if timeout is None else timeout)

    def decision_for(self, url_fragment: str) -> Decision:
        for url, decision in self.decisions:
            if url_fragment in url:
                return decision
        raise KeyError(url_fragment)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_proxy_client(responses, delays=None):
    """Create a ProxyClient backed by a MockClient instead of rnet."""
    from wicket._client import ProxyClient

    client = ProxyClient.__new__(ProxyClient)
    client.emulation = DEFAULT_EMULATION
    client.connect_timeout = DEFAULT_CONNECT_TIMEOUT
    client.timeout = DEFAULT_TIMEOUT
    client._proxy = None
    mock = MockClient(responses, delays=delays)
    client._client = mock
    return client, mock


def make_resolver(
    script,
    responses=None,
    intercept_url=r"/final-redirect",
    additional_urls=(r"/api/token",),
    session_kwargs=None,
    **resolver_kwargs,
):
    """Create a Resolver wired to a MockRenderingSession and MockClient.

    Returns ``(resolver, session, mock_client)``.
    """
    from wicket import Resolver

    session = MockRenderingSession(script, **(session_kwargs or {}))
    client, mock = make_proxy_client(
        responses or [MockResponse(200, {"content-type": "text/html"}, "ok")]
    )
    resolver_kwargs.setdefault("timeout", 1.0)
    resolver_kwargs.setdefault("poll_interval", 0.01)
    resolver = Resolver(
        intercept_url,
        additional_urls,
        session_factory=lambda: session,
        client=client,
        **resolver_kwargs,
    )
    return resolver, session, mock
