"""Response translation between the proxy client and the session."""

import json
from typing import Any, Iterable, Iterator

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def parse_content_type(value: str | None) -> tuple[str, str | None]:
    """Split a Content-Type header into ``(content_type, charset)``.

    ``text/html; charset=UTF-8`` gives ``("text/html", "UTF-8")``.  A
    missing or blank header gives the binary default and no charset.
    Never raises: anything unparseable falls back to the default.
    """
    if not value or not value.strip():
        return DEFAULT_CONTENT_TYPE, None
    content_type, _, params = value.partition(";")
    content_type = content_type.strip() or DEFAULT_CONTENT_TYPE
    charset = None
    for param in params.split(";"):
        key, _, val = param.partition("=")
        if key.strip().lower() == "charset":
            val = val.strip().strip('"').strip()
            if val:
                charset = val
    return content_type, charset


def _decode_headers(header_map) -> dict[str, str]:
    """Decode rnet HeaderMap to lowercase string dict.

    Multi-value headers are joined with ", " except Set-Cookie, whose
    values are joined with newlines (Playwright splits them back into
    separate cookies on fulfill).
    """
    result: dict[str, str] = {}
    for raw_key in header_map.keys():
        k = raw_key.decode("ascii", errors="replace").lower()
        all_vals = header_map.get_all(k)
        parts = [v.decode("utf-8", errors="replace") for v in all_vals]
        sep = "\n" if k == "set-cookie" else ", "
        result[k] = sep.join(parts)
    return result


def _stream_body(resp) -> Iterator[bytes]:
    for chunk in resp.stream():
        if chunk:
            yield bytes(chunk)


class SyntheticResponse:
    """A response handed to the session in place of its own fetch.

    ``body`` is an iterable of byte chunks, consumed at most once.  The
    session backend decides whether it can stream it or must read it
    whole (``read()``).
    """

    __slots__ = ("status", "headers", "content_type", "charset", "body")

    def __init__(
        self,
        *,
        content_type: str,
        charset: str | None = None,
        status: int = 200,
        headers: dict[str, str] | None = None,
        body: Iterable[bytes] = (),
    ):
        self.status = status
        self.headers = headers or {}
        self.content_type = content_type
        self.charset = charset
        self.body = body

    @property
    def content_type_header(self) -> str:
        if self.charset:
            return f"{self.content_type}; charset={self.charset}"
        return self.content_type

    def read(self) -> bytes:
        return b"".join(self.body)

    def __repr__(self) -> str:
        return (
            f"<SyntheticResponse [{self.status}] {self.content_type_header}>"
        )


def empty_image_response() -> SyntheticResponse:
    """Placeholder served for image and favicon requests."""
    return SyntheticResponse(content_type="image/png")


def synthesize(resp) -> SyntheticResponse:
    """Translate a raw rnet response into a session response."""
    headers = _decode_headers(resp.headers)
    content_type, charset = parse_content_type(headers.get("content-type"))
    return SyntheticResponse(
        status=resp.status.as_int(),
        headers=headers,
        content_type=content_type,
        charset=charset,
        body=_stream_body(resp),
    )


class Response:
    """Buffered response returned by ``Resolver.intercept()``.

    - ``status_code``: int
    - ``content``: bytes
    - ``text``: str (decoded from content, lazy)
    - ``headers``: dict[str, str] (lowercase keys)
    - ``url``: URL of the request actually sent
    - ``resolved``: True if the session produced a final request
    """

    __slots__ = (
        "status_code",
        "_content",
        "_text",
        "headers",
        "url",
        "resolved",
        "elapsed",
    )

    def __init__(
        self,
        *,
        status_code: int,
        headers: dict[str, str],
        url: str,
        content: bytes = b"",
        resolved: bool = False,
        elapsed: float = 0.0,
    ):
        self.status_code = status_code
        self._content = content
        self._text = None
        self.headers = headers
        self.url = url
        self.resolved = resolved
        self.elapsed = elapsed

    @property
    def content(self) -> bytes:
        return self._content

    @property
    def text(self) -> str:
        """Body decoded with the Content-Type charset (UTF-8 fallback)."""
        if self._text is None:
            _, charset = parse_content_type(
                self.headers.get("content-type")
            )
            try:
                self._text = self._content.decode(
                    charset or "utf-8", errors="replace"
                )
            except LookupError:
                self._text = self._content.decode("utf-8", errors="replace")
        return self._text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self, **kwargs) -> Any:
        return json.loads(self.text, **kwargs)

    def raise_for_status(self) -> None:
        from wicket._errors import WicketHTTPError

        if not self.ok:
            raise WicketHTTPError(self.status_code, self.url)

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}]>"
