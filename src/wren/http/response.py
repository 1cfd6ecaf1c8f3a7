"""The HTTP response handed back to the embedding host.

A read-only view over an ``HtmlRender``. Which accessors work depends
on what the ``render()`` hook produced::

    http_response = page_context["http_response"]
    body = await http_response.get_body()          # always works
    http_response.body                              # buffered renders only
    await http_response.pipe_to_asgi(send)          # async streams only
    http_response.pipe_to_writable(wfile)           # sync streams only
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import Any, Literal, Protocol

from wren._internal.asgi import Send
from wren.document import AsyncHtmlStream, HtmlRender, SyncHtmlStream, get_html_string
from wren.errors import UsageError
from wren.http.sender import send_streaming_response

StatusCode = Literal[200, 404, 500]
ContentType = Literal["application/json", "text/html"]


class Writable(Protocol):
    def write(self, data: Any, /) -> Any: ...


class HttpResponse:
    """Status, content type and body of a rendered page."""

    __slots__ = ("_body", "_html_render", "_render_file_path", "content_type", "status_code")

    def __init__(
        self,
        html_render: HtmlRender,
        status_code: StatusCode,
        content_type: ContentType,
        render_file_path: str | None = None,
    ) -> None:
        self._html_render = html_render
        # Body of a stream, once read to its end
        self._body: str | None = None
        self._render_file_path = render_file_path
        self.status_code = status_code
        self.content_type = content_type

    @property
    def headers(self) -> tuple[tuple[str, str], ...]:
        return (("Content-Type", f"{self.content_type}; charset=utf-8"),)

    @property
    def is_stream(self) -> bool:
        return not isinstance(self._html_render, str)

    @property
    def is_async_stream(self) -> bool:
        return isinstance(self._html_render, AsyncHtmlStream)

    @property
    def body(self) -> str:
        """The body of a buffered render.

        Raises ``UsageError`` when the ``render()`` hook provided a stream.
        """
        if not isinstance(self._html_render, str):
            msg = (
                "http_response.body is not available because your render() hook "
                f"({self._render_file_path}) provides an HTML stream. "
                "Use `body = await http_response.get_body()` instead."
            )
            raise UsageError(msg)
        return self._html_render

    async def get_body(self) -> str:
        """The whole body, reading the stream to its end if necessary.

        Works any number of times, also after the stream was piped.
        """
        if isinstance(self._html_render, str):
            return self._html_render
        if self._body is None:
            self._body = await get_html_string(self._html_render)
        return self._body

    def get_async_stream(self) -> AsyncIterator[str]:
        """The body chunks as an async iterator."""
        if not isinstance(self._html_render, AsyncHtmlStream):
            msg = (
                "http_response.get_async_stream() is not available: make sure your "
                "render() hook provides an async DocumentStream"
                f"{self._alternative('get_sync_stream()')}."
            )
            raise UsageError(msg)
        if self._body is not None:
            return _replay_async(self._body)
        return self._record_async(aiter(self._html_render))

    def get_sync_stream(self) -> Iterator[str]:
        """The body chunks as a sync iterator."""
        if not isinstance(self._html_render, SyncHtmlStream):
            msg = (
                "http_response.get_sync_stream() is not available: make sure your "
                "render() hook provides a sync DocumentStream"
                f"{self._alternative('get_async_stream()')}."
            )
            raise UsageError(msg)
        if self._body is not None:
            return iter((self._body,))
        return self._record_sync(iter(self._html_render))

    async def pipe_to_asgi(self, send: Send) -> None:
        """Send the status, headers and streamed body to an ASGI server."""
        chunks = self.get_async_stream()
        await send_streaming_response(self, chunks, send)

    def pipe_to_writable(self, writable: Writable) -> None:
        """Write each body chunk, UTF-8 encoded, to *writable*."""
        for chunk in self.get_sync_stream():
            writable.write(chunk.encode("utf-8"))

    async def _record_async(self, chunks: AsyncIterator[str]) -> AsyncIterator[str]:
        seen: list[str] = []
        async for chunk in chunks:
            seen.append(chunk)
            yield chunk
        self._body = "".join(seen)

    def _record_sync(self, chunks: Iterator[str]) -> Iterator[str]:
        seen: list[str] = []
        for chunk in chunks:
            seen.append(chunk)
            yield chunk
        self._body = "".join(seen)

    def _alternative(self, accessor: str) -> str:
        if isinstance(self._html_render, str):
            return "; use http_response.body or `await http_response.get_body()` instead"
        return f"; use http_response.{accessor} instead"

    def __repr__(self) -> str:
        kind = "stream" if self.is_stream else "buffered"
        return f"<HttpResponse {self.status_code} {self.content_type} ({kind})>"


async def _replay_async(body: str) -> AsyncIterator[str]:
    yield body


def create_http_response(
    html_render: HtmlRender | None,
    status_code: StatusCode,
    *,
    render_file_path: str | None,
    is_page_context_request: bool,
) -> HttpResponse | None:
    """Wrap *html_render*; ``None`` means the host emits no response at all."""
    if html_render is None:
        return None
    assert not is_page_context_request or isinstance(html_render, str)
    content_type: ContentType = "application/json" if is_page_context_request else "text/html"
    return HttpResponse(html_render, status_code, content_type, render_file_path)
