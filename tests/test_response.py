"""Tests for wren.http.response: the HttpResponse view over an HtmlRender."""

import io
from collections.abc import AsyncIterator, Iterator

import pytest

from wren.document import AsyncHtmlStream, DocumentStream, SyncHtmlStream, render_html
from wren.errors import UsageError
from wren.http.response import HttpResponse, create_http_response


def _no_error(exc: Exception) -> None:
    raise AssertionError(exc)


async def _async_stream(*chunks: str) -> AsyncHtmlStream:
    async def gen() -> AsyncIterator[str]:
        for chunk in chunks:
            yield chunk

    html_render = await render_html(DocumentStream(gen()), _no_error)
    assert isinstance(html_render, AsyncHtmlStream)
    return html_render


async def _sync_stream(*chunks: str) -> SyncHtmlStream:
    def gen() -> Iterator[str]:
        yield from chunks

    html_render = await render_html(DocumentStream(gen()), _no_error)
    assert isinstance(html_render, SyncHtmlStream)
    return html_render


class TestBuffered:
    async def test_body(self) -> None:
        response = HttpResponse("<p>hi</p>", 200, "text/html", "/renderer/_default.page.server.py")
        assert response.body == "<p>hi</p>"
        assert await response.get_body() == "<p>hi</p>"
        assert not response.is_stream
        assert response.headers == (("Content-Type", "text/html; charset=utf-8"),)

    def test_no_stream_accessors(self) -> None:
        response = HttpResponse("<p>hi</p>", 200, "text/html")
        with pytest.raises(UsageError, match="http_response.body"):
            response.get_async_stream()
        with pytest.raises(UsageError, match="http_response.body"):
            response.get_sync_stream()

    def test_repr(self) -> None:
        assert repr(HttpResponse("", 404, "text/html")) == "<HttpResponse 404 text/html (buffered)>"


class TestAsyncStream:
    async def test_body_unavailable(self) -> None:
        response = HttpResponse(await _async_stream("<p>", "</p>"), 200, "text/html", "/pages/index.page.server.py")
        assert response.is_stream
        assert response.is_async_stream
        with pytest.raises(UsageError, match="provides an HTML stream") as exc_info:
            _ = response.body
        assert "/pages/index.page.server.py" in str(exc_info.value)

    async def test_get_body(self) -> None:
        response = HttpResponse(await _async_stream("<p>", "</p>"), 200, "text/html")
        assert await response.get_body() == "<p></p>"

    async def test_get_body_twice(self) -> None:
        response = HttpResponse(await _async_stream("<html>", "</html>"), 200, "text/html")
        assert await response.get_body() == "<html></html>"
        assert await response.get_body() == "<html></html>"

    async def test_get_body_after_pipe_to_asgi(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        response = HttpResponse(await _async_stream("<p>", "</p>"), 200, "text/html")
        await response.pipe_to_asgi(send)
        assert await response.get_body() == "<p></p>"

    async def test_stream_after_get_body_replays_body(self) -> None:
        response = HttpResponse(await _async_stream("<p>", "</p>"), 200, "text/html")
        await response.get_body()
        assert [chunk async for chunk in response.get_async_stream()] == ["<p></p>"]

    async def test_get_async_stream(self) -> None:
        response = HttpResponse(await _async_stream("<p>", "</p>"), 200, "text/html")
        assert [chunk async for chunk in response.get_async_stream()] == ["<p>", "</p>"]

    async def test_sync_accessor_points_to_async(self) -> None:
        response = HttpResponse(await _async_stream("<p>"), 200, "text/html")
        with pytest.raises(UsageError, match=r"get_async_stream\(\) instead"):
            response.get_sync_stream()

    async def test_pipe_to_asgi(self) -> None:
        messages: list[dict] = []

        async def send(message: dict) -> None:
            messages.append(message)

        response = HttpResponse(await _async_stream("<p>", "</p>"), 200, "text/html")
        await response.pipe_to_asgi(send)
        assert messages[0]["status"] == 200
        assert [m["body"] for m in messages[1:]] == [b"<p>", b"</p>", b""]


class TestSyncStream:
    async def test_pipe_to_writable(self) -> None:
        response = HttpResponse(await _sync_stream("<p>", "café", "</p>"), 200, "text/html")
        assert not response.is_async_stream
        buffer = io.BytesIO()
        response.pipe_to_writable(buffer)
        assert buffer.getvalue() == "<p>café</p>".encode()
        assert await response.get_body() == "<p>café</p>"

    async def test_pipe_to_asgi_unavailable(self) -> None:
        response = HttpResponse(await _sync_stream("<p>"), 200, "text/html")

        async def send(message: dict) -> None:
            raise AssertionError("nothing should be sent")

        with pytest.raises(UsageError, match=r"get_sync_stream\(\) instead"):
            await response.pipe_to_asgi(send)


class TestCreateHttpResponse:
    def test_none(self) -> None:
        assert create_http_response(None, 200, render_file_path=None, is_page_context_request=False) is None

    def test_html(self) -> None:
        response = create_http_response("<p></p>", 404, render_file_path="/a.page.server.py", is_page_context_request=False)
        assert response is not None
        assert response.status_code == 404
        assert response.content_type == "text/html"

    def test_json(self) -> None:
        response = create_http_response("{}", 200, render_file_path=None, is_page_context_request=True)
        assert response is not None
        assert response.content_type == "application/json"
        assert response.headers == (("Content-Type", "application/json; charset=utf-8"),)
