"""ASGI response sending: translates an HttpResponse to ASGI messages.

Buffered bodies are sent in one message with a content length; streams
are sent chunk by chunk with chunked transfer encoding.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import TYPE_CHECKING

from wren._internal.asgi import Send

if TYPE_CHECKING:
    from wren.http.response import HttpResponse


def _raw_headers(response: HttpResponse) -> list[tuple[bytes, bytes]]:
    return [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in response.headers]


async def send_response(response: HttpResponse, send: Send) -> None:
    """Send a buffered response."""
    body = response.body.encode("utf-8")
    raw_headers = _raw_headers(response)
    raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

    await send(
        {
            "type": "http.response.start",
            "status": response.status_code,
            "headers": raw_headers,
        }
    )
    await send(
        {
            "type": "http.response.body",
            "body": body,
        }
    )


async def send_streaming_response(
    response: HttpResponse,
    chunks: AsyncIterator[str] | Iterator[str],
    send: Send,
) -> None:
    """Send headers immediately, then each chunk with ``more_body=True``.

    Closes with an empty body. A stream that fails midway has already
    been cut short by its ``HtmlRender``; the prefix is still delivered.
    """
    raw_headers = _raw_headers(response)
    raw_headers.append((b"transfer-encoding", b"chunked"))

    # No content-length: chunked transfer encoding signals body boundaries
    await send(
        {
            "type": "http.response.start",
            "status": response.status_code,
            "headers": raw_headers,
        }
    )

    if isinstance(chunks, AsyncIterator):
        async for chunk in chunks:
            await _send_chunk(chunk, send)
    else:
        for chunk in chunks:
            await _send_chunk(chunk, send)

    await send(
        {
            "type": "http.response.body",
            "body": b"",
            "more_body": False,
        }
    )


async def _send_chunk(chunk: str, send: Send) -> None:
    if not chunk:
        return
    await send(
        {
            "type": "http.response.body",
            "body": chunk.encode("utf-8"),
            "more_body": True,
        }
    )


async def send_head_response(response: HttpResponse, send: Send) -> None:
    """Send the headers of *response* and an empty body, without reading a stream."""
    raw_headers = _raw_headers(response)
    if response.is_stream:
        raw_headers.append((b"transfer-encoding", b"chunked"))
    else:
        raw_headers.append((b"content-length", str(len(response.body.encode("utf-8"))).encode("latin-1")))
    await send(
        {
            "type": "http.response.start",
            "status": response.status_code,
            "headers": raw_headers,
        }
    )
    await send({"type": "http.response.body", "body": b""})


async def send_http_response(response: HttpResponse, send: Send, *, head_only: bool = False) -> None:
    """Send any HttpResponse, buffered or streamed; only headers when *head_only*."""
    if head_only:
        await send_head_response(response, send)
        return
    if not response.is_stream:
        await send_response(response, send)
        return
    chunks: AsyncIterator[str] | Iterator[str]
    if response.is_async_stream:
        chunks = response.get_async_stream()
    else:
        chunks = response.get_sync_stream()
    await send_streaming_response(response, chunks, send)
