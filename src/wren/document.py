"""Document markup and its rendering into an HtmlRender.

A ``render()`` hook returns its document as kida markup, never as a
plain string. Only markup is known to be escaped::

    from wren.document import escape_inject

    def render(page_context):
        return escape_inject(
            "<html><head><title>{{ title }}</title></head>"
            "<body>{{ body }}</body></html>",
            title=page_context.page_exports["title"],
            body=page_context.Page(page_context),
        )

Document markup is either a ``Markup`` string (buffered) or a
``DocumentStream`` of chunks (streamed). ``render_html()`` turns it into
an ``HtmlRender``: a ``str``, an ``AsyncHtmlStream`` or a
``SyncHtmlStream``.

A stream is primed before it is handed back: an error raised before
its first chunk fails the render, an error raised after it is a
streaming error. Streaming errors are passed to ``on_error`` and end
the stream; the chunks already produced are kept.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeAlias

from kida import Environment, FileSystemLoader
from kida.utils.html import Markup

from wren.errors import UsageError

__all__ = [
    "AsyncHtmlStream",
    "DocumentStream",
    "HtmlRender",
    "Markup",
    "SyncHtmlStream",
    "create_environment",
    "dangerously_skip_escape",
    "escape_inject",
    "get_html_string",
    "is_document_html",
    "render_html",
    "render_template",
    "stream_template",
]

_DONE = object()

_inline_env: Environment | None = None


# -- Document markup --


@dataclass(frozen=True, slots=True)
class DocumentStream:
    """Streamed document markup.

    *chunks* is an async or sync iterable of already-escaped HTML
    chunks, e.g. kida's ``render_stream()`` or an async generator.
    """

    chunks: AsyncIterable[str] | Iterable[str]

    @property
    def is_async(self) -> bool:
        return isinstance(self.chunks, AsyncIterable)


def is_document_html(value: Any) -> bool:
    """Whether *value* is document markup a ``render()`` hook may return."""
    return isinstance(value, (Markup, DocumentStream))


def dangerously_skip_escape(html: str) -> Markup:
    """Mark *html* as safe document markup, without escaping it."""
    return Markup(html)


def escape_inject(source: str, /, **values: Any) -> Markup:
    """Render an inline kida template, escaping every injected value."""
    global _inline_env
    if _inline_env is None:
        _inline_env = Environment(autoescape=True)
    return Markup(_inline_env.from_string(source).render(values))


def create_environment(template_dir: str | Path, *, auto_reload: bool = False) -> Environment:
    """Create an autoescaping kida Environment loading from *template_dir*."""
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=True,
        auto_reload=auto_reload,
    )


def render_template(env: Environment, name: str, /, **context: Any) -> Markup:
    """Render a full template to buffered document markup."""
    template = env.get_template(name)
    return Markup(template.render(context))


def stream_template(env: Environment, name: str, /, **context: Any) -> DocumentStream:
    """Render a template progressively, with kida's ``render_stream()``."""
    template = env.get_template(name)
    return DocumentStream(template.render_stream(context))


# -- HtmlRender --


def _as_text(chunk: str | bytes) -> str:
    return chunk.decode("utf-8") if isinstance(chunk, bytes) else str(chunk)


class _HtmlStream:
    __slots__ = ("_consumed", "_first", "_on_error", "_rest")

    def __init__(self, first: Any, rest: Any, on_error: Callable[[Exception], None]) -> None:
        self._first = first
        self._rest = rest
        self._on_error = on_error
        self._consumed = False

    def _claim(self) -> None:
        if self._consumed:
            msg = "The HTML stream was already consumed; a stream can be read only once."
            raise UsageError(msg)
        self._consumed = True


class AsyncHtmlStream(_HtmlStream):
    """A primed async HTML stream, for ASGI hosts."""

    __slots__ = ()

    def __aiter__(self) -> AsyncIterator[str]:
        self._claim()
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        if self._first is _DONE:
            return
        yield _as_text(self._first)
        try:
            async for chunk in self._rest:
                if chunk:
                    yield _as_text(chunk)
        except Exception as exc:
            self._on_error(exc)


class SyncHtmlStream(_HtmlStream):
    """A primed sync HTML stream, for WSGI hosts and file-like writables."""

    __slots__ = ()

    def __iter__(self) -> Iterator[str]:
        self._claim()
        return self._iterate()

    def _iterate(self) -> Iterator[str]:
        if self._first is _DONE:
            return
        yield _as_text(self._first)
        try:
            for chunk in self._rest:
                if chunk:
                    yield _as_text(chunk)
        except Exception as exc:
            self._on_error(exc)


HtmlRender: TypeAlias = str | AsyncHtmlStream | SyncHtmlStream


async def render_html(
    document_html: Markup | DocumentStream,
    on_error: Callable[[Exception], None],
) -> HtmlRender:
    """Convert document markup into an ``HtmlRender``.

    Streams are primed by reading their first chunk; an error raised
    while priming propagates to the caller.
    """
    if isinstance(document_html, Markup):
        return str(document_html)

    assert isinstance(document_html, DocumentStream)
    chunks = document_html.chunks
    if isinstance(chunks, AsyncIterable):
        async_rest = aiter(chunks)
        first = await anext(async_rest, _DONE)
        return AsyncHtmlStream(first, async_rest, on_error)

    sync_rest = iter(chunks)
    first = next(sync_rest, _DONE)
    return SyncHtmlStream(first, sync_rest, on_error)


async def get_html_string(html_render: HtmlRender) -> str:
    """The whole document, awaiting a stream to its end."""
    if isinstance(html_render, str):
        return html_render
    if isinstance(html_render, AsyncHtmlStream):
        return "".join([chunk async for chunk in html_render])
    return "".join(html_render)
