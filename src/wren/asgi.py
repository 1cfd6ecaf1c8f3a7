"""ASGI adapter: serve rendered pages from any ASGI server.

Usage::

    from wren import Renderer, SSRApp
    from wren.discovery import filesystem_manifest_loader

    app = SSRApp(Renderer(filesystem_manifest_loader("pages")))

    # uvicorn module:app, pounce module:app, ...

Requests the renderer answers with ``http_response=None`` (favicon,
URLs outside the base URL, pages without a document) are passed to the
*fallback* ASGI app, or answered with a bare 404.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from wren._internal.asgi import Receive, Scope, Send
from wren.http.sender import send_http_response
from wren.renderer import Renderer

logger = logging.getLogger("wren.server")

ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

_PAGE_METHODS = frozenset({"GET", "HEAD"})


def request_url(scope: Scope) -> str:
    """The request URL of an HTTP scope, path and query string."""
    path = scope.get("root_path", "") + scope["path"]
    query_string: bytes = scope.get("query_string", b"")
    if query_string:
        return f"{path}?{query_string.decode('latin-1')}"
    return path


def request_headers(scope: Scope) -> dict[str, str]:
    return {name.decode("latin-1"): value.decode("latin-1") for name, value in scope.get("headers", ())}


class SSRApp:
    """An ASGI 3.0 app rendering every GET/HEAD request with a ``Renderer``."""

    __slots__ = ("fallback", "renderer")

    def __init__(self, renderer: Renderer, fallback: ASGIApp | None = None) -> None:
        self.renderer = renderer
        self.fallback = fallback

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            if self.fallback is not None:
                await self.fallback(scope, receive, send)
            return

        if scope["method"] not in _PAGE_METHODS:
            await self._not_handled(scope, receive, send)
            return

        page_context_init: dict[str, Any] = {
            "url": request_url(scope),
            "headers": request_headers(scope),
        }
        page_context = await self.renderer.render_page(page_context_init)
        http_response = page_context["http_response"]
        if http_response is None:
            await self._not_handled(scope, receive, send)
            return
        await send_http_response(http_response, send, head_only=scope["method"] == "HEAD")

    async def _not_handled(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.fallback is not None:
            await self.fallback(scope, receive, send)
            return
        await send(
            {
                "type": "http.response.start",
                "status": 404,
                "headers": [(b"content-type", b"text/plain; charset=utf-8"), (b"content-length", b"9")],
            }
        )
        await send({"type": "http.response.body", "body": b"Not Found"})

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Compute the global context at startup so bad manifests fail fast."""
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.renderer.get_global_context()
                except Exception as exc:
                    logger.error("Startup failed: %s", exc)
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
