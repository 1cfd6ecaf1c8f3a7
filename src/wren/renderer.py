"""The rendering driver: one request in, one page context out.

Pipeline::

    initialize_page_context   favicon and base URL checks, global context
    route                     URL -> page id (or the error page on 404)
    load_page_files           the four hook layers of the page
    on_before_render hooks    isomorphic chain, then server chain
    render() hook             document markup -> HtmlRender
    create_http_response      HtmlRender -> HttpResponse

A hook failure at any step is logged once and the pipeline runs again,
once, for the error page with a 500 status. A failure while rendering
the error page is only warned about. ``Renderer.render_page()`` never
raises; at worst ``http_response`` is ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, NoReturn
from urllib.parse import urlsplit

from wren._internal.urls import (
    ParsedUrl,
    assert_base_url,
    handle_page_context_request_suffix,
    is_file_request,
    parse_url,
)
from wren.config import RenderConfig
from wren.document import get_html_string
from wren.errors import HookFailure, PrerenderError, UsageError
from wren.global_context import GlobalContext, GlobalContextStore
from wren.http.response import StatusCode, create_http_response
from wren.log import log_error, warn
from wren.manifest import ManifestLoader
from wren.pages.context import PageContext, PageContextBuilder
from wren.pages.files import load_page_files
from wren.pages.hooks import execute_on_before_render_hooks
from wren.pages.render import RenderHookResult, execute_render_hook
from wren.pages.serialize import serialize_envelope, serialize_page_context_client_side
from wren.routing.router import describe_page_routes, route

logger = logging.getLogger("wren.render")


@dataclass(frozen=True, slots=True)
class PrerenderResult:
    """The static output of one prerendered page."""

    document_html: str
    page_context_serialized: str | None
    page_context: PageContext


# -- Arguments and URLs --


def assert_arguments(*args: Any) -> None:
    """Validate the arguments of ``render_page(page_context_init)``."""
    if not args:
        msg = "render_page(page_context_init): argument `page_context_init` is missing."
        raise UsageError(msg)
    if len(args) > 1:
        msg = f"render_page(page_context_init): you passed {len(args)} arguments but render_page() accepts only one."
        raise UsageError(msg)
    page_context_init = args[0]
    if not isinstance(page_context_init, Mapping):
        msg = (
            "render_page(page_context_init): `page_context_init` should be a dict, "
            f"got {type(page_context_init).__name__}."
        )
        raise UsageError(msg)
    if "url" not in page_context_init:
        msg = "render_page(page_context_init): `page_context_init` is missing the `url` field."
        raise UsageError(msg)
    url = page_context_init["url"]
    if not isinstance(url, str):
        msg = f"render_page(page_context_init): `url` should be a string, got {type(url).__name__}."
        raise UsageError(msg)
    if not (url.startswith("/") or url.startswith("http")):
        msg = (
            "render_page(page_context_init): `url` should start with '/' (e.g. '/product/42') "
            f"or 'http' (e.g. 'http://example.org/product/42'), got {url!r}."
        )
        raise UsageError(msg)
    try:
        urlsplit(url)
    except ValueError as exc:
        msg = f"render_page(page_context_init): `url` should be a URL, got {url!r}."
        raise UsageError(msg) from exc


def add_computed_url_props(builder: PageContextBuilder, config: RenderConfig) -> ParsedUrl:
    """Add ``url_parsed`` and ``url_pathname``; flag raw-data requests."""
    url, is_page_context_request = handle_page_context_request_suffix(builder["url"], config.page_context_suffix)
    url_parsed = parse_url(url, config.base_url)
    builder.is_page_context_request = is_page_context_request
    builder.add(url_parsed=url_parsed, url_pathname=url_parsed.pathname)
    return url_parsed


# -- Warnings --


def warn404(builder: PageContextBuilder, *, production: bool) -> None:
    global_context = builder.global_context
    assert global_context is not None
    page_routes = global_context.page_routes
    if not page_routes:
        msg = "No page found. Create a file whose name ends with `.page.py`."
        raise UsageError(msg)
    url_pathname = builder["url_pathname"]
    if is_file_request(url_pathname):
        return
    lines = [
        f"URL `{url_pathname}` is not matching any of your {len(page_routes)} page routes "
        "(this warning is not shown in production):",
        *describe_page_routes(page_routes),
    ]
    warn("\n".join(lines), production=production)


def warn_missing_error_page(*, production: bool) -> None:
    warn(
        "No `_error.page.py` found. We recommend creating one. (This warning is not shown in production.)",
        production=production,
    )


def warn_could_not_render_500_page(failure: HookFailure | Exception) -> None:
    if isinstance(failure, HookFailure):
        reason = (
            f"your {failure.hook_name}() hook exported by {failure.hook_file_path} "
            f"raised an error: {failure.error!r}"
        )
    else:
        reason = f"of an error: {failure!r}"
    warn(f"The error page could not be rendered because {reason}", dev_only=False)


# -- Prerendering --


def throw_prerender_error(failure: HookFailure) -> NoReturn:
    """Raise a ``PrerenderError`` chained to the hook's exception."""
    msg = f"Prerendering failed: {failure}"
    raise PrerenderError(msg) from failure.error


async def prerender_page(builder: PageContextBuilder) -> PrerenderResult:
    """Render a page, page files loaded, to static HTML.

    Raises ``PrerenderError`` when a hook raises, ``UsageError`` when
    the ``render()`` hook provides no document.
    """
    assert builder.is_pre_rendering
    global_context = builder.global_context
    assert global_context is not None

    add_computed_url_props(builder, global_context.config)
    builder.is_page_context_request = False

    failure = await execute_on_before_render_hooks(builder)
    if failure is not None:
        throw_prerender_error(failure)

    render_result = await execute_render_hook(builder)
    if isinstance(render_result, HookFailure):
        throw_prerender_error(render_result)
    assert isinstance(render_result, RenderHookResult)
    if render_result.html_render is None:
        msg = (
            f"Prerendering requires your render() hook ({render_result.render_file_path}) "
            f"to provide a document, but it returned none for {builder['url']}."
        )
        raise UsageError(msg)

    document_html = await get_html_string(render_result.html_render)
    page_context_serialized = None
    if builder.uses_client_router:
        page_context_serialized = serialize_page_context_client_side(builder)
    return PrerenderResult(document_html, page_context_serialized, builder.view())


async def render_static_404_page(global_context: GlobalContext) -> PrerenderResult | None:
    """Prerender the error page as a generic ``404.html``.

    Returns ``None`` when there is no error page.
    """
    error_page_id = global_context.error_page_id
    if error_page_id is None:
        return None

    # Any URL works; the static 404 page is not tied to one
    builder = PageContextBuilder(
        {"url": "/fake-404-url", "route_params": {}, "is404": True, "page_id": error_page_id},
        is_pre_rendering=True,
    )
    builder.global_context = global_context
    # Static hosts serve 404.html without client routing
    builder.uses_client_router = False
    await load_page_files(builder)
    return await prerender_page(builder)


# -- Renderer --


def _swallowed(page_context_init: Mapping[str, Any], error: Exception) -> PageContext:
    builder = PageContextBuilder(page_context_init)
    builder.add(http_response=None, error=error)
    return builder.view()


class Renderer:
    """Renders pages of one manifest.

    Usage::

        renderer = Renderer(filesystem_manifest_loader("pages"))
        page_context = await renderer.render_page({"url": "/movies/42"})
        http_response = page_context["http_response"]
        if http_response is not None:
            body = await http_response.get_body()
    """

    __slots__ = ("store",)

    def __init__(
        self,
        loader: ManifestLoader | GlobalContextStore,
        config: RenderConfig | None = None,
    ) -> None:
        if isinstance(loader, GlobalContextStore):
            assert config is None or config == loader.config
            self.store = loader
        else:
            self.store = GlobalContextStore(loader, config)

    @property
    def config(self) -> RenderConfig:
        return self.store.config

    async def get_global_context(self) -> GlobalContext:
        return await self.store.get()

    async def render_page(self, *args: Any) -> PageContext:
        """Render the page of ``page_context_init["url"]``.

        Returns the final page context; its ``http_response`` is an
        ``HttpResponse`` or ``None`` when the host should not respond.
        Never raises: wrong arguments are logged and yield
        ``http_response=None`` with the ``UsageError`` as ``error``.
        """
        page_context_init: Mapping[str, Any] = args[0] if args and isinstance(args[0], Mapping) else {}
        try:
            assert_arguments(*args)
        except UsageError as exc:
            log_error(exc)
            return _swallowed(page_context_init, exc)

        try:
            return await self._render_page(page_context_init)
        except Exception as exc:
            log_error(exc)
            # render_500_page() warns about its own failures instead of raising
            return await self.render_500_page(page_context_init, exc)

    async def initialize_page_context(self, page_context_init: Mapping[str, Any]) -> PageContextBuilder:
        """Start a request; sets ``http_response=None`` for requests to ignore."""
        builder = PageContextBuilder(page_context_init)
        if builder["url"].endswith("/favicon.ico"):
            builder.add(http_response=None)
            return builder

        config = self.config
        assert_base_url(config.base_url)
        url_parsed = add_computed_url_props(builder, config)
        if not url_parsed.has_base_url:
            builder.add(http_response=None)
            return builder

        builder.global_context = await self.store.get()
        return builder

    async def _render_page(self, page_context_init: Mapping[str, Any]) -> PageContext:
        builder = await self.initialize_page_context(page_context_init)
        if "http_response" in builder:
            assert builder["http_response"] is None
            return builder.view()
        global_context = builder.global_context
        assert global_context is not None
        logger.debug("Rendering %s", builder["url"])

        # Route
        route_result = await route(builder)
        if isinstance(route_result, HookFailure):
            log_error(route_result.error)
            return await self.render_500_page(page_context_init, route_result.error)

        # Not found
        status_code: StatusCode = 200
        if route_result.page_id is not None:
            builder.add(page_id=route_result.page_id, route_params=route_result.route_params)
        else:
            builder.add(route_params=route_result.route_params)
            if not builder.is_page_context_request:
                warn404(builder, production=self.config.production)
            error_page_id = global_context.error_page_id
            if error_page_id is None:
                warn_missing_error_page(production=self.config.production)
                http_response = None
                if builder.is_page_context_request:
                    http_response = create_http_response(
                        serialize_envelope(page_context_404_page_does_not_exist=True),
                        200,
                        render_file_path=None,
                        is_page_context_request=True,
                    )
                builder.add(http_response=http_response)
                return builder.view()
            if not builder.is_page_context_request:
                status_code = 404
            builder.add(page_id=error_page_id, is404=True)

        await load_page_files(builder)

        failure = await execute_on_before_render_hooks(builder)
        if failure is not None:
            log_error(failure.error)
            return await self.render_500_page(page_context_init, failure.error)

        if builder.is_page_context_request:
            http_response = create_http_response(
                serialize_page_context_client_side(builder),
                200,
                render_file_path=None,
                is_page_context_request=True,
            )
            builder.add(http_response=http_response)
            return builder.view()

        render_result = await execute_render_hook(builder)
        if isinstance(render_result, HookFailure):
            log_error(render_result.error)
            return await self.render_500_page(page_context_init, render_result.error)

        http_response = create_http_response(
            render_result.html_render,
            status_code,
            render_file_path=render_result.render_file_path,
            is_page_context_request=False,
        )
        builder.add(http_response=http_response)
        return builder.view()

    async def render_500_page(self, page_context_init: Mapping[str, Any], error: Exception) -> PageContext:
        """Render the error page for *error*, already logged, with status 500.

        Runs the error page at most once. Its failures are warned about,
        never logged as errors, and ``error`` keeps the original *error*.
        """
        try:
            builder = await self.initialize_page_context(page_context_init)
        except Exception as exc:
            # Most likely the same cause as *error*, which was logged
            logger.debug("Rendering the error page failed too: %r", exc)
            return _swallowed(page_context_init, error)
        if "http_response" in builder:
            builder.add(error=error)
            return builder.view()

        builder.add(is404=False, error=error, http_response=None, route_params={})
        try:
            return await self._render_error_page(builder)
        except Exception as exc:
            warn_could_not_render_500_page(exc)
            builder.add(http_response=None, error=error)
            return builder.view()

    async def _render_error_page(self, builder: PageContextBuilder) -> PageContext:
        """The 500 steps after initialize_page_context(); may raise."""
        if builder.is_page_context_request:
            http_response = create_http_response(
                serialize_envelope(server_side_error=True),
                500,
                render_file_path=None,
                is_page_context_request=True,
            )
            builder.add(http_response=http_response)
            return builder.view()

        global_context = builder.global_context
        assert global_context is not None
        error_page_id = global_context.error_page_id
        if error_page_id is None:
            warn_missing_error_page(production=self.config.production)
            return builder.view()
        builder.add(page_id=error_page_id)

        await load_page_files(builder)

        failure = await execute_on_before_render_hooks(builder)
        if failure is not None:
            warn_could_not_render_500_page(failure)
            return builder.view()

        render_result = await execute_render_hook(builder)
        if isinstance(render_result, HookFailure):
            warn_could_not_render_500_page(render_result)
            return builder.view()

        http_response = create_http_response(
            render_result.html_render,
            500,
            render_file_path=render_result.render_file_path,
            is_page_context_request=False,
        )
        builder.add(http_response=http_response)
        return builder.view()

    async def render_static_404_page(self) -> PrerenderResult | None:
        return await render_static_404_page(await self.store.get())
