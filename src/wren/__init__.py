"""Wren — server-side page rendering with layered hooks.

Resolves a URL to a page, runs the page's hooks, and hands back a
response that can be buffered or streamed.

Basic usage::

    from wren import Renderer
    from wren.discovery import filesystem_manifest_loader

    renderer = Renderer(filesystem_manifest_loader("pages"))

    page_context = await renderer.render_page({"url": "/movie/42"})
    http_response = page_context["http_response"]
    if http_response is not None:
        body = await http_response.get_body()

A page's ``render()`` hook returns document markup::

    from wren import escape_inject

    def render(page_context):
        return escape_inject("<h1>{{ title }}</h1>", title=page_context.movie.title)
"""

__version__ = "0.1.0-dev"
__all__ = [
    "ConfigurationError",
    "DocumentStream",
    "GlobalContextStore",
    "HookFailure",
    "HttpResponse",
    "Markup",
    "PageContext",
    "PrerenderError",
    "PrerenderResult",
    "RenderConfig",
    "Renderer",
    "SSRApp",
    "UsageError",
    "WrenError",
    "dangerously_skip_escape",
    "escape_inject",
    "manifest_from_exports",
    "render_template",
    "run_prerender",
    "stream_template",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import wren`` fast while providing a clean top-level API.
    """
    if name in ("Renderer", "PrerenderResult"):
        from wren import renderer as _renderer

        return getattr(_renderer, name)

    if name == "RenderConfig":
        from wren.config import RenderConfig

        return RenderConfig

    if name == "GlobalContextStore":
        from wren.global_context import GlobalContextStore

        return GlobalContextStore

    if name == "PageContext":
        from wren.pages.context import PageContext

        return PageContext

    if name == "HttpResponse":
        from wren.http.response import HttpResponse

        return HttpResponse

    if name == "SSRApp":
        from wren.asgi import SSRApp

        return SSRApp

    if name == "run_prerender":
        from wren.prerender import run_prerender

        return run_prerender

    if name == "manifest_from_exports":
        from wren.manifest import manifest_from_exports

        return manifest_from_exports

    if name in (
        "DocumentStream",
        "Markup",
        "dangerously_skip_escape",
        "escape_inject",
        "render_template",
        "stream_template",
    ):
        from wren import document as _document

        return getattr(_document, name)

    if name in ("ConfigurationError", "HookFailure", "PrerenderError", "UsageError", "WrenError"):
        from wren import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
