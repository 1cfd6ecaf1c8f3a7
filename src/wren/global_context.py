"""Process-wide global context, computed once.

The global context holds everything that doesn't change between
requests: the manifest, the page ids, the compiled route table and the
project-wide hooks. ``GlobalContextStore.get()`` computes it on first
use; concurrent first calls wait on a single in-flight computation and
all observe the same instance.

Thread safety:
    The store is meant to be used from one event loop. The lock is an
    ``anyio.Lock``, created lazily inside the loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import anyio

from wren._internal.invoke import invoke
from wren._internal.urls import assert_base_url
from wren.config import RenderConfig
from wren.errors import UsageError
from wren.manifest import (
    SERVER,
    ManifestLoader,
    PageManifest,
    determine_page_ids,
    find_default_files,
    get_error_page_id,
)
from wren.pages.files import assert_server_file_exports
from wren.pages.types import HookDescriptor
from wren.routing.route import PageRoute
from wren.routing.router import load_page_routes

logger = logging.getLogger("wren.render")


@dataclass(frozen=True, slots=True)
class GlobalContext:
    """Immutable, request-independent state of the renderer."""

    base_url: str
    all_page_files: PageManifest
    all_page_ids: tuple[str, ...]
    page_routes: tuple[PageRoute, ...]
    on_before_route_hook: HookDescriptor | None = None
    on_before_prerender_hook: HookDescriptor | None = None
    config: RenderConfig = field(default_factory=RenderConfig)

    @property
    def error_page_id(self) -> str | None:
        return get_error_page_id(self.all_page_ids)


async def compute_global_context(loader: ManifestLoader, config: RenderConfig) -> GlobalContext:
    """Build the global context from scratch.

    Validates the base URL, loads the manifest, derives the page ids,
    compiles the route table and loads the project-wide hooks.
    """
    assert_base_url(config.base_url)

    manifest = await invoke(loader)
    if not isinstance(manifest, PageManifest):
        msg = f"The manifest loader should return a PageManifest, got {type(manifest).__name__}."
        raise UsageError(msg)

    all_page_ids = determine_page_ids(manifest)
    # Fails early when several error pages exist
    get_error_page_id(all_page_ids)
    page_routes, on_before_route_hook = await load_page_routes(manifest, all_page_ids)
    on_before_prerender_hook = await load_on_before_prerender_hook(manifest)

    logger.debug("Global context: %d page files, %d pages", len(manifest), len(all_page_ids))
    return GlobalContext(
        base_url=config.base_url,
        all_page_files=manifest,
        all_page_ids=all_page_ids,
        page_routes=page_routes,
        on_before_route_hook=on_before_route_hook,
        on_before_prerender_hook=on_before_prerender_hook,
        config=config,
    )


async def load_on_before_prerender_hook(manifest: PageManifest) -> HookDescriptor | None:
    """Find the single ``on_before_prerender`` hook among default server files."""
    hook: HookDescriptor | None = None
    for default_file in find_default_files(manifest.of_type(SERVER)):
        exports = await default_file.load_file()
        assert_server_file_exports(exports, default_file.file_path)
        func = exports.get("on_before_prerender")
        if func is None:
            continue
        if hook is not None:
            msg = (
                "There can be only one on_before_prerender() hook, found one in "
                f"{hook.file_path} and one in {default_file.file_path}."
            )
            raise UsageError(msg)
        hook = HookDescriptor(default_file.file_path, "on_before_prerender", func)
    return hook


class GlobalContextStore:
    """Holds the global context of one renderer.

    Usage::

        store = GlobalContextStore(discovery_loader, RenderConfig())
        global_context = await store.get()

    A failed computation is not retried: later calls re-raise the
    same error until ``invalidate()`` is called.
    """

    __slots__ = ("_failure", "_lock", "_value", "config", "loader")

    def __init__(self, loader: ManifestLoader, config: RenderConfig | None = None) -> None:
        self.loader = loader
        self.config = config or RenderConfig()
        self._value: GlobalContext | None = None
        self._failure: Exception | None = None
        self._lock: anyio.Lock | None = None

    async def get(self) -> GlobalContext:
        """Return the global context, computing it on first call."""
        if self._value is not None:
            return self._value
        if self._failure is not None:
            raise self._failure

        if self._lock is None:
            self._lock = anyio.Lock()
        async with self._lock:
            if self._value is None and self._failure is None:
                try:
                    self._value = await compute_global_context(self.loader, self.config)
                except Exception as exc:
                    self._failure = exc
                    raise
            if self._failure is not None:
                raise self._failure
            assert self._value is not None
            return self._value

    def invalidate(self) -> None:
        """Drop the cached context; the next ``get()`` recomputes it."""
        self._value = None
        self._failure = None
