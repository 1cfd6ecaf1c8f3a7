"""Tests for wren.global_context — computed once, shared by every request."""

import asyncio
from typing import Any

import anyio
import pytest

from wren.config import RenderConfig
from wren.errors import ConfigurationError, UsageError
from wren.global_context import GlobalContextStore
from wren.manifest import PageManifest, manifest_from_exports


class _CountingLoader:
    def __init__(self, modules: dict[str, Any], *, fail_times: int = 0) -> None:
        self.modules = modules
        self.calls = 0
        self.fail_times = fail_times

    async def __call__(self) -> PageManifest:
        self.calls += 1
        await anyio.sleep(0.01)
        if self.calls <= self.fail_times:
            raise RuntimeError("manifest unavailable")
        return manifest_from_exports(self.modules)


class TestCompute:
    async def test_fields(self, site: dict[str, Any]) -> None:
        store = GlobalContextStore(_CountingLoader(site))
        global_context = await store.get()
        assert global_context.base_url == "/"
        assert global_context.all_page_ids == ("/pages/_error", "/pages/about/index", "/pages/index")
        assert global_context.error_page_id == "/pages/_error"
        assert [r.page_id for r in global_context.page_routes] == ["/pages/about/index", "/pages/index"]
        assert global_context.on_before_route_hook is None
        assert global_context.on_before_prerender_hook is None

    async def test_computed_once_under_concurrency(self, site: dict[str, Any]) -> None:
        loader = _CountingLoader(site)
        store = GlobalContextStore(loader)
        results = await asyncio.gather(*(store.get() for _ in range(5)))
        assert loader.calls == 1
        assert all(r is results[0] for r in results)

    async def test_failure_is_cached(self, site: dict[str, Any]) -> None:
        loader = _CountingLoader(site, fail_times=1)
        store = GlobalContextStore(loader)
        with pytest.raises(RuntimeError) as first:
            await store.get()
        with pytest.raises(RuntimeError) as second:
            await store.get()
        assert first.value is second.value
        assert loader.calls == 1

    async def test_invalidate_recomputes(self, site: dict[str, Any]) -> None:
        loader = _CountingLoader(site, fail_times=1)
        store = GlobalContextStore(loader)
        with pytest.raises(RuntimeError):
            await store.get()
        store.invalidate()
        global_context = await store.get()
        assert loader.calls == 2
        assert global_context.error_page_id == "/pages/_error"

    async def test_invalid_base_url(self, site: dict[str, Any]) -> None:
        store = GlobalContextStore(_CountingLoader(site), RenderConfig(base_url="docs"))
        with pytest.raises(ConfigurationError, match="should start with '/'"):
            await store.get()

    async def test_loader_must_return_manifest(self) -> None:
        store = GlobalContextStore(lambda: {"/pages/index.page.py": {}})
        with pytest.raises(UsageError, match="should return a PageManifest"):
            await store.get()

    async def test_several_error_pages(self, site: dict[str, Any]) -> None:
        store = GlobalContextStore(_CountingLoader({**site, "/admin/_error.page.py": {"Page": "Admin error"}}))
        with pytest.raises(UsageError, match="Only one _error page"):
            await store.get()


class TestOnBeforePrerenderHook:
    async def test_loaded_from_default_server_file(self, site: dict[str, Any]) -> None:
        def on_before_prerender(page_contexts: list[dict[str, Any]]) -> None:
            return None

        modules = dict(site)
        modules["/renderer/_default.page.server.py"] = {
            **site["/renderer/_default.page.server.py"],
            "on_before_prerender": on_before_prerender,
        }
        global_context = await GlobalContextStore(_CountingLoader(modules)).get()
        hook = global_context.on_before_prerender_hook
        assert hook is not None
        assert hook.file_path == "/renderer/_default.page.server.py"
        assert hook.func is on_before_prerender

    async def test_only_one(self, site: dict[str, Any]) -> None:
        modules = {
            **site,
            "/renderer/_default.page.server.py": {"on_before_prerender": lambda page_contexts: None},
            "/pages/admin/_default.page.server.py": {"on_before_prerender": lambda page_contexts: None},
        }
        with pytest.raises(UsageError, match="only one on_before_prerender"):
            await GlobalContextStore(_CountingLoader(modules)).get()

    async def test_invalid_default_server_file(self, site: dict[str, Any]) -> None:
        modules = {**site, "/renderer/_default.page.server.py": {"render": "not a function"}}
        with pytest.raises(UsageError, match="should be a function"):
            await GlobalContextStore(_CountingLoader(modules)).get()
