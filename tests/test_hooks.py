"""Tests for wren.pages.hooks — before-render chains and their control operations."""

from collections.abc import Callable
from typing import Any

import anyio
import pytest

from wren.errors import HookFailure, UsageError
from wren.global_context import GlobalContextStore
from wren.pages.context import PageContextBuilder
from wren.pages.files import load_page_files
from wren.pages.hooks import (
    HookPageContext,
    Layer,
    OnBeforeRenderController,
    ServerHooksState,
    assert_hook_result,
    assert_page_context_provided_by_user,
    execute_on_before_render_hooks,
)
from wren.pages.types import HookDescriptor

PAGE = "/pages/movie/index"
ISO = "/pages/movie/index.page.py"
SERVER = "/pages/movie/index.page.server.py"


def _render(page_context: Any) -> None:
    return None


def _modules(iso_hook: Any = None, server_hook: Any = None, **extra: Any) -> dict[str, Any]:
    modules: dict[str, Any] = {
        "/renderer/_default.page.server.py": {"render": _render},
        ISO: {"Page": "Movie"},
        SERVER: {},
    }
    if iso_hook is not None:
        modules[ISO] = {"Page": "Movie", "on_before_render": iso_hook}
    if server_hook is not None:
        modules[SERVER] = {"on_before_render": server_hook}
    modules.update(extra)
    return modules


async def _builder(
    make_store: Callable[..., GlobalContextStore],
    modules: dict[str, Any],
    *,
    is_page_context_request: bool = False,
) -> PageContextBuilder:
    store = make_store(modules)
    builder = PageContextBuilder({"url": "/movie/42"})
    builder.global_context = await store.get()
    builder.is_page_context_request = is_page_context_request
    builder.add(page_id=PAGE, route_params={"movie_id": "42"})
    await load_page_files(builder)
    return builder


class TestServerChainOnly:
    async def test_server_hook_runs(self, make_store: Callable[..., GlobalContextStore]) -> None:
        def server_hook(page_context: Any) -> Any:
            return {"page_context": {"movie": f"Movie {page_context.route_params['movie_id']}"}}

        builder = await _builder(make_store, _modules(server_hook=server_hook))
        assert await execute_on_before_render_hooks(builder) is None
        assert builder["movie"] == "Movie 42"

    async def test_async_hook(self, make_store: Callable[..., GlobalContextStore]) -> None:
        async def server_hook(page_context: Any) -> Any:
            await anyio.sleep(0)
            return {"page_context": {"movie": "Async"}}

        builder = await _builder(make_store, _modules(server_hook=server_hook))
        assert await execute_on_before_render_hooks(builder) is None
        assert builder["movie"] == "Async"

    async def test_no_hooks(self, make_store: Callable[..., GlobalContextStore]) -> None:
        builder = await _builder(make_store, _modules())
        assert await execute_on_before_render_hooks(builder) is None

    async def test_page_hook_overrides_default(self, make_store: Callable[..., GlobalContextStore]) -> None:
        calls: list[str] = []
        modules = _modules(
            server_hook=lambda page_context: calls.append("page"),
            **{
                "/renderer/_default.page.server.py": {
                    "render": _render,
                    "on_before_render": lambda page_context: calls.append("default"),
                }
            },
        )
        builder = await _builder(make_store, modules)
        await execute_on_before_render_hooks(builder)
        assert calls == ["page"]

    async def test_none_result(self, make_store: Callable[..., GlobalContextStore]) -> None:
        builder = await _builder(make_store, _modules(server_hook=lambda page_context: {"page_context": None}))
        assert await execute_on_before_render_hooks(builder) is None


class TestIsomorphicChain:
    async def test_server_runs_after_when_not_controlled(self, make_store: Callable[..., GlobalContextStore]) -> None:
        calls: list[str] = []

        def iso_hook(page_context: Any) -> Any:
            calls.append("iso")
            return {"page_context": {"title": "Iso"}}

        def server_hook(page_context: Any) -> Any:
            calls.append("server")
            return {"page_context": {"movie": "Server"}}

        builder = await _builder(make_store, _modules(iso_hook, server_hook))
        assert await execute_on_before_render_hooks(builder) is None
        assert calls == ["iso", "server"]
        assert builder["title"] == "Iso"
        assert builder["movie"] == "Server"

    async def test_skip(self, make_store: Callable[..., GlobalContextStore]) -> None:
        calls: list[str] = []

        def iso_hook(page_context: Any) -> Any:
            page_context.skip_on_before_render_server_hooks()
            return {"page_context": {"movie": "Cached"}}

        builder = await _builder(make_store, _modules(iso_hook, lambda page_context: calls.append("server")))
        assert await execute_on_before_render_hooks(builder) is None
        assert calls == []
        assert builder["movie"] == "Cached"

    async def test_run(self, make_store: Callable[..., GlobalContextStore]) -> None:
        seen: dict[str, Any] = {}

        async def iso_hook(page_context: Any) -> Any:
            result = await page_context.run_on_before_render_server_hooks()
            seen["result"] = result
            seen["visible"] = page_context.movie
            return {"page_context": {"title": result["page_context"]["movie"].upper()}}

        builder = await _builder(make_store, _modules(iso_hook, lambda page_context: {"page_context": {"movie": "up"}}))
        assert await execute_on_before_render_hooks(builder) is None
        assert seen == {"result": {"page_context": {"movie": "up"}}, "visible": "up"}
        assert builder["title"] == "UP"

    async def test_run_without_server_hook(self, make_store: Callable[..., GlobalContextStore]) -> None:
        async def iso_hook(page_context: Any) -> Any:
            return await page_context.run_on_before_render_server_hooks()

        builder = await _builder(make_store, _modules(iso_hook))
        assert await execute_on_before_render_hooks(builder) is None

    async def test_hook_receives_hook_page_context(self, make_store: Callable[..., GlobalContextStore]) -> None:
        seen: list[Any] = []
        builder = await _builder(make_store, _modules(lambda page_context: seen.append(page_context)))
        await execute_on_before_render_hooks(builder)
        assert isinstance(seen[0], HookPageContext)

    async def test_raw_data_request_skips_isomorphic(self, make_store: Callable[..., GlobalContextStore]) -> None:
        calls: list[str] = []
        modules = _modules(
            lambda page_context: calls.append("iso"),
            lambda page_context: calls.append("server"),
        )
        builder = await _builder(make_store, modules, is_page_context_request=True)
        assert await execute_on_before_render_hooks(builder) is None
        assert calls == ["server"]

    async def test_provided_by_prerender_hook(self, make_store: Callable[..., GlobalContextStore]) -> None:
        calls: list[str] = []
        modules = _modules(
            lambda page_context: calls.append("iso"),
            lambda page_context: calls.append("server"),
        )
        builder = await _builder(make_store, modules)
        builder.page_context_already_provided_by_prerender_hook = True
        assert await execute_on_before_render_hooks(builder) is None
        assert calls == []


class TestControlOperationMisuse:
    async def test_run_twice(self, make_store: Callable[..., GlobalContextStore]) -> None:
        async def iso_hook(page_context: Any) -> None:
            await page_context.run_on_before_render_server_hooks()
            await page_context.run_on_before_render_server_hooks()

        builder = await _builder(make_store, _modules(iso_hook, lambda page_context: None))
        with pytest.raises(UsageError, match="already called"):
            await execute_on_before_render_hooks(builder)

    async def test_skip_twice(self, make_store: Callable[..., GlobalContextStore]) -> None:
        def iso_hook(page_context: Any) -> None:
            page_context.skip_on_before_render_server_hooks()
            page_context.skip_on_before_render_server_hooks()

        builder = await _builder(make_store, _modules(iso_hook))
        with pytest.raises(UsageError, match="can be called only once"):
            await execute_on_before_render_hooks(builder)

    async def test_skip_after_run(self, make_store: Callable[..., GlobalContextStore]) -> None:
        async def iso_hook(page_context: Any) -> None:
            await page_context.run_on_before_render_server_hooks()
            page_context.skip_on_before_render_server_hooks()

        builder = await _builder(make_store, _modules(iso_hook, lambda page_context: None))
        with pytest.raises(UsageError, match="after having called"):
            await execute_on_before_render_hooks(builder)

    async def test_run_after_skip(self, make_store: Callable[..., GlobalContextStore]) -> None:
        async def iso_hook(page_context: Any) -> None:
            page_context.skip_on_before_render_server_hooks()
            await page_context.run_on_before_render_server_hooks()

        builder = await _builder(make_store, _modules(iso_hook, lambda page_context: None))
        with pytest.raises(UsageError, match="after having called"):
            await execute_on_before_render_hooks(builder)

    async def test_call_after_hook_returned(self, make_store: Callable[..., GlobalContextStore]) -> None:
        kept: list[Any] = []
        builder = await _builder(make_store, _modules(lambda page_context: kept.append(page_context)))
        await execute_on_before_render_hooks(builder)
        with pytest.raises(UsageError, match="while the isomorphic"):
            kept[0].skip_on_before_render_server_hooks()


class TestFailures:
    async def test_server_hook_raises(self, make_store: Callable[..., GlobalContextStore]) -> None:
        def server_hook(page_context: Any) -> None:
            raise KeyError("movie")

        builder = await _builder(make_store, _modules(server_hook=server_hook))
        failure = await execute_on_before_render_hooks(builder)
        assert isinstance(failure, HookFailure)
        assert failure.hook_name == "on_before_render"
        assert failure.hook_file_path == SERVER
        assert isinstance(failure.error, KeyError)

    async def test_isomorphic_hook_raises(self, make_store: Callable[..., GlobalContextStore]) -> None:
        def iso_hook(page_context: Any) -> None:
            raise ValueError("bad")

        builder = await _builder(make_store, _modules(iso_hook, lambda page_context: None))
        failure = await execute_on_before_render_hooks(builder)
        assert isinstance(failure, HookFailure)
        assert failure.hook_file_path == ISO

    async def test_server_failure_through_run_is_reported(self, make_store: Callable[..., GlobalContextStore]) -> None:
        def server_hook(page_context: Any) -> None:
            raise KeyError("movie")

        async def iso_hook(page_context: Any) -> None:
            await page_context.run_on_before_render_server_hooks()

        builder = await _builder(make_store, _modules(iso_hook, server_hook))
        failure = await execute_on_before_render_hooks(builder)
        assert isinstance(failure, HookFailure)
        assert failure.hook_file_path == SERVER

    async def test_caught_server_failure_still_reported(self, make_store: Callable[..., GlobalContextStore]) -> None:
        def server_hook(page_context: Any) -> None:
            raise KeyError("movie")

        async def iso_hook(page_context: Any) -> Any:
            try:
                await page_context.run_on_before_render_server_hooks()
            except KeyError:
                return {"page_context": {"movie": None}}
            return None

        builder = await _builder(make_store, _modules(iso_hook, server_hook))
        failure = await execute_on_before_render_hooks(builder)
        assert isinstance(failure, HookFailure)
        assert failure.hook_file_path == SERVER

    async def test_invalid_result(self, make_store: Callable[..., GlobalContextStore]) -> None:
        builder = await _builder(make_store, _modules(server_hook=lambda page_context: ["movie"]))
        with pytest.raises(UsageError, match="should return None or a dict"):
            await execute_on_before_render_hooks(builder)

    async def test_unknown_result_key(self, make_store: Callable[..., GlobalContextStore]) -> None:
        builder = await _builder(make_store, _modules(server_hook=lambda page_context: {"pageContext": {}}))
        with pytest.raises(UsageError, match="unknown keys pageContext"):
            await execute_on_before_render_hooks(builder)

    async def test_cannot_set_page_id(self, make_store: Callable[..., GlobalContextStore]) -> None:
        builder = await _builder(
            make_store, _modules(server_hook=lambda page_context: {"page_context": {"page_id": "/pages/other"}})
        )
        with pytest.raises(UsageError, match="cannot change `page_id`"):
            await execute_on_before_render_hooks(builder)


class TestController:
    async def test_state_after_auto_run(self, make_store: Callable[..., GlobalContextStore]) -> None:
        builder = await _builder(make_store, _modules(lambda page_context: None, lambda page_context: None))
        controller = OnBeforeRenderController(builder)
        await controller.execute()
        assert controller.state is ServerHooksState.RUN_REQUESTED
        assert controller.fired == {Layer.ISOMORPHIC: [ISO], Layer.SERVER: [SERVER]}

    async def test_candidates_page_first(self, make_store: Callable[..., GlobalContextStore]) -> None:
        modules = _modules(
            server_hook=lambda page_context: None,
            **{
                "/renderer/_default.page.server.py": {
                    "render": _render,
                    "on_before_render": lambda page_context: None,
                }
            },
        )
        builder = await _builder(make_store, modules)
        controller = OnBeforeRenderController(builder)
        assert [f.file_path for f in controller.candidates(Layer.SERVER)] == [
            SERVER,
            "/renderer/_default.page.server.py",
        ]
        assert controller.candidates(Layer.ISOMORPHIC) == []


class TestResultAssertions:
    _hook = HookDescriptor("/pages/index.page.server.py", "on_before_render", _render)

    def test_none(self) -> None:
        assert assert_hook_result(None, self._hook) is None

    def test_allowed_keys(self) -> None:
        assert assert_hook_result({"page_contexts": []}, self._hook, ("page_contexts",)) == {"page_contexts": []}

    def test_page_context_none_is_empty(self) -> None:
        assert assert_page_context_provided_by_user(None, self._hook) == {}

    def test_page_context_not_a_dict(self) -> None:
        with pytest.raises(UsageError, match="should be a dict"):
            assert_page_context_provided_by_user(["movie"], self._hook)
