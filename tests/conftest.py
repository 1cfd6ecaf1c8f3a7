"""Shared fixtures: in-memory page manifests and renderers."""

from collections.abc import Callable, Mapping
from typing import Any

import pytest

from wren.config import RenderConfig
from wren.document import dangerously_skip_escape
from wren.global_context import GlobalContextStore
from wren.manifest import manifest_from_exports
from wren.renderer import Renderer

Modules = Mapping[str, Mapping[str, Any]]


def render_page_component(page_context: Any) -> Any:
    """A default render() hook: wraps ``Page`` (a string) in a document."""
    return dangerously_skip_escape(f"<html><body>{page_context.Page}</body></html>")


def basic_site() -> dict[str, dict[str, Any]]:
    return {
        "/renderer/_default.page.server.py": {"render": render_page_component},
        "/pages/index.page.py": {"Page": "Home"},
        "/pages/about/index.page.py": {"Page": "About"},
        "/pages/_error.page.py": {"Page": "Error"},
    }


@pytest.fixture
def make_store() -> Callable[..., GlobalContextStore]:
    def _make(modules: Modules, **config: Any) -> GlobalContextStore:
        return GlobalContextStore(lambda: manifest_from_exports(modules), RenderConfig(**config))

    return _make


@pytest.fixture
def make_renderer(make_store: Callable[..., GlobalContextStore]) -> Callable[..., Renderer]:
    def _make(modules: Modules, **config: Any) -> Renderer:
        return Renderer(make_store(modules, **config))

    return _make


@pytest.fixture
def site() -> dict[str, dict[str, Any]]:
    return basic_site()
