"""Hook resolution — locate and validate the page files of one page.

A page draws its hooks from four layers::

                    page-specific            default (nearest enclosing)
    isomorphic      movie/index.page.py      _default.page.py
    server          movie/index.page.server.py   renderer/_default.page.server.py

For each layer the page-specific file overrides the default one. Every
page needs at least one server file, since that is where ``render()``
lives.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from wren.errors import UsageError
from wren.manifest import ISOMORPHIC, SERVER, PageFile, find_default_file, find_page_file
from wren.pages.types import HookDescriptor, LoadedPageFiles, PageIsomorphicFile, PageServerFile

if TYPE_CHECKING:
    from wren.pages.context import PageContextBuilder

SERVER_FILE_EXPORTS = frozenset(
    {
        "render",
        "on_before_render",
        "pass_to_client",
        "prerender",
        "do_not_prerender",
        "on_before_prerender",
    }
)

# Old export names and their replacement
_RENAMED_EXPORTS = {
    "add_page_context": "on_before_render",
    "_on_before_prerender": "on_before_prerender",
}

_CALLABLE_EXPORTS = ("render", "on_before_render", "prerender", "on_before_prerender")


def assert_server_file_exports(exports: Mapping[str, Any], file_path: str) -> None:
    """Validate the exports of a ``.page.server`` file.

    Raises ``UsageError`` naming *file_path* and the offending export.
    """
    for old, new in _RENAMED_EXPORTS.items():
        if old in exports:
            msg = f"{file_path} exports `{old}`, which has been renamed: export `{new}` instead."
            raise UsageError(msg)

    unknown = sorted(set(exports) - SERVER_FILE_EXPORTS)
    if unknown:
        msg = (
            f"{file_path} exports unknown names: {', '.join(unknown)}. "
            f"Only {', '.join(sorted(SERVER_FILE_EXPORTS))} may be exported. "
            "Prefix private module-level names with an underscore or declare __all__."
        )
        raise UsageError(msg)

    for name in _CALLABLE_EXPORTS:
        if name in exports and not callable(exports[name]):
            msg = f"The {name}() hook defined in {file_path} should be a function."
            raise UsageError(msg)

    if "pass_to_client" in exports:
        value = exports["pass_to_client"]
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            msg = f"The `pass_to_client` export defined in {file_path} should be a list of strings."
            raise UsageError(msg)

    if "do_not_prerender" in exports and not isinstance(exports["do_not_prerender"], bool):
        msg = f"The `do_not_prerender` export defined in {file_path} should be True or False."
        raise UsageError(msg)


def assert_isomorphic_file_exports(exports: Mapping[str, Any], file_path: str) -> None:
    """Validate the exports of a ``.page`` file.

    Isomorphic files may export anything; they are the page's public
    exports. Only the hook they may declare is checked.
    """
    if "add_page_context" in exports:
        msg = f"{file_path} exports `add_page_context`, which has been renamed: export `on_before_render` instead."
        raise UsageError(msg)
    if "on_before_render" in exports and not callable(exports["on_before_render"]):
        msg = f"The on_before_render() hook defined in {file_path} should be a function."
        raise UsageError(msg)


def _before_render_hook(exports: Mapping[str, Any], file_path: str) -> HookDescriptor | None:
    func = exports.get("on_before_render")
    if func is None:
        return None
    return HookDescriptor(file_path, "on_before_render", func)


async def _load_server_file(page_file: PageFile | None) -> PageServerFile | None:
    if page_file is None:
        return None
    exports = await page_file.load_file()
    assert_server_file_exports(exports, page_file.file_path)
    return PageServerFile(
        file_path=page_file.file_path,
        file_exports=MappingProxyType(dict(exports)),
        on_before_render=_before_render_hook(exports, page_file.file_path),
        is_default=page_file.is_default,
    )


async def _load_isomorphic_file(page_file: PageFile | None) -> PageIsomorphicFile | None:
    if page_file is None:
        return None
    exports = await page_file.load_file()
    assert_isomorphic_file_exports(exports, page_file.file_path)
    return PageIsomorphicFile(
        file_path=page_file.file_path,
        file_exports=MappingProxyType(dict(exports)),
        on_before_render=_before_render_hook(exports, page_file.file_path),
        is_default=page_file.is_default,
    )


async def load_page_files(page_context: PageContextBuilder) -> LoadedPageFiles:
    """Resolve and load the four hook layers of the context's page.

    Adds ``Page`` and ``page_exports`` to the context and keeps the
    loaded files on the builder.

    Raises ``UsageError`` when no server file applies to the page or
    when an export has the wrong shape.
    """
    global_context = page_context.global_context
    page_id = page_context.page_id
    assert global_context is not None
    assert isinstance(page_id, str)

    manifest = global_context.all_page_files
    server_files = manifest.of_type(SERVER)
    if not server_files:
        msg = (
            "No *.page.server.py file found. Create one; a _default.page.server.py "
            "applies to all pages in and below its directory."
        )
        raise UsageError(msg)

    server_file = find_page_file(server_files, page_id)
    server_file_default = find_default_file(server_files, page_id)
    if server_file is None and server_file_default is None:
        msg = (
            f"Page {page_id} has no server file: create {page_id}.page.server.py "
            "or a _default.page.server.py in one of its parent directories."
        )
        raise UsageError(msg)

    isomorphic_files = manifest.of_type(ISOMORPHIC)
    page_isomorphic_file = await _load_isomorphic_file(find_page_file(isomorphic_files, page_id))
    page_isomorphic_file_default = await _load_isomorphic_file(find_default_file(isomorphic_files, page_id))
    page_server_file = await _load_server_file(server_file)
    page_server_file_default = await _load_server_file(server_file_default)

    pass_to_client: tuple[str, ...] = ()
    for loaded in (page_server_file, page_server_file_default):
        if loaded is not None and loaded.pass_to_client is not None:
            pass_to_client = loaded.pass_to_client
            break

    page_exports: dict[str, Any] = {}
    for loaded_iso in (page_isomorphic_file_default, page_isomorphic_file):
        if loaded_iso is not None:
            page_exports.update(loaded_iso.file_exports)

    page_files = LoadedPageFiles(
        page_isomorphic_file=page_isomorphic_file,
        page_isomorphic_file_default=page_isomorphic_file_default,
        page_server_file=page_server_file,
        page_server_file_default=page_server_file_default,
        pass_to_client=pass_to_client,
    )
    page_context.page_files = page_files
    page_context.add(Page=page_exports.get("Page"), page_exports=MappingProxyType(page_exports))
    return page_files
