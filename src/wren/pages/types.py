"""Data models for loaded page files and their hooks.

Immutable frozen dataclasses built once per request, when the hook
resolution engine loads the files of the page being rendered.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class HookDescriptor:
    """A user hook exported by a page file.

    Identity is the owning file path plus the hook name; two descriptors
    of different files never compare equal, even with the same function.

    Attributes:
        file_path: Page file exporting the hook.
        hook_name: Export name (``on_before_render``, ``render``, ...).
        func: The exported callable, sync or async.
    """

    file_path: str
    hook_name: str
    func: Callable[..., Any] = field(compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class PageServerFile:
    """A loaded ``.page.server`` file.

    Attributes:
        file_path: Path of the file.
        file_exports: Validated exports of the file.
        on_before_render: The file's before-render hook, if any.
        is_default: Whether this is a ``_default.page.server`` file.
    """

    file_path: str
    file_exports: Mapping[str, Any] = field(compare=False, repr=False)
    on_before_render: HookDescriptor | None = field(default=None, compare=False)
    is_default: bool = False

    @property
    def render(self) -> HookDescriptor | None:
        func = self.file_exports.get("render")
        if func is None:
            return None
        return HookDescriptor(self.file_path, "render", func)

    @property
    def prerender(self) -> HookDescriptor | None:
        func = self.file_exports.get("prerender")
        if func is None:
            return None
        return HookDescriptor(self.file_path, "prerender", func)

    @property
    def pass_to_client(self) -> tuple[str, ...] | None:
        value = self.file_exports.get("pass_to_client")
        return tuple(value) if value is not None else None

    @property
    def do_not_prerender(self) -> bool:
        return bool(self.file_exports.get("do_not_prerender", False))


@dataclass(frozen=True, slots=True)
class PageIsomorphicFile:
    """A loaded ``.page`` file — the page's own, public exports."""

    file_path: str
    file_exports: Mapping[str, Any] = field(compare=False, repr=False)
    on_before_render: HookDescriptor | None = field(default=None, compare=False)
    is_default: bool = False


@dataclass(frozen=True, slots=True)
class LoadedPageFiles:
    """The four hook layers of one page, resolved.

    Page-specific files override default files; isomorphic hooks run
    before server hooks.
    """

    page_isomorphic_file: PageIsomorphicFile | None
    page_isomorphic_file_default: PageIsomorphicFile | None
    page_server_file: PageServerFile | None
    page_server_file_default: PageServerFile | None
    pass_to_client: tuple[str, ...] = ()

    @property
    def server_files(self) -> tuple[PageServerFile, ...]:
        """Server files, page-specific first."""
        return tuple(f for f in (self.page_server_file, self.page_server_file_default) if f)

    @property
    def do_not_prerender(self) -> bool:
        return any(f.do_not_prerender for f in self.server_files)
