"""The page-file manifest — what the build step hands to the renderer.

A manifest is a flat, path-sorted list of page files. Each file path
encodes its page identifier and its type::

    /pages/movie/index.page.py           isomorphic file of page /pages/movie/index
    /pages/movie/index.page.server.py    server file of the same page
    /pages/movie/index.page.route.py     route file of the same page
    /pages/_default.page.server.py       default server file for everything under /pages
    /renderer/_default.page.server.py    default server file for everything under /
    /pages/_error.page.py                the catch-all error page

Files are loaded lazily: a ``PageFile`` carries a loader returning the
file's exports, so only the files of the page being rendered are executed.
"""

from __future__ import annotations

import posixpath
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from wren._internal.invoke import invoke
from wren.errors import UsageError

# Longest suffix first so ".page.server" wins over ".page"
FILE_TYPES: tuple[str, ...] = (".page.server", ".page.client", ".page.route", ".page")

ISOMORPHIC = ".page"
SERVER = ".page.server"
CLIENT = ".page.client"
ROUTE = ".page.route"

ExportsLoader: TypeAlias = Callable[[], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True, slots=True)
class PageFile:
    """One file of the manifest.

    Attributes:
        file_path: Path of the file relative to the project root, starting with ``/``.
        file_type: One of ``FILE_TYPES``.
        page_id: Page identifier (the path without the type suffix).
        is_default: Whether this is a ``_default.page*`` file.
        loader: Returns the file's exports (sync or async).
    """

    file_path: str
    file_type: str
    page_id: str
    is_default: bool
    loader: ExportsLoader = field(compare=False, repr=False)

    async def load_file(self) -> Mapping[str, Any]:
        """Load the file and return its exports."""
        exports = await invoke(self.loader)
        if not isinstance(exports, Mapping):
            msg = f"Loading {self.file_path} should produce a mapping of exports, got {type(exports).__name__}."
            raise UsageError(msg)
        return exports

    @property
    def default_scope(self) -> str:
        """The directory a default file applies to.

        A default file in a ``renderer/`` directory applies to that
        directory's parent.
        """
        directory = posixpath.dirname(self.file_path)
        if posixpath.basename(directory) == "renderer":
            directory = posixpath.dirname(directory)
        return directory or "/"


@dataclass(frozen=True, slots=True)
class PageManifest:
    """All page files of a project, sorted by path."""

    files: tuple[PageFile, ...] = ()

    @classmethod
    def from_files(cls, files: Iterable[PageFile]) -> PageManifest:
        """Build a manifest, sorting *files* by path."""
        return cls(tuple(sorted(files, key=lambda f: f.file_path)))

    def of_type(self, file_type: str) -> tuple[PageFile, ...]:
        """Return the files of *file_type*, in path order."""
        return tuple(f for f in self.files if f.file_type == file_type)

    def __len__(self) -> int:
        return len(self.files)


ManifestLoader: TypeAlias = Callable[[], PageManifest | Awaitable[PageManifest]]
"""The build collaborator: returns the project's manifest (sync or async)."""


def parse_page_file_path(file_path: str) -> tuple[str, str]:
    """Split a page file path into ``(page_id, file_type)``.

    The source extension (``.py``) is optional::

        parse_page_file_path("/pages/about/index.page.server.py")
        # -> ("/pages/about/index", ".page.server")

    Raises ``UsageError`` if the path carries no page file suffix.
    """
    if not file_path.startswith("/"):
        msg = f"Page file paths should start with '/', got {file_path!r}."
        raise UsageError(msg)
    stem = file_path
    if not any(stem.endswith(t) for t in FILE_TYPES):
        stem = stem.rsplit(".", 1)[0]
    for file_type in FILE_TYPES:
        if stem.endswith(file_type):
            return stem[: -len(file_type)], file_type
    msg = f"{file_path} is not a page file: expected a suffix among {', '.join(FILE_TYPES)}."
    raise UsageError(msg)


def make_page_file(file_path: str, loader: ExportsLoader) -> PageFile:
    """Create a ``PageFile`` from its path and exports loader."""
    page_id, file_type = parse_page_file_path(file_path)
    return PageFile(
        file_path=file_path,
        file_type=file_type,
        page_id=page_id,
        is_default=posixpath.basename(page_id).startswith("_default"),
        loader=loader,
    )


def manifest_from_exports(
    modules: Mapping[str, Mapping[str, Any] | ExportsLoader],
) -> PageManifest:
    """Build a manifest from in-memory exports.

    Handy for embedding hosts that build page modules themselves, and
    for tests::

        manifest = manifest_from_exports({
            "/renderer/_default.page.server.py": {"render": render},
            "/pages/index.page.py": {"Page": "Home"},
        })

    Values are either export mappings or zero-argument loaders.
    """
    files: list[PageFile] = []
    for file_path, value in modules.items():
        if isinstance(value, Mapping):
            loader: ExportsLoader = _constant_loader(value)
        else:
            loader = value
        files.append(make_page_file(file_path, loader))
    return PageManifest.from_files(files)


def _constant_loader(exports: Mapping[str, Any]) -> ExportsLoader:
    def load() -> Mapping[str, Any]:
        return exports

    return load


# -- Lookups --


def find_page_file(files: Iterable[PageFile], page_id: str) -> PageFile | None:
    """Return the page-specific file of *page_id*, or ``None``."""
    matches = [f for f in files if not f.is_default and f.page_id == page_id]
    if len(matches) > 1:
        paths = ", ".join(f.file_path for f in matches)
        msg = f"Page {page_id} has several files of the same type: {paths}. Keep only one."
        raise UsageError(msg)
    return matches[0] if matches else None


def find_default_files(files: Iterable[PageFile]) -> list[PageFile]:
    """Return every default file, in path order."""
    return [f for f in files if f.is_default]


def find_default_file(files: Iterable[PageFile], page_id: str) -> PageFile | None:
    """Return the nearest default file enclosing *page_id*, or ``None``.

    The deepest scope wins: ``/pages/admin/_default.page.server.py``
    overrides ``/renderer/_default.page.server.py`` for admin pages.
    """
    candidates = [f for f in find_default_files(files) if _in_scope(page_id, f.default_scope)]
    if not candidates:
        return None
    depth = max(_scope_depth(f.default_scope) for f in candidates)
    nearest = [f for f in candidates if _scope_depth(f.default_scope) == depth]
    if len(nearest) > 1:
        paths = ", ".join(f.file_path for f in nearest)
        msg = f"Several default files apply to page {page_id} at the same level: {paths}. Keep only one."
        raise UsageError(msg)
    return nearest[0]


def _in_scope(page_id: str, scope: str) -> bool:
    if scope == "/":
        return True
    return page_id.startswith(scope.rstrip("/") + "/")


def _scope_depth(scope: str) -> int:
    return len([p for p in scope.split("/") if p])


def determine_page_ids(manifest: PageManifest) -> tuple[str, ...]:
    """All page identifiers of the project, sorted."""
    return tuple(sorted({f.page_id for f in manifest.files if not f.is_default}))


def is_error_page(page_id: str) -> bool:
    """Whether *page_id* is the catch-all error page."""
    return posixpath.basename(page_id) == "_error"


def get_error_page_id(all_page_ids: Iterable[str]) -> str | None:
    """Return the error page id, or ``None`` if the project has none."""
    error_pages = [p for p in all_page_ids if is_error_page(p)]
    if len(error_pages) > 1:
        msg = f"Only one _error page can be defined, found: {', '.join(error_pages)}."
        raise UsageError(msg)
    return error_pages[0] if error_pages else None
