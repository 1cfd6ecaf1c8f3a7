"""The per-request page context: an append-only builder and its read-only view.

Every pipeline stage adds fields to one ``PageContextBuilder``; nothing
is ever removed. User hooks never see the builder. They receive a
``PageContext``, a live read-only view over the builder's public fields::

    def on_before_render(page_context):
        movie_id = page_context.route_params["movie_id"]
        return {"page_context": {"movie": load_movie(movie_id)}}

Before the ``render()`` hook runs, ``seal()`` asserts that the fields
every render hook relies on are present.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from wren._internal.urls import ParsedUrl
from wren.manifest import is_error_page

if TYPE_CHECKING:
    from wren.global_context import GlobalContext
    from wren.pages.types import LoadedPageFiles


class PageContext(Mapping[str, Any]):
    """Read-only view of a request's public page context.

    Supports attribute access (``page_context.url``), item access
    (``page_context["url"]``) and ``get()``. Fields appear as the
    pipeline populates them; reading one that is not populated yet
    raises ``AttributeError``/``KeyError``, ``get()`` returns the default.
    """

    __slots__ = ("_data",)

    def __init__(self, data: dict[str, Any]) -> None:
        object.__setattr__(self, "_data", data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getattr__(self, name: str) -> Any:
        try:
            return self._data[name]
        except KeyError:
            msg = f"page_context.{name} is not populated"
            raise AttributeError(msg) from None

    def __setattr__(self, name: str, value: Any) -> None:
        msg = (
            f"page_context is read-only; return {{'page_context': {{{name!r}: ...}}}} "
            "from a hook to add fields"
        )
        raise AttributeError(msg)

    def __delattr__(self, name: str) -> None:
        msg = "page_context fields cannot be removed"
        raise AttributeError(msg)

    def __repr__(self) -> str:
        return f"<PageContext {self._data!r}>"


class PageContextBuilder:
    """The internal, mutable accumulator of one request.

    Public fields live in ``data`` and are what user hooks and the
    embedding host see. Bookkeeping that only the pipeline needs lives
    in attributes.
    """

    __slots__ = (
        "data",
        "global_context",
        "is_page_context_request",
        "is_pre_rendering",
        "page_context_already_provided_by_prerender_hook",
        "page_files",
        "uses_client_router",
    )

    def __init__(self, init: Mapping[str, Any], *, is_pre_rendering: bool = False) -> None:
        self.data: dict[str, Any] = dict(init)
        self.global_context: GlobalContext | None = None
        self.page_files: LoadedPageFiles | None = None
        self.is_page_context_request = False
        self.is_pre_rendering = is_pre_rendering
        self.page_context_already_provided_by_prerender_hook = False
        self.uses_client_router = False

    # -- Accumulation --

    def add(self, **fields: Any) -> None:
        """Add or overwrite public fields."""
        self.data.update(fields)

    def merge(self, addendum: Mapping[str, Any]) -> None:
        """Shallow-merge *addendum*; later keys overwrite earlier ones."""
        self.data.update(addendum)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    @property
    def page_id(self) -> str | None:
        return self.data.get("page_id")

    # -- Release --

    def view(self) -> PageContext:
        """A live read-only view over the public fields."""
        return PageContext(self.data)

    def seal(self) -> PageContext:
        """Assert the public-release shape and return the read-only view.

        The error page additionally gets ``is404`` projected into
        ``page_props``.
        """
        data = self.data
        assert isinstance(data.get("url"), str)
        assert isinstance(data.get("url_pathname"), str)
        assert isinstance(data.get("url_parsed"), ParsedUrl)
        assert isinstance(data.get("route_params"), dict)
        assert "Page" in data
        assert isinstance(data.get("page_exports"), Mapping)

        page_id = self.page_id
        if page_id is not None and is_error_page(page_id):
            assert isinstance(data.get("is404"), bool)
            page_props = dict(data.get("page_props") or {})
            page_props["is404"] = data["is404"]
            data["page_props"] = page_props

        # Sorted keys read better in logs and debuggers
        items = sorted(data.items())
        data.clear()
        data.update(items)
        return self.view()
