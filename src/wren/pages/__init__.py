"""Page files and their hooks.

A page is made of up to four hook-bearing files, resolved per page id::

    pages/
      _default.page.py              # default isomorphic hooks
      renderer/
        _default.page.server.py     # default render() and server hooks
      movie/
        index.page.py               # Page component, isomorphic hooks
        index.page.server.py        # server-only hooks
        index.page.route.py         # route = "/movie/{movie_id}"
      _error.page.py                # the error page

Page-specific files override default files, isomorphic hooks run
before server hooks.
"""

from wren.pages.context import PageContext, PageContextBuilder
from wren.pages.files import load_page_files
from wren.pages.hooks import HookPageContext, execute_on_before_render_hooks
from wren.pages.render import execute_render_hook
from wren.pages.types import HookDescriptor, LoadedPageFiles, PageIsomorphicFile, PageServerFile

__all__ = [
    "HookDescriptor",
    "HookPageContext",
    "LoadedPageFiles",
    "PageContext",
    "PageContextBuilder",
    "PageIsomorphicFile",
    "PageServerFile",
    "execute_on_before_render_hooks",
    "execute_render_hook",
    "load_page_files",
]
