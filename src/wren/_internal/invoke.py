"""Calling user hooks.

Every page-file hook (``route``, ``on_before_route``, ``on_before_render``,
``render``, ``prerender``, ``on_before_prerender``) may be written as a
plain function or as a coroutine function; the pipeline awaits whichever
it gets through ``invoke()``.
"""

import inspect
from typing import Any


async def invoke(hook: Any, *args: Any, **kwargs: Any) -> Any:
    """Return what *hook* returns, awaited when it is awaitable."""
    result = hook(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
