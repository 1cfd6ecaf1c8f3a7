"""URL-to-page routing.

Each page is reached through exactly one strategy: a route string or a
route function declared in its ``.page.route`` file, or otherwise the
filesystem route derived from its page id. Route tables are compiled
once, with the global context.

When several routes match, the winner is decided by a fixed precedence
(lower wins), never by evaluation order:

0. route strings without parameters (``/about``)
1. route functions (a numeric ``match`` ranks higher values first)
2. parametrized route strings (fewer parameters first, catch-alls last)
3. filesystem routes

Ties are broken by manifest order (sorted page ids).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from wren._internal.invoke import invoke
from wren.errors import HookFailure, UsageError
from wren.manifest import ROUTE, PageManifest, find_default_files, find_page_file, is_error_page
from wren.pages.types import HookDescriptor
from wren.routing.route import PageRoute, PathSegment, RouteResult

if TYPE_CHECKING:
    from wren.pages.context import PageContextBuilder

logger = logging.getLogger("wren.routing")

# Regex pattern for each supported parameter type
CONVERTERS: dict[str, str] = {
    "str": r"[^/]+",
    "int": r"\d+",
    "float": r"\d+(?:\.\d+)?",
    "path": r".+",
}

_ROUTE_FILE_EXPORTS = frozenset({"route"})
_DEFAULT_ROUTE_FILE_EXPORTS = frozenset({"on_before_route"})
_ROUTE_FUNCTION_RESULT_KEYS = frozenset({"match", "route_params"})

# Filesystem route segments that don't show up in URLs
_FILESYSTEM_IGNORED_SEGMENTS = frozenset({"pages", "src", "index"})

# Precedence classes
_EXACT_STRING = 0
_FUNCTION = 1
_PARAM_STRING = 2
_FILESYSTEM = 3


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route string into segments.

    Examples::

        "/movies"             -> [PathSegment("movies")]
        "/movies/{id}"        -> [PathSegment("movies"), PathSegment("{id}", is_param=True, ...)]
        "/movies/{id:int}"    -> [..., PathSegment("{id:int}", is_param=True, param_type="int")]
        "/docs/{rest:path}"   -> [..., PathSegment("{rest:path}", is_param=True, param_type="path")]

    Raises ``UsageError`` for ``<param>`` and ``:param`` syntaxes and
    for unknown parameter types.
    """
    segments: list[PathSegment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        if (part.startswith("<") and part.endswith(">")) or part.startswith(":"):
            msg = (
                f"Route string {path!r} uses an unsupported parameter syntax. "
                "Use {param} instead of <param> or :param."
            )
            raise UsageError(msg)
        if part.startswith("{") and part.endswith("}"):
            inner = part[1:-1]
            if ":" in inner:
                param_name, param_type = inner.split(":", 1)
            else:
                param_name = inner
                param_type = "str"
            if param_type not in CONVERTERS:
                msg = (
                    f"Route string {path!r} uses unknown parameter type {param_type!r}. "
                    f"Known types: {', '.join(CONVERTERS)}."
                )
                raise UsageError(msg)
            segments.append(
                PathSegment(
                    value=part,
                    is_param=True,
                    param_name=param_name,
                    param_type=param_type,
                )
            )
        else:
            segments.append(PathSegment(value=part))
    return segments


def match_route_string(route_string: str, url_pathname: str) -> dict[str, str] | None:
    """Match *url_pathname* against *route_string*.

    Returns the route params on a match, ``None`` otherwise. Trailing
    slashes are ignored; a ``path`` parameter consumes the rest of the
    URL and must be the last segment.
    """
    segments = parse_path(route_string)
    parts = [p for p in url_pathname.strip("/").split("/") if p]
    params: dict[str, str] = {}

    for index, seg in enumerate(segments):
        if seg.is_param and seg.param_type == "path":
            if index >= len(parts):
                return None
            params[seg.param_name or "path"] = "/".join(parts[index:])
            return params
        if index >= len(parts):
            return None
        part = parts[index]
        if seg.is_param:
            if not re.fullmatch(CONVERTERS[seg.param_type], part):
                return None
            params[seg.param_name or ""] = part
        elif seg.value != part:
            return None

    if len(parts) != len(segments):
        return None
    return params


def get_filesystem_route(page_id: str) -> str:
    """Derive the URL of a page from its id.

    ``pages``, ``src`` and ``index`` segments are dropped::

        "/pages/index"        -> "/"
        "/pages/about/index"  -> "/about"
        "/pages/movie/list"   -> "/movie/list"
    """
    parts = [p for p in page_id.split("/") if p and p not in _FILESYSTEM_IGNORED_SEGMENTS]
    return "/" + "/".join(parts)


def _match_filesystem_route(filesystem_route: str, url_pathname: str) -> bool:
    a = filesystem_route.rstrip("/").lower() or "/"
    b = url_pathname.rstrip("/").lower() or "/"
    return a == b


# -- Compilation --


async def load_page_routes(
    manifest: PageManifest,
    all_page_ids: tuple[str, ...],
) -> tuple[tuple[PageRoute, ...], HookDescriptor | None]:
    """Compile the route table and load the ``on_before_route`` hook.

    Route files are loaded in manifest order. The error page gets no
    route. Only default route files may declare ``on_before_route``,
    and only one of them.
    """
    route_files = manifest.of_type(ROUTE)

    on_before_route: HookDescriptor | None = None
    for default_file in find_default_files(route_files):
        exports = await default_file.load_file()
        _assert_route_file_exports(exports, default_file.file_path, _DEFAULT_ROUTE_FILE_EXPORTS)
        hook = exports.get("on_before_route")
        if hook is None:
            continue
        if not callable(hook):
            msg = f"The on_before_route() hook defined in {default_file.file_path} should be a function."
            raise UsageError(msg)
        if on_before_route is not None:
            msg = (
                "There can be only one on_before_route() hook, found one in "
                f"{on_before_route.file_path} and one in {default_file.file_path}."
            )
            raise UsageError(msg)
        on_before_route = HookDescriptor(default_file.file_path, "on_before_route", hook)

    page_routes: list[PageRoute] = []
    for page_id in all_page_ids:
        if is_error_page(page_id):
            continue
        route_file = find_page_file(route_files, page_id)
        if route_file is None:
            page_routes.append(PageRoute(page_id, filesystem_route=get_filesystem_route(page_id)))
            continue

        exports = await route_file.load_file()
        _assert_route_file_exports(exports, route_file.file_path, _ROUTE_FILE_EXPORTS)
        value = exports.get("route")
        if isinstance(value, str):
            if not value.startswith("/"):
                msg = f"The route string {value!r} defined in {route_file.file_path} should start with '/'."
                raise UsageError(msg)
            # Fail early on malformed route strings
            parse_path(value)
            page_routes.append(PageRoute(page_id, route_string=value, route_file_path=route_file.file_path))
        elif callable(value):
            page_routes.append(PageRoute(page_id, route_function=value, route_file_path=route_file.file_path))
        else:
            msg = (
                f"{route_file.file_path} should export `route`, "
                "a route string (e.g. '/movie/{movie_id}') or a route function."
            )
            raise UsageError(msg)

    return tuple(page_routes), on_before_route


def _assert_route_file_exports(exports: Mapping[str, Any], file_path: str, allowed: frozenset[str]) -> None:
    unknown = sorted(set(exports) - allowed)
    if unknown:
        msg = (
            f"{file_path} exports unknown names: {', '.join(unknown)}. "
            f"Only {', '.join(sorted(allowed))} may be exported."
        )
        raise UsageError(msg)


# -- Matching --


async def route(page_context: PageContextBuilder) -> RouteResult | HookFailure:
    """Resolve the page of *page_context*'s URL.

    Returns a ``RouteResult`` (``page_id=None`` when nothing matches),
    or a ``HookFailure`` when the ``on_before_route`` hook or a route
    function raises.
    """
    global_context = page_context.global_context
    assert global_context is not None

    hook = global_context.on_before_route_hook
    if hook is not None:
        outcome = await _run_on_before_route_hook(hook, page_context)
        if outcome is not None:
            return outcome

    url_pathname = page_context["url_pathname"]
    view = page_context.view()
    candidates: list[tuple[tuple[Any, ...], PageRoute, dict[str, str]]] = []

    for index, page_route in enumerate(global_context.page_routes):
        if page_route.route_string is not None:
            params = match_route_string(page_route.route_string, url_pathname)
            if params is None:
                continue
            if not params:
                key: tuple[Any, ...] = (_EXACT_STRING, 0, index)
            else:
                segments = parse_path(page_route.route_string)
                is_catch_all = any(s.param_type == "path" for s in segments if s.is_param)
                key = (_PARAM_STRING, (is_catch_all, len(params)), index)
            candidates.append((key, page_route, params))

        elif page_route.route_function is not None:
            try:
                result = await invoke(page_route.route_function, view)
            except Exception as exc:
                assert page_route.route_file_path is not None
                return HookFailure(exc, "route", page_route.route_file_path)
            matched = _resolve_route_function_result(result, page_route)
            if matched is None:
                continue
            weight, params = matched
            candidates.append(((_FUNCTION, -weight, index), page_route, params))

        else:
            assert page_route.filesystem_route is not None
            if _match_filesystem_route(page_route.filesystem_route, url_pathname):
                candidates.append(((_FILESYSTEM, 0, index), page_route, {}))

    if not candidates:
        return RouteResult(page_id=None)

    candidates.sort(key=lambda c: c[0])
    _, winner, params = candidates[0]
    logger.debug("%s -> %s", url_pathname, winner.describe())
    return RouteResult(page_id=winner.page_id, route_params=params)


async def _run_on_before_route_hook(
    hook: HookDescriptor,
    page_context: PageContextBuilder,
) -> RouteResult | HookFailure | None:
    """Run ``on_before_route``; return a result if the hook decided the route."""
    try:
        result = await invoke(hook.func, page_context.view())
    except Exception as exc:
        return HookFailure(exc, hook.hook_name, hook.file_path)

    if result is None:
        return None
    if not isinstance(result, Mapping) or set(result) - {"page_context"}:
        msg = (
            f"The on_before_route() hook of {hook.file_path} should return None "
            "or a dict with a single `page_context` key."
        )
        raise UsageError(msg)

    addendum = result.get("page_context")
    if addendum is None:
        return None
    if not isinstance(addendum, Mapping):
        msg = f"The `page_context` returned by the on_before_route() hook of {hook.file_path} should be a dict."
        raise UsageError(msg)

    addendum = dict(addendum)
    page_id = addendum.pop("page_id", None)
    route_params = addendum.pop("route_params", None)
    page_context.merge(addendum)
    if page_id is None:
        return None

    global_context = page_context.global_context
    assert global_context is not None
    if page_id not in global_context.all_page_ids:
        msg = f"The on_before_route() hook of {hook.file_path} returned an unknown page id {page_id!r}."
        raise UsageError(msg)
    return RouteResult(page_id=page_id, route_params=dict(route_params or {}))


def _resolve_route_function_result(
    result: Any,
    page_route: PageRoute,
) -> tuple[float, dict[str, str]] | None:
    """Normalize a route function's return value to ``(weight, params)``."""
    file_path = page_route.route_file_path
    if result is None or result is False:
        return None
    if result is True:
        return 0.0, {}
    if not isinstance(result, Mapping):
        msg = (
            f"The route function of {file_path} should return a bool "
            "or a dict with keys `match` and `route_params`."
        )
        raise UsageError(msg)

    unknown = sorted(set(result) - _ROUTE_FUNCTION_RESULT_KEYS)
    if unknown:
        msg = (
            f"The route function of {file_path} returned unknown keys: {', '.join(unknown)}. "
            "Only `match` and `route_params` are allowed."
        )
        raise UsageError(msg)

    match = result.get("match", True)
    if match is False or match is None:
        return None
    if match is True:
        weight = 0.0
    elif isinstance(match, (int, float)):
        weight = float(match)
    else:
        msg = f"The route function of {file_path} returned a `match` that is neither a bool nor a number."
        raise UsageError(msg)

    route_params = result.get("route_params") or {}
    if not isinstance(route_params, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in route_params.items()
    ):
        msg = f"The route function of {file_path} should return `route_params` as a dict of strings."
        raise UsageError(msg)
    return weight, dict(route_params)


# -- Reporting --


def describe_page_routes(page_routes: tuple[PageRoute, ...]) -> list[str]:
    """Numbered, sorted one-line descriptions of *page_routes*."""
    lines = sorted(page_route.describe() for page_route in page_routes)
    width = len(str(len(lines)))
    return [f" ({str(i).zfill(width)}) {line}" for i, line in enumerate(lines, start=1)]
