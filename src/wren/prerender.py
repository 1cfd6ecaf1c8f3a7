"""Static prerendering of a whole site.

Collects the URLs to prerender, renders them concurrently and writes
``index.html`` (plus ``index.pageContext.json`` for client-routed
pages) per URL, and ``404.html`` from the error page.

URLs come from three places:

1. Routes without parameters (route strings like ``/about`` and
   filesystem routes).
2. ``prerender()`` hooks of ``.page.server`` files, returning URLs or
   ``{"url": ..., "page_context": {...}}`` dicts. A page context provided
   this way replaces the page's ``on_before_render`` hooks.
3. The ``on_before_prerender()`` hook, which receives every collected
   page context and may return ``{"page_contexts": [...]}`` to replace
   them.

Pages exporting ``do_not_prerender = True`` are skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio

from wren._internal.invoke import invoke
from wren.errors import HookFailure, UsageError
from wren.global_context import GlobalContext, GlobalContextStore
from wren.manifest import SERVER, find_default_file, find_page_file, is_error_page
from wren.pages.context import PageContextBuilder
from wren.pages.files import load_page_files
from wren.pages.hooks import assert_hook_result
from wren.pages.types import HookDescriptor
from wren.renderer import (
    PrerenderResult,
    add_computed_url_props,
    prerender_page,
    render_static_404_page,
    throw_prerender_error,
)
from wren.routing.router import route

logger = logging.getLogger("wren.prerender")


@dataclass(slots=True)
class PrerenderJob:
    """One URL to prerender."""

    url: str
    page_id: str | None = None
    route_params: dict[str, str] = field(default_factory=dict)
    page_context: dict[str, Any] | None = None


@dataclass(slots=True)
class PrerenderReport:
    """Everything a prerender run produced, keyed by URL."""

    pages: dict[str, PrerenderResult] = field(default_factory=dict)
    not_found: PrerenderResult | None = None
    skipped: list[str] = field(default_factory=list)


# -- Collection --


def _is_static_route_string(route_string: str) -> bool:
    return "{" not in route_string


async def _page_server_exports(global_context: GlobalContext, page_id: str) -> list[tuple[str, Mapping[str, Any]]]:
    server_files = global_context.all_page_files.of_type(SERVER)
    loaded = []
    for page_file in (find_page_file(server_files, page_id), find_default_file(server_files, page_id)):
        if page_file is not None:
            loaded.append((page_file.file_path, await page_file.load_file()))
    return loaded


def _normalize_prerender_item(item: Any, hook: HookDescriptor) -> PrerenderJob:
    if isinstance(item, str):
        url, page_context = item, None
    elif isinstance(item, Mapping) and isinstance(item.get("url"), str):
        url = item["url"]
        page_context = item.get("page_context")
        if page_context is not None and not isinstance(page_context, Mapping):
            msg = f"The prerender() hook of {hook.file_path} returned a `page_context` that is not a dict for {url}."
            raise UsageError(msg)
        page_context = dict(page_context) if page_context is not None else None
    else:
        msg = (
            f"The prerender() hook of {hook.file_path} should return URLs or dicts "
            f"{{'url': ..., 'page_context': {{...}}}}, got {item!r}."
        )
        raise UsageError(msg)
    if not url.startswith("/"):
        msg = f"The prerender() hook of {hook.file_path} returned {url!r}, which does not start with '/'."
        raise UsageError(msg)
    return PrerenderJob(url, page_context=page_context)


async def _run_prerender_hook(hook: HookDescriptor) -> list[PrerenderJob]:
    try:
        result = await invoke(hook.func)
    except Exception as exc:
        throw_prerender_error(HookFailure(exc, hook.hook_name, hook.file_path))
    if result is None:
        return []
    if isinstance(result, (str, Mapping)) or not isinstance(result, Iterable):
        msg = f"The prerender() hook of {hook.file_path} should return a list of URLs."
        raise UsageError(msg)
    return [_normalize_prerender_item(item, hook) for item in result]


async def collect_prerender_jobs(global_context: GlobalContext) -> list[PrerenderJob]:
    """Gather the URLs of the site, in URL order."""
    jobs: dict[str, PrerenderJob] = {}
    seen_hooks: set[tuple[str, str]] = set()

    for page_route in global_context.page_routes:
        url: str | None = None
        if page_route.route_string is not None and _is_static_route_string(page_route.route_string):
            url = page_route.route_string
        elif page_route.filesystem_route is not None:
            url = page_route.filesystem_route
        if url is not None:
            jobs.setdefault(url, PrerenderJob(url, page_id=page_route.page_id))

    for page_id in global_context.all_page_ids:
        if is_error_page(page_id):
            continue
        for file_path, exports in await _page_server_exports(global_context, page_id):
            func = exports.get("prerender")
            if func is None or (file_path, "prerender") in seen_hooks:
                continue
            seen_hooks.add((file_path, "prerender"))
            for job in await _run_prerender_hook(HookDescriptor(file_path, "prerender", func)):
                # URLs returned by a hook win over route-derived ones
                jobs[job.url] = job
            break

    ordered = sorted(jobs.values(), key=lambda j: j.url)
    hook = global_context.on_before_prerender_hook
    if hook is not None:
        ordered = await _run_on_before_prerender_hook(hook, ordered)
    return ordered


async def _run_on_before_prerender_hook(hook: HookDescriptor, jobs: list[PrerenderJob]) -> list[PrerenderJob]:
    page_contexts = [
        {"url": j.url, "page_id": j.page_id, "route_params": dict(j.route_params), **(j.page_context or {})}
        for j in jobs
    ]
    try:
        result = await invoke(hook.func, page_contexts)
    except Exception as exc:
        throw_prerender_error(HookFailure(exc, hook.hook_name, hook.file_path))
    result = assert_hook_result(result, hook, ("page_contexts",))
    if result is None or result.get("page_contexts") is None:
        return jobs

    replaced: list[PrerenderJob] = []
    for page_context in result["page_contexts"]:
        if not isinstance(page_context, Mapping) or not isinstance(page_context.get("url"), str):
            msg = f"The on_before_prerender() hook of {hook.file_path} should return page contexts with a `url`."
            raise UsageError(msg)
        extra = {k: v for k, v in page_context.items() if k not in ("url", "page_id", "route_params")}
        replaced.append(
            PrerenderJob(
                page_context["url"],
                page_id=page_context.get("page_id"),
                route_params=dict(page_context.get("route_params") or {}),
                page_context=extra or None,
            )
        )
    return replaced


# -- Rendering --


async def prerender_job(global_context: GlobalContext, job: PrerenderJob) -> PrerenderResult | None:
    """Prerender one URL; ``None`` when its page opts out."""
    builder = PageContextBuilder({"url": job.url, **(job.page_context or {})}, is_pre_rendering=True)
    builder.global_context = global_context
    builder.page_context_already_provided_by_prerender_hook = job.page_context is not None

    page_id, route_params = job.page_id, job.route_params
    if page_id is None:
        add_computed_url_props(builder, global_context.config)
        route_result = await route(builder)
        if isinstance(route_result, HookFailure):
            throw_prerender_error(route_result)
        if route_result.page_id is None:
            msg = f"The URL {job.url} returned by a prerender hook does not match any page route."
            raise UsageError(msg)
        page_id, route_params = route_result.page_id, route_result.route_params
    builder.add(page_id=page_id, route_params=route_params)

    page_files = await load_page_files(builder)
    if page_files.do_not_prerender:
        logger.debug("Skipping %s (%s exports do_not_prerender)", job.url, page_id)
        return None
    builder.uses_client_router = bool(builder["page_exports"].get("client_routing", False))
    return await prerender_page(builder)


async def run_prerender(store: GlobalContextStore) -> PrerenderReport:
    """Prerender every URL of the site, ``prerender_concurrency`` at a time.

    Raises the first error once all started pages are done.
    """
    global_context = await store.get()
    jobs = await collect_prerender_jobs(global_context)
    report = PrerenderReport()
    errors: list[Exception] = []
    limiter = anyio.CapacityLimiter(store.config.prerender_concurrency)

    async def _worker(job: PrerenderJob) -> None:
        async with limiter:
            try:
                result = await prerender_job(global_context, job)
            except Exception as exc:
                errors.append(exc)
                return
        if result is None:
            report.skipped.append(job.url)
        else:
            report.pages[job.url] = result

    async with anyio.create_task_group() as tg:
        for job in jobs:
            tg.start_soon(_worker, job)

    if errors:
        raise errors[0]

    report.pages = dict(sorted(report.pages.items()))
    report.skipped.sort()
    report.not_found = await render_static_404_page(global_context)
    logger.info("Prerendered %d pages (%d skipped)", len(report.pages), len(report.skipped))
    return report


# -- Writing --


def _url_to_dir(out_dir: anyio.Path, url: str) -> anyio.Path:
    parts = [p for p in url.split("?")[0].split("/") if p]
    for part in parts:
        if part in (".", ".."):
            msg = f"Cannot write prerendered URL {url!r}: it contains '{part}'."
            raise UsageError(msg)
    return out_dir.joinpath(*parts)


async def write_prerendered(
    report: PrerenderReport,
    out_dir: str | Path,
    *,
    page_context_suffix: str = "/index.pageContext.json",
) -> list[Path]:
    """Write a report's pages under *out_dir*; returns the written files."""
    root = anyio.Path(out_dir)
    written: list[Path] = []

    async def _write(path: anyio.Path, text: str) -> None:
        await path.parent.mkdir(parents=True, exist_ok=True)
        await path.write_text(text, encoding="utf-8")
        written.append(Path(path))

    for url, result in report.pages.items():
        target_dir = _url_to_dir(root, url)
        await _write(target_dir / "index.html", result.document_html)
        if result.page_context_serialized is not None:
            await _write(target_dir / page_context_suffix.lstrip("/"), result.page_context_serialized)

    if report.not_found is not None:
        await _write(root / "404.html", report.not_found.document_html)
    return written
