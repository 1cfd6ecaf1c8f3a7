"""``wren routes`` — list pages and how they are routed."""

import argparse
import sys

import anyio

from wren.config import RenderConfig
from wren.discovery import filesystem_manifest_loader
from wren.errors import WrenError
from wren.global_context import GlobalContextStore


def run_routes(args: argparse.Namespace) -> None:
    """Print a table of PAGE, STRATEGY and ROUTE for ``args.pages_dir``."""
    store = GlobalContextStore(
        filesystem_manifest_loader(args.pages_dir),
        RenderConfig(base_url=args.base_url),
    )
    try:
        global_context = anyio.run(store.get)
    except WrenError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    page_routes = global_context.page_routes
    if not page_routes:
        print("No pages found.")
        return

    rows: list[tuple[str, str, str]] = []
    for page_route in page_routes:
        if page_route.route_string is not None:
            shown = page_route.route_string
        elif page_route.route_function is not None:
            shown = getattr(page_route.route_function, "__qualname__", repr(page_route.route_function)) + "()"
        else:
            shown = page_route.filesystem_route or ""
        rows.append((page_route.page_id, page_route.strategy, shown))

    max_page = max(max(len(r[0]) for r in rows), 4)  # "PAGE" header
    max_strategy = max(max(len(r[1]) for r in rows), 8)  # "STRATEGY" header

    fmt = f"{{:<{max_page}}}  {{:<{max_strategy}}}  {{}}"
    print(fmt.format("PAGE", "STRATEGY", "ROUTE"))
    sep_len = max_page + max_strategy + 4 + max(len(r[2]) for r in rows)
    print("-" * min(sep_len, 80))
    for row in rows:
        print(fmt.format(*row))

    error_page_id = global_context.error_page_id
    if error_page_id is not None:
        print(f"\nError page: {error_page_id}")
