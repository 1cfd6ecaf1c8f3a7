"""``wren prerender`` — render every page to static HTML files."""

import argparse
import logging
import sys

import anyio

from wren.config import RenderConfig
from wren.discovery import filesystem_manifest_loader
from wren.errors import WrenError
from wren.global_context import GlobalContextStore
from wren.prerender import run_prerender, write_prerendered


def run_prerender_command(args: argparse.Namespace) -> None:
    """Prerender ``args.pages_dir`` into ``args.out_dir``."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    config = RenderConfig(
        base_url=args.base_url,
        production=True,
        prerender_concurrency=args.concurrency,
    )
    store = GlobalContextStore(filesystem_manifest_loader(args.pages_dir), config)

    async def _prerender() -> int:
        report = await run_prerender(store)
        written = await write_prerendered(
            report,
            args.out_dir,
            page_context_suffix=config.page_context_suffix,
        )
        return len(written)

    try:
        count = anyio.run(_prerender)
    except WrenError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    print(f"Wrote {count} files to {args.out_dir}")
