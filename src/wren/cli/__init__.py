"""Wren CLI — route listing and static prerendering.

Entry point registered as ``wren`` in ``pyproject.toml``::

    [project.scripts]
    wren = "wren.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``wren`` command."""
    parser = argparse.ArgumentParser(
        prog="wren",
        description="Wren — server-side page rendering with layered hooks.",
    )
    parser.add_argument("--base-url", default="/", help="Base URL the pages are served under")
    subparsers = parser.add_subparsers(dest="command")

    # -- wren routes ------------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="List the pages and their routes")
    routes_parser.add_argument("pages_dir", help="Directory holding the *.page*.py files")

    # -- wren prerender ---------------------------------------------------
    prerender_parser = subparsers.add_parser("prerender", help="Render the site to static files")
    prerender_parser.add_argument("pages_dir", help="Directory holding the *.page*.py files")
    prerender_parser.add_argument("out_dir", help="Directory to write the HTML files to")
    prerender_parser.add_argument(
        "--concurrency",
        type=int,
        default=10,
        help="Pages rendered at the same time",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "routes":
        from wren.cli._routes import run_routes

        run_routes(args)
    elif args.command == "prerender":
        from wren.cli._prerender import run_prerender_command

        run_prerender_command(args)
