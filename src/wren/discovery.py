"""Filesystem manifest loader.

Walks a project directory and builds a ``PageManifest`` from every
``*.page*.py`` file. Modules are imported lazily, the first time the
renderer asks for a file's exports, and cached afterwards.

Conventions::

    project/
      renderer/
        _default.page.server.py   # render() for every page
      pages/
        _error.page.py            # error page
        index.page.py             # Page for /
        about/
          index.page.py           # Page for /about
        movie/
          index.page.py
          index.page.route.py     # route = "/movie/{movie_id}"
          index.page.server.py    # on_before_render() loading the movie

Module exports are the names listed in ``__all__`` when present.
Otherwise every public module-level name defined in the module;
classes and functions whose ``__module__`` points elsewhere count as imports.
"""

from __future__ import annotations

import __future__
import importlib.util
import sys
import types
import typing
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from wren.errors import UsageError
from wren.manifest import FILE_TYPES, ManifestLoader, PageManifest, make_page_file

_DEFINED_TYPES = (type, types.FunctionType, types.BuiltinFunctionType)

_MISSING = object()


def discover_page_files(root_dir: str | Path) -> PageManifest:
    """Walk *root_dir* and return the manifest of its page files.

    Args:
        root_dir: Project directory. File paths in the manifest are
            relative to it and start with ``/``.

    Returns:
        The path-sorted manifest.
    """
    root = Path(root_dir).resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Pages directory not found: {root}")

    files = []
    for path in sorted(root.rglob("*.py")):
        relative = path.relative_to(root)
        if any(part.startswith(".") or part == "__pycache__" for part in relative.parts):
            continue
        if not _is_page_file(path.name):
            continue
        file_path = "/" + relative.as_posix()
        files.append(make_page_file(file_path, _ModuleLoader(path, file_path)))
    return PageManifest.from_files(files)


def filesystem_manifest_loader(root_dir: str | Path) -> ManifestLoader:
    """Return a manifest loader scanning *root_dir* on each call."""

    def load() -> PageManifest:
        return discover_page_files(root_dir)

    return load


def _is_page_file(name: str) -> bool:
    stem = name.removesuffix(".py")
    return any(stem.endswith(t) for t in FILE_TYPES)


class _ModuleLoader:
    """Imports a page file on first use and caches its exports."""

    __slots__ = ("_exports", "file_path", "path")

    def __init__(self, path: Path, file_path: str) -> None:
        self.path = path
        self.file_path = file_path
        self._exports: Mapping[str, Any] | None = None

    def __call__(self) -> Mapping[str, Any]:
        if self._exports is None:
            self._exports = module_exports(self._import())
        return self._exports

    def _import(self) -> types.ModuleType:
        module_name = "_wren_page_" + "".join(
            c if c.isalnum() else "_" for c in self.file_path.removesuffix(".py")
        )
        spec = importlib.util.spec_from_file_location(module_name, self.path)
        if spec is None or spec.loader is None:
            msg = f"Cannot import page file {self.file_path}."
            raise UsageError(msg)
        module = importlib.util.module_from_spec(spec)
        # Dataclasses defined in page files need their module in sys.modules
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            del sys.modules[module_name]
            raise
        return module


def module_exports(module: types.ModuleType) -> dict[str, Any]:
    """Return the exports of a page module.

    Honors ``__all__``. Without it, public names are exported except
    modules, ``__future__``/``typing`` names and classes or functions
    imported from elsewhere.
    """
    names = getattr(module, "__all__", None)
    if names is not None:
        return {name: getattr(module, name) for name in names}

    exports: dict[str, Any] = {}
    for name, value in vars(module).items():
        if name.startswith("_"):
            continue
        if isinstance(value, types.ModuleType):
            continue
        if getattr(__future__, name, _MISSING) is value or getattr(typing, name, _MISSING) is value:
            continue
        # Classes and functions defined elsewhere were imported
        if isinstance(value, _DEFINED_TYPES) and value.__module__ != module.__name__:
            continue
        exports[name] = value
    return exports
