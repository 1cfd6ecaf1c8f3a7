"""Error logging and developer warnings for the render pipeline.

A hook error is logged exactly once, however many handlers it passes
through: ``log_error()`` marks the exception object and ignores it
afterwards. The fallback driver relies on this when the error page
re-raises the error that sent the request there.

How much of the traceback is shown is read from ``WREN_TRACEBACK``:

    compact (default)   the error plus the frames of user hook code
    minimal             one line, the error and the hook frame raising it
    full                the standard traceback

Kida template errors are always shown through their own
``format_compact()``, which already points at the template line.
"""

from __future__ import annotations

import logging
import os
import sysconfig
import traceback
from pathlib import Path

logger = logging.getLogger("wren.render")

TRACEBACK_STYLES = ("compact", "minimal", "full")

_LOGGED_MARKER = "_wren_already_logged"
_MAX_FRAMES = 5

_PACKAGE_DIR = str(Path(__file__).resolve().parent)
_LIBRARY_DIRS = tuple(
    {path for key in ("stdlib", "platstdlib", "purelib", "platlib") if (path := sysconfig.get_path(key))}
)


def traceback_style() -> str:
    style = os.environ.get("WREN_TRACEBACK", "compact").lower()
    return style if style in TRACEBACK_STYLES else "compact"


def is_hook_frame(filename: str) -> bool:
    """Whether *filename* belongs to user code: page files and their helpers."""
    if filename.startswith("<"):
        return False
    if filename.startswith(_PACKAGE_DIR):
        return False
    return not filename.startswith(_LIBRARY_DIRS)


def _hook_frames(exc: BaseException) -> list[traceback.FrameSummary]:
    frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
    user_frames = [frame for frame in frames if is_hook_frame(frame.filename)]
    # Errors raised inside wren or a library still get some location
    return (user_frames or frames)[-_MAX_FRAMES:]


def format_error(exc: BaseException, style: str = "compact") -> str:
    """Render *exc* for the log in one of ``TRACEBACK_STYLES``."""
    if "kida" in (type(exc).__module__ or "") and hasattr(exc, "format_compact"):
        return exc.format_compact()
    if style == "full":
        return "".join(traceback.format_exception(exc)).rstrip()

    summary = f"{type(exc).__name__}: {exc}"
    frames = _hook_frames(exc)
    if style == "minimal":
        if not frames:
            return summary
        last = frames[-1]
        return f"{type(exc).__name__} at {last.filename}:{last.lineno}: {exc}"

    lines = [summary]
    if frames:
        lines.append("  Hook frames:")
        for frame in frames:
            lines.append(f"    {frame.filename}:{frame.lineno} in {frame.name}")
            if frame.line:
                lines.append(f"      {frame.line.strip()}")
    return "\n".join(lines)


def has_already_logged(exc: BaseException) -> bool:
    return bool(getattr(exc, _LOGGED_MARKER, False))


def log_error(exc: BaseException, prefix: str = "Server error") -> None:
    """Log *exc* at ERROR level unless it was logged before."""
    if has_already_logged(exc):
        return
    try:
        setattr(exc, _LOGGED_MARKER, True)
    except AttributeError:
        # Exceptions with __slots__ can't be marked and are logged every time
        pass

    style = traceback_style()
    separator = ": " if style == "minimal" else "\n"
    logger.error("%s%s%s", prefix, separator, format_error(exc, style))


def warn(message: str, *, production: bool = False, dev_only: bool = True) -> None:
    """Emit a developer warning.

    Warnings flagged *dev_only* are suppressed when *production* is set.
    """
    if dev_only and production:
        return
    logger.warning(message)
