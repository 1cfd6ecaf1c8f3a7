"""Wren exception hierarchy and the hook failure result type.

Shared across the bootstrap, router, hook controller and renderer so every
module raises and catches the same types.
"""

from dataclasses import dataclass


class WrenError(Exception):
    """Base for all wren-specific errors."""


class ConfigurationError(WrenError):
    """Raised when renderer configuration is invalid.

    Typically raised while the global context is computed.
    """


class UsageError(WrenError):
    """Raised when user code violates a contract of the renderer.

    Missing hooks, wrong export shapes, ambiguous hook overrides and
    invalid call sequences on control functions all raise this. The
    message always names the offending file or field.
    """


class PrerenderError(WrenError):
    """Raised when a user hook fails while prerendering.

    The original exception is available as ``__cause__``.
    """


@dataclass(frozen=True, slots=True)
class HookFailure:
    """An exception thrown by a user hook, captured as a value.

    Returned (never raised) at the boundary where the hook was invoked.
    The renderer pattern-matches on it to decide on the error page.
    """

    error: Exception
    hook_name: str
    hook_file_path: str

    def __str__(self) -> str:
        return f"{self.hook_name}() hook of {self.hook_file_path} failed: {self.error!r}"
