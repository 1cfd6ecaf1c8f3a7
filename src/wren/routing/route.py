"""PageRoute and RouteResult frozen dataclasses."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route string.

    Static:    ``/movies``          (is_param=False)
    Param:     ``/{id}``            (is_param=True, param_name="id")
    Typed:     ``/{id:int}``        (is_param=True, param_name="id", param_type="int")
    Catch-all: ``/{rest:path}``     (is_param=True, param_type="path")
    """

    value: str
    is_param: bool = False
    param_name: str | None = None
    param_type: str = "str"


@dataclass(frozen=True, slots=True)
class PageRoute:
    """How one page is reached.

    Exactly one strategy is set: a route string or a route function
    declared in the page's ``.page.route`` file, or the filesystem route
    derived from the page id.
    """

    page_id: str
    route_string: str | None = None
    route_function: Callable[..., Any] | None = field(default=None, compare=False, repr=False)
    filesystem_route: str | None = None
    route_file_path: str | None = None

    def __post_init__(self) -> None:
        strategies = [self.route_string, self.route_function, self.filesystem_route]
        assert sum(s is not None for s in strategies) == 1, self

    @property
    def strategy(self) -> str:
        """``"string"``, ``"function"`` or ``"filesystem"``."""
        if self.route_string is not None:
            return "string"
        if self.route_function is not None:
            return "function"
        return "filesystem"

    def describe(self) -> str:
        """Human-readable route, for warnings and the CLI."""
        if self.route_string is not None:
            return f"{self.route_string} (Route String of {self.page_id})"
        if self.route_function is not None:
            name = getattr(self.route_function, "__qualname__", repr(self.route_function))
            return f"{name}() (Route Function of {self.page_id})"
        return f"{self.filesystem_route} (Filesystem Route of {self.page_id})"


@dataclass(frozen=True, slots=True)
class RouteResult:
    """Outcome of routing: a page id with its params, or ``page_id=None``."""

    page_id: str | None
    route_params: dict[str, str] = field(default_factory=dict)
