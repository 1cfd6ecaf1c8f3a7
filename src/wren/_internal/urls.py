"""URL helpers — base URL checks, raw-data suffix handling, URL parsing."""

import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, unquote, urlsplit, urlunsplit

from wren.errors import ConfigurationError

_FILE_EXTENSION_RE = re.compile(r"^[a-z0-9]+$")


@dataclass(frozen=True, slots=True)
class ParsedUrl:
    """The parts of a request URL, with the base URL already removed.

    ``pathname`` is relative to the base URL and always starts with ``/``.
    ``pathname_original`` is the path as requested.
    """

    origin: str | None
    pathname: str
    pathname_original: str
    has_base_url: bool
    search: dict[str, str] = field(default_factory=dict)
    search_string: str | None = None
    hash: str = ""
    hash_string: str | None = None


def assert_base_url(base_url: str) -> None:
    """Raise ``ConfigurationError`` unless *base_url* looks like ``/`` or ``/some/path``."""
    if not isinstance(base_url, str) or not base_url.startswith("/"):
        msg = f"base_url should start with '/' but it is {base_url!r}."
        raise ConfigurationError(msg)
    if base_url != "/" and base_url.endswith("/"):
        msg = f"base_url should not end with '/' (only '/' itself may), got {base_url!r}."
        raise ConfigurationError(msg)
    if "?" in base_url or "#" in base_url:
        msg = f"base_url should be a plain path, got {base_url!r}."
        raise ConfigurationError(msg)


def handle_page_context_request_suffix(url: str, suffix: str) -> tuple[str, bool]:
    """Strip the raw-data suffix from *url*.

    Returns the URL without the suffix and whether the suffix was present::

        handle_page_context_request_suffix(
            "/about/index.pageContext.json?x=1", "/index.pageContext.json"
        )
        # -> ("/about?x=1", True)
    """
    parts = urlsplit(url)
    if not parts.path.endswith(suffix):
        return url, False
    path = parts.path[: -len(suffix)] or "/"
    return urlunsplit(parts._replace(path=path)), True


def parse_url(url: str, base_url: str) -> ParsedUrl:
    """Parse a request URL relative to *base_url*.

    *url* starts with ``/`` or is a full ``http(s)://`` URL.
    """
    assert url.startswith("/") or url.startswith("http")
    assert base_url.startswith("/")

    parts = urlsplit(url)
    origin = f"{parts.scheme}://{parts.netloc}" if parts.scheme and parts.netloc else None
    pathname_original = unquote(parts.path) or "/"

    base = base_url.rstrip("/")
    if not base:
        has_base_url = True
        pathname = pathname_original
    else:
        has_base_url = pathname_original == base or pathname_original.startswith(base + "/")
        pathname = pathname_original[len(base) :] if has_base_url else pathname_original
        pathname = pathname or "/"

    search = dict(parse_qsl(parts.query, keep_blank_values=True))

    return ParsedUrl(
        origin=origin,
        pathname=pathname,
        pathname_original=pathname_original,
        has_base_url=has_base_url,
        search=search,
        search_string=f"?{parts.query}" if parts.query else None,
        hash=unquote(parts.fragment),
        hash_string=f"#{parts.fragment}" if parts.fragment else None,
    )


def is_file_request(url_pathname: str) -> bool:
    """Whether the last path segment looks like a file name (``/logo.svg``)."""
    assert url_pathname.startswith("/")
    last = url_pathname.rsplit("/", 1)[-1]
    parts = last.split(".")
    if len(parts) < 2:
        return False
    return bool(_FILE_EXTENSION_RE.match(parts[-1]))
