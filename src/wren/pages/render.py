"""The render executor and its result validator.

A ``render()`` hook returns one of::

    None                                         # no document, client-only rendering
    escape_inject("<html>...</html>")            # document markup
    {"document_html": markup_or_none, "page_context": {...}}

Anything else, plain strings included, is a ``UsageError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

from wren._internal.invoke import invoke
from wren.document import DocumentStream, HtmlRender, Markup, is_document_html, render_html
from wren.errors import HookFailure, UsageError
from wren.log import log_error
from wren.pages.hooks import assert_hook_result, assert_page_context_provided_by_user

if TYPE_CHECKING:
    from wren.pages.context import PageContextBuilder
    from wren.pages.types import HookDescriptor

_RENDER_RESULT_KEYS = ("document_html", "page_context")

_VALID_DOCUMENT = (
    "document markup: a `Markup` built with `escape_inject()`, `render_template()` "
    "or `dangerously_skip_escape()`, or a `DocumentStream`"
)


@dataclass(frozen=True, slots=True)
class NoDocument:
    """The hook rendered nothing; the client renders the page."""


@dataclass(frozen=True, slots=True)
class Document:
    document_html: Markup | DocumentStream


@dataclass(frozen=True, slots=True)
class DocumentWithContext:
    document_html: Markup | DocumentStream | None
    page_context: Mapping[str, Any] = field(default_factory=dict)


RenderResult: TypeAlias = NoDocument | Document | DocumentWithContext


@dataclass(frozen=True, slots=True)
class RenderHookResult:
    html_render: HtmlRender | None
    render_file_path: str


def validate_render_result(result: Any, hook: HookDescriptor) -> RenderResult:
    """Build the ``RenderResult`` of a ``render()`` return value.

    Raises ``UsageError`` describing the valid alternatives.
    """
    prefix = f"The render() hook exported by {hook.file_path}"

    if result is None:
        return NoDocument()
    if is_document_html(result):
        return Document(result)
    if isinstance(result, str):
        msg = f"{prefix} returned a plain string, which is forbidden; it should return {_VALID_DOCUMENT}."
        raise UsageError(msg)
    if not isinstance(result, Mapping):
        msg = (
            f"{prefix} should return None, {_VALID_DOCUMENT}, or a dict "
            f"{{'document_html': ..., 'page_context': {{...}}}}; got {type(result).__name__}."
        )
        raise UsageError(msg)

    assert_hook_result(result, hook, _RENDER_RESULT_KEYS)
    document_html = result.get("document_html")
    if isinstance(document_html, str) and not isinstance(document_html, Markup):
        msg = f"{prefix} returned a `document_html` that is a plain string, which is forbidden; it should be {_VALID_DOCUMENT}."
        raise UsageError(msg)
    if document_html is not None and not is_document_html(document_html):
        msg = f"{prefix} returned a `document_html` that should be {_VALID_DOCUMENT}."
        raise UsageError(msg)
    page_context = assert_page_context_provided_by_user(result.get("page_context"), hook)
    return DocumentWithContext(document_html, page_context)


def _find_render_hook(builder: PageContextBuilder) -> HookDescriptor:
    page_files = builder.page_files
    assert page_files is not None
    for server_file in page_files.server_files:
        hook = server_file.render
        if hook is not None:
            return hook
    msg = (
        "No render() hook found. Define `render()` in a *.page.server.py file, or in "
        "_default.page.server.py to make it the default render() hook of all your pages."
    )
    raise UsageError(msg)


async def execute_render_hook(builder: PageContextBuilder) -> RenderHookResult | HookFailure:
    """Run the authoritative ``render()`` hook and normalize its result.

    Returns a ``HookFailure`` when the hook raises or its stream fails
    before producing its first chunk.
    """
    hook = _find_render_hook(builder)
    page_context = builder.seal()

    try:
        result = await invoke(hook.func, page_context)
    except UsageError:
        raise
    except Exception as exc:
        return HookFailure(exc, hook.hook_name, hook.file_path)

    render_result = validate_render_result(result, hook)
    if isinstance(render_result, NoDocument):
        return RenderHookResult(None, hook.file_path)
    if isinstance(render_result, DocumentWithContext):
        builder.merge(render_result.page_context)
        if render_result.document_html is None:
            return RenderHookResult(None, hook.file_path)

    def on_error_while_streaming(exc: Exception) -> None:
        builder.add(error=exc, server_side_error_while_streaming=True)
        log_error(exc, prefix=f"Error while streaming the document of {hook.file_path}")

    try:
        html_render = await render_html(render_result.document_html, on_error_while_streaming)
    except Exception as exc:
        return HookFailure(exc, hook.hook_name, hook.file_path)
    return RenderHookResult(html_render, hook.file_path)
