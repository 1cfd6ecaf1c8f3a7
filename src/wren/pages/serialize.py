"""Client-side serialization of the page context.

Only the fields a page lists in ``pass_to_client`` leave the server,
plus the page id (and ``is404`` on the error page).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from wren.errors import UsageError
from wren.manifest import is_error_page

if TYPE_CHECKING:
    from wren.pages.context import PageContextBuilder


def page_context_client_side(builder: PageContextBuilder) -> dict[str, Any]:
    """The fields of *builder* that are passed to the client."""
    page_files = builder.page_files
    assert page_files is not None
    page_id = builder.page_id
    assert isinstance(page_id, str)

    data = builder.data
    client_side: dict[str, Any] = {"page_id": page_id}
    for key in page_files.pass_to_client:
        if key in data:
            client_side[key] = data[key]

    if is_error_page(page_id):
        is404 = data.get("is404")
        assert isinstance(is404, bool)
        client_side["is404"] = is404
        page_props = client_side.get("page_props") or {}
        client_side["page_props"] = {**page_props, "is404": is404}
    return client_side


def serialize_page_context_client_side(builder: PageContextBuilder) -> str:
    """Serialize the client-side page context as the raw-data envelope.

    Raises ``UsageError`` naming the field that is not JSON-serializable.
    """
    client_side = page_context_client_side(builder)
    for key, value in client_side.items():
        try:
            json.dumps(value)
        except (TypeError, ValueError) as exc:
            msg = (
                f"page_context[{key!r}] cannot be serialized to JSON. Only list "
                f"JSON-serializable fields in pass_to_client ({exc})."
            )
            raise UsageError(msg) from exc
    return serialize_envelope(page_context=client_side)


def serialize_envelope(**fields: Any) -> str:
    """Serialize a raw-data response envelope."""
    return json.dumps(fields, sort_keys=True)
