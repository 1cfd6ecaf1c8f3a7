"""Renderer configuration.

RenderConfig is a frozen dataclass: immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """Renderer configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RenderConfig(base_url="/docs", production=True)
    """

    # URL prefix every page lives under
    base_url: str = "/"

    # Suppresses developer warnings (404 route listing, missing error page)
    production: bool = False

    # Suffix marking a request for the serialized page context instead of HTML
    page_context_suffix: str = "/index.pageContext.json"

    # Prerendering
    prerender_concurrency: int = 10
