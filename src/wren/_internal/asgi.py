"""Raw ASGI type aliases.

Only the ASGI adapter and the body sender touch these.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any, TypeAlias

# Raw ASGI 3.0 types
Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[MutableMapping[str, Any]]]
Send: TypeAlias = Callable[[MutableMapping[str, Any]], Awaitable[None]]
