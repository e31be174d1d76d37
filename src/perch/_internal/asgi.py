"""Typed ASGI definitions.

Raw ASGI aliases plus a typed view of the websocket scope for internal
use. Users never see these.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from dataclasses import dataclass
from typing import Any, TypeAlias

# Raw ASGI 3.0 types
Scope: TypeAlias = MutableMapping[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[MutableMapping[str, Any]]]
Send: TypeAlias = Callable[[MutableMapping[str, Any]], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class WebSocketScope:
    """Typed websocket scope parsed from raw ASGI scope dict."""

    path: str
    query_string: bytes
    headers: tuple[tuple[bytes, bytes], ...]
    subprotocols: tuple[str, ...]
    client: tuple[str, int] | None

    @classmethod
    def from_scope(cls, scope: Scope) -> "WebSocketScope":
        """Parse raw ASGI scope into typed object."""
        client = scope.get("client")
        return cls(
            path=scope["path"],
            query_string=scope.get("query_string", b""),
            headers=tuple(scope.get("headers", ())),
            subprotocols=tuple(scope.get("subprotocols", ())),
            client=tuple(client) if client else None,
        )
