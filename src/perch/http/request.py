"""Immutable HTTP request.

Frozen metadata with async body access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from perch.errors import HTTPError
from perch.http.headers import Headers
from perch.http.query import QueryParams

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from perch._internal.asgi import Receive, Scope


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is read asynchronously via ``.body()``, ``.json()``, ``.text()``.
    ``path`` never includes the query string.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    path_params: dict[str, Any]
    http_version: str
    client: tuple[str, int] | None

    # Private: ASGI receive callable for body streaming
    _receive: Receive

    # Private: body cache and the configured size limit
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    _max_body: int | None = field(default=None, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def url(self) -> str:
        """Request path plus query string."""
        qs = self.query.raw
        if qs:
            return f"{self.path}?{qs.decode('latin-1')}"
        return self.path

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        The ASGI receive channel is consumed once; later calls return the
        cached bytes. Raises ``HTTPError(413)`` past ``max_content_length``.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks: list[bytes] = []
        size = 0
        async for chunk in self.stream():
            size += len(chunk)
            if self._max_body is not None and size > self._max_body:
                raise HTTPError(status=413, detail="Request body too large")
            chunks.append(chunk)
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        while True:
            message = await self._receive()
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        import json as json_module

        raw = await self.body()
        return json_module.loads(raw)

    async def text(self) -> str:
        raw = await self.body()
        return raw.decode("utf-8")

    def with_path_params(self, path_params: dict[str, Any]) -> Request:
        """Return a copy carrying matched path parameters.

        The body cache is shared so data read by middleware isn't lost.
        """
        return Request(
            method=self.method,
            path=self.path,
            headers=self.headers,
            query=self.query,
            path_params=path_params,
            http_version=self.http_version,
            client=self.client,
            _receive=self._receive,
            _cache=self._cache,
            _max_body=self._max_body,
        )

    # -- Factory --

    @classmethod
    def from_asgi(
        cls,
        scope: Scope,
        receive: Receive,
        *,
        max_body: int | None = None,
    ) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=Headers(tuple(scope.get("headers", ()))),
            query=QueryParams(scope.get("query_string", b"")),
            path_params={},
            http_version=scope.get("http_version", "1.1"),
            client=tuple(client) if client else None,
            _receive=receive,
            _max_body=max_body,
        )
