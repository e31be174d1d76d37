"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, next: Next) -> Response: ...

No base class required. The dispatcher that activates modules on first
request is itself an ordinary middleware of this shape.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol, TypeAlias

from perch.http.request import Request
from perch.http.response import Response

# The next handler in the middleware chain
Next: TypeAlias = Callable[[Request], Awaitable[Response]]


class Middleware(Protocol):
    """Protocol for perch middleware.

    Accepts both functions and callable objects::

        async def timing(request: Request, next: Next) -> Response:
            start = time.monotonic()
            response = await next(request)
            return response.with_header("X-Time", f"{time.monotonic() - start:.3f}")
    """

    async def __call__(self, request: Request, next: Next) -> Response: ...
