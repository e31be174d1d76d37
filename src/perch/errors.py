"""Perch exception hierarchy.

Shared across the registry, dispatcher, router, and request pipeline so
every module raises and catches the same types.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when host configuration is invalid or an API is misused.

    Typically surfaced at setup time: modifying a frozen app, calling
    ``listen()`` twice, or a missing optional server dependency.
    """


class InvalidModuleError(ConfigurationError):
    """Raised by ``register()`` when a module fails validation.

    Fatal to that registration call only. The registry is left unchanged.
    """


class ActivationError(PerchError):
    """A module's ``activate()`` raised.

    The original exception is chained as ``__cause__``. The entry stays
    uninitialized, so the next request resolving to it retries.
    """

    def __init__(self, context_path: str, detail: str = "") -> None:
        self.context_path = context_path
        self.detail = detail
        message = f"Activation of module {context_path!r} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, middleware, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818 - conventional name in web frameworks
    """404 - no route matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818 - conventional name in web frameworks
    """405 - route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )
