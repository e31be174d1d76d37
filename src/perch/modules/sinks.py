"""Handler sink for PRIMARY modules.

``RouteSink`` is what a PRIMARY module's ``activate()`` receives. Routes
added through it are prefixed with the module's context path and staged.
The registry commits them to the live app only after ``activate()``
returns, so a failed attempt leaves no routes behind and the request
that triggered a successful activation is served by them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from perch._internal.types import Handler
from perch.routing.route import Route

if TYPE_CHECKING:
    from perch.app import App


def join_path(context_path: str, path: str) -> str:
    """Join a module-relative route path onto a context path.

    ``join_path("/api", "/items")`` -> ``"/api/items"``;
    ``join_path("/api", "/")`` -> ``"/api"``.
    """
    base = context_path.rstrip("/")
    tail = path.strip("/")
    if not tail:
        return base or "/"
    # Keep a trailing slash only when the caller wrote one
    suffix = "/" if path.endswith("/") and tail else ""
    return f"{base}/{tail}{suffix}"


class RouteSink:
    """Routable surface bound to one module's context path.

    Usage inside ``activate()``::

        def activate(routes: RouteSink) -> None:
            @routes.route("/items/{id:int}")
            def item(id: int):
                return {"id": id}
    """

    __slots__ = ("_app", "_committed", "_staged", "context_path")

    def __init__(self, app: App, context_path: str) -> None:
        self._app = app
        self.context_path = context_path
        self._staged: list[Route] = []
        self._committed = False

    @property
    def app(self) -> App:
        """The underlying app, for wiring beyond plain routes."""
        return self._app

    def route(
        self,
        path: str,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register a module route via decorator."""

        def decorator(func: Handler) -> Handler:
            self.add_route(path, func, methods=methods, name=name)
            return func

        return decorator

    def add_route(
        self,
        path: str,
        handler: Handler,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> Route:
        """Stage a route; after commit, add it to the app directly."""
        route = Route.create(
            join_path(self.context_path, path),
            handler,
            methods=methods,
            name=name,
            owner=self.context_path,
        )
        if self._committed:
            self._app.add_route(route)
        else:
            self._staged.append(route)
        return route

    @property
    def staged(self) -> tuple[Route, ...]:
        """Routes waiting for ``commit()``."""
        return tuple(self._staged)

    def commit(self) -> None:
        """Publish the staged routes as this module's route set, at once.

        Called by the registry once ``activate()`` returned. Routes left
        by an earlier attempt under the same context path are replaced.
        """
        self._app.replace_routes(self.context_path, self._staged)
        self._staged.clear()
        self._committed = True
