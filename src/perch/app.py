"""Perch HTTP application.

Middleware, error handlers, and lifecycle hooks are mutable during setup
and frozen when the app first serves. Routes stay open: modules wire
their routes at activation time, while traffic is flowing.
"""

import inspect
import threading
from collections.abc import Callable, Iterable
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.types import ErrorHandler, Handler
from perch.config import HostConfig
from perch.errors import ConfigurationError
from perch.middleware.protocol import Middleware
from perch.routing.route import Route
from perch.routing.router import Router
from perch.server.handler import handle_request


class App:
    """The HTTP application underneath a ``Host``.

    Reachable as ``host.app`` for wiring that doesn't belong to any
    module: app-level routes, middleware, error handlers, hooks.

    Thread safety:
        The freeze transition uses a Lock + double-check so exactly one
        thread captures the middleware chain. Route additions rebuild the
        router under a separate lock and swap the reference, so a request
        matches against either the old or the new table, never a partial
        one.
    """

    __slots__ = (
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_middleware",
        "_middleware_list",
        "_router",
        "_routes",
        "_routes_lock",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(self, config: HostConfig | None = None) -> None:
        self.config: HostConfig = config or HostConfig()
        self._middleware_list: list[Middleware] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        self._routes: list[Route] = []
        self._routes_lock: threading.Lock = threading.Lock()
        self._router: Router = Router()

        # Compiled state - set during _freeze()
        self._middleware: tuple[Callable[..., Any], ...] = ()

    # -- Routes --

    def route(
        self,
        path: str,
        *,
        methods: list[str] | None = None,
        name: str | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register an app-level route handler via decorator.

        Args:
            path: URL path pattern. Use ``{param}`` for path parameters.
            methods: HTTP methods. Defaults to ``["GET"]``.
            name: Optional route name.
        """

        def decorator(func: Handler) -> Handler:
            self.add_route(Route.create(path, func, methods=methods, name=name))
            return func

        return decorator

    def add_route(self, route: Route) -> None:
        """Add a route. Safe to call while the app is serving."""
        with self._routes_lock:
            self._swap([*self._routes, route])

    def replace_routes(self, owner: str, routes: Iterable[Route]) -> None:
        """Install *routes* as the complete route set of module *owner*.

        Routes previously wired by the same owner are dropped, and the new
        router is swapped in at once, so a request sees either none of the
        module's routes or all of them.
        """
        new = list(routes)
        for route in new:
            if route.owner != owner:
                msg = f"Route {route.path!r} belongs to {route.owner!r}, not {owner!r}."
                raise ConfigurationError(msg)
        with self._routes_lock:
            kept = [r for r in self._routes if r.owner != owner]
            self._swap([*kept, *new])

    def _swap(self, routes: list[Route]) -> None:
        # Caller holds _routes_lock
        router = Router(routes)
        self._routes = routes
        self._router = router

    @property
    def routes(self) -> list[Route]:
        return list(self._routes)

    @property
    def router(self) -> Router:
        """The current compiled router."""
        return self._router

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator.

        Keyed by status code or exception type. ``@app.error(ActivationError)``
        catches modules that fail to activate.
        """

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Middleware --

    def add_middleware(self, middleware: Middleware, *, first: bool = False) -> None:
        """Add a middleware to the pipeline.

        ``first=True`` makes it the outermost stage.
        """
        self._check_not_frozen()
        if first:
            self._middleware_list.insert(0, middleware)
        else:
            self._middleware_list.append(middleware)

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        before the server begins accepting requests.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    async def run_startup_hooks(self) -> None:
        for hook in self._startup_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    async def run_shutdown_hooks(self) -> None:
        for hook in self._shutdown_hooks:
            result = hook()
            if inspect.isawaitable(result):
                await result

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point for lifespan and HTTP scopes."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        self._ensure_frozen()

        await handle_request(
            scope,
            receive,
            send,
            get_router=lambda: self._router,
            middleware=self._middleware,
            error_handlers=self._error_handlers,
            debug=self.config.debug,
            max_body=self.config.max_content_length,
        )

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup (before the first request), then runs
        startup/shutdown hooks and signals completion back to the server.
        """
        self._ensure_frozen()

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.run_startup_hooks()
                except Exception as exc:
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self.run_shutdown_hooks()
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking.

        Several worker threads may hit ``__call__()`` at once on the first
        request; exactly one captures the middleware chain.
        """
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Capture middleware as an immutable tuple.

        MUST only be called while holding _freeze_lock.
        """
        self._middleware = tuple(self._middleware_list)
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register middleware, error handlers, and hooks before listen()."
            )
            raise ConfigurationError(msg)
