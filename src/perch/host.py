"""Module host - registry, dispatcher, and servers in one context object.

A ``Host`` owns everything that used to be process-wide state: the
ordered module registry, the HTTP ``App``, and the ``StreamingServer``.
Any number of independent hosts can live in one process.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch.app import App
from perch.config import HostConfig
from perch.errors import ConfigurationError, InvalidModuleError
from perch.modules.dispatcher import Dispatcher
from perch.modules.module import FunctionModule, Module, ServerType
from perch.modules.registry import ModuleEntry, ModuleRegistry
from perch.modules.sinks import RouteSink
from perch.realtime.streaming import StreamingServer

logger = logging.getLogger("perch.host")


class Host:
    """Registers modules and activates them lazily.

    Usage::

        host = Host()

        @host.module("/api")
        def api(routes: RouteSink) -> None:
            @routes.route("/items")
            def items():
                return ["a", "b"]

        @host.module("/ws", server_type=ServerType.STREAMING)
        def chat(stream: StreamingSink) -> None:
            @stream.on_message
            async def relay(conn, message):
                await stream.broadcast(message)

        host.listen(8000)

    PRIMARY modules activate on the first request whose path starts with
    their context path; STREAMING modules activate inside ``register()``.
    """

    __slots__ = ("_app", "_install_lock", "_installed", "_listening", "_registry", "_streaming", "config")

    def __init__(self, config: HostConfig | None = None) -> None:
        self.config: HostConfig = config or HostConfig()
        self._app = App(self.config)
        self._streaming = StreamingServer(max_message_size=self.config.websocket_max_message_size)
        self._registry = ModuleRegistry(
            streaming_sink_factory=self._streaming_sink,
            on_registered=self._on_registered,
        )
        self._installed = False
        self._listening = False
        self._install_lock = threading.Lock()

    # -- Registration --

    def register(self, module: Module) -> ModuleEntry:
        """Register a module. Allowed before and after the host starts serving.

        Raises ``InvalidModuleError`` if the module fails validation, and
        ``ActivationError`` if a STREAMING module fails to activate (the
        module is not registered in that case).
        """
        if module is None:
            raise InvalidModuleError("Module cannot be None.")
        logger.info("Registering module %s", getattr(module, "context_path", module))
        return self._registry.register(module)

    def module(
        self,
        context_path: str,
        *,
        server_type: ServerType = ServerType.PRIMARY,
    ) -> Callable[[Callable[[Any], None]], Callable[[Any], None]]:
        """Register a plain ``activate(sink)`` function as a module via decorator."""

        def decorator(func: Callable[[Any], None]) -> Callable[[Any], None]:
            self.register(
                FunctionModule(
                    context_path=context_path,
                    setup=func,
                    server_type=server_type,
                    name=func.__name__,
                )
            )
            return func

        return decorator

    # -- Accessors --

    @property
    def app(self) -> App:
        """The underlying HTTP app, for wiring outside any module."""
        return self._app

    @property
    def streaming(self) -> StreamingServer:
        return self._streaming

    @property
    def registry(self) -> ModuleRegistry:
        return self._registry

    @property
    def modules(self) -> tuple[ModuleEntry, ...]:
        """Registered entries in registration order."""
        return self._registry.entries

    # -- Serving --

    def install(self) -> None:
        """Install the dispatcher as the outermost middleware.

        Done by ``listen()`` and on the first ASGI call; a second call is a
        no-op.
        """
        if self._installed:
            return
        with self._install_lock:
            if self._installed:
                return
            dispatcher = Dispatcher(
                self._registry,
                self._route_sink,
                offload=self.config.offload_activation,
            )
            self._app.add_middleware(dispatcher, first=True)
            self._installed = True

    def listen(self, port: int | None = None, host: str | None = None) -> None:
        """Install the dispatcher and serve on *port* until shutdown.

        Calling ``listen()`` twice on the same host is a usage error.
        """
        if self._listening:
            msg = "Host.listen() was already called on this host."
            raise ConfigurationError(msg)
        self._listening = True
        self.install()

        from perch.server.runner import run_server

        _host = host if host is not None else self.config.host
        _port = port if port is not None else self.config.port
        logger.info("Listening on %s:%d with %d module(s)", _host, _port, len(self._registry))
        run_server(
            self,
            _host,
            _port,
            workers=self.config.workers,
            reload=self.config.debug,
            log_level=self.config.log_level,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Websocket scopes go to the streaming server; lifespan and HTTP
        scopes go to the app.
        """
        if not self._installed:
            self.install()
        if scope["type"] == "websocket":
            await self._streaming(scope, receive, send)
            return
        await self._app(scope, receive, send)

    # -- Sink factories --

    def _route_sink(self, entry: ModuleEntry) -> RouteSink:
        return RouteSink(self._app, entry.context_path)

    def _streaming_sink(self, entry: ModuleEntry) -> Any:
        return self._streaming.sink_for(entry.context_path)

    def _on_registered(self, entry: ModuleEntry) -> None:
        # Under the registry lock: channels attach in registration order,
        # and a STREAMING entry is never visible before its channel routes
        if entry.server_type is ServerType.STREAMING:
            self._streaming.attach(entry.sink)
