"""WebSocket streaming server over ASGI.

The host owns one ``StreamingServer``. STREAMING modules get a
``StreamingSink`` at registration, which opens a channel on that server
for the module's context path. Incoming websocket connections resolve to
the first-registered channel whose context path prefixes the request path
(the same rule HTTP requests follow).

Free-threading safety:
    - The channel list is copy-on-write behind a lock
    - Each channel guards its connection set with its own lock
    - Broadcast iterates a snapshot, never the live set
"""

import contextlib
import json as json_module
import logging
import threading
import uuid
from collections.abc import Callable
from typing import Any

from perch._internal.asgi import Receive, Scope, Send, WebSocketScope
from perch._internal.invoke import invoke
from perch._internal.types import StreamHandler
from perch.http.headers import Headers
from perch.http.query import QueryParams

logger = logging.getLogger("perch.streaming")

# Close codes
CLOSE_NORMAL = 1000
CLOSE_TOO_BIG = 1009
CLOSE_INTERNAL_ERROR = 1011
CLOSE_NOT_FOUND = 4404  # no streaming module owns the path


class Connection:
    """An accepted websocket connection.

    Usage in a module::

        @stream.on_message
        async def echo(conn: Connection, message: str | bytes) -> None:
            await conn.send_text(f"echo: {message}")
    """

    __slots__ = ("_closed", "_send", "client", "headers", "id", "path", "query", "state")

    def __init__(self, scope: WebSocketScope, send: Send) -> None:
        self.id: str = uuid.uuid4().hex[:12]
        self.path = scope.path
        self.headers = Headers(scope.headers)
        self.query = QueryParams(scope.query_string)
        self.client = scope.client
        # Free-form per-connection storage for handlers
        self.state: dict[str, Any] = {}
        self._send = send
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_text(self, text: str) -> None:
        await self._send({"type": "websocket.send", "text": text})

    async def send_bytes(self, data: bytes) -> None:
        await self._send({"type": "websocket.send", "bytes": data})

    async def send_json(self, value: Any) -> None:
        await self.send_text(json_module.dumps(value, default=str))

    async def send(self, data: Any) -> None:
        """Send str as text, bytes as binary, anything else as JSON."""
        if isinstance(data, str):
            await self.send_text(data)
        elif isinstance(data, bytes):
            await self.send_bytes(data)
        else:
            await self.send_json(data)

    async def close(self, code: int = CLOSE_NORMAL) -> None:
        if self._closed:
            return
        self._closed = True
        await self._send({"type": "websocket.close", "code": code})

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.path!r}>"


class Channel:
    """Handlers and live connections for one streaming module."""

    __slots__ = (
        "_connections",
        "_lock",
        "connect_handlers",
        "context_path",
        "disconnect_handlers",
        "message_handlers",
    )

    def __init__(self, context_path: str) -> None:
        self.context_path = context_path
        self.connect_handlers: list[StreamHandler] = []
        self.message_handlers: list[StreamHandler] = []
        self.disconnect_handlers: list[StreamHandler] = []
        self._connections: set[Connection] = set()
        self._lock = threading.Lock()

    @property
    def connections(self) -> frozenset[Connection]:
        with self._lock:
            return frozenset(self._connections)

    def _add(self, conn: Connection) -> None:
        with self._lock:
            self._connections.add(conn)

    def _discard(self, conn: Connection) -> None:
        with self._lock:
            self._connections.discard(conn)


class StreamingSink:
    """Connection-event surface handed to a STREAMING module's ``activate()``.

    Usage::

        def activate(stream: StreamingSink) -> None:
            @stream.on_connect
            async def hello(conn):
                await conn.send_text("welcome")

            @stream.on_message
            async def relay(conn, message):
                await stream.broadcast(message)
    """

    __slots__ = ("_channel",)

    def __init__(self, channel: Channel) -> None:
        self._channel = channel

    @property
    def context_path(self) -> str:
        return self._channel.context_path

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def connections(self) -> frozenset[Connection]:
        """Currently open connections on this module's channel."""
        return self._channel.connections

    def on_connect(self, func: StreamHandler) -> StreamHandler:
        """Run ``func(conn)`` after a connection is accepted."""
        self._channel.connect_handlers.append(func)
        return func

    def on_message(self, func: StreamHandler) -> StreamHandler:
        """Run ``func(conn, message)`` for each text or binary message."""
        self._channel.message_handlers.append(func)
        return func

    def on_disconnect(self, func: StreamHandler) -> StreamHandler:
        """Run ``func(conn)`` once the connection is gone."""
        self._channel.disconnect_handlers.append(func)
        return func

    async def broadcast(self, data: Any, *, exclude: Connection | None = None) -> int:
        """Send *data* to every open connection. Returns the delivery count.

        Connections that fail to send are closed and dropped.
        """
        delivered = 0
        for conn in self._channel.connections:
            if conn is exclude or conn.closed:
                continue
            try:
                await conn.send(data)
            except Exception:
                logger.debug("Dropping connection %s after failed send", conn.id, exc_info=True)
                self._channel._discard(conn)
                continue
            delivered += 1
        return delivered


class StreamingServer:
    """ASGI websocket endpoint shared by all STREAMING modules."""

    __slots__ = ("_channels", "_lock", "max_message_size")

    def __init__(self, *, max_message_size: int = 1_048_576) -> None:
        self._channels: tuple[Channel, ...] = ()
        self._lock = threading.Lock()
        self.max_message_size = max_message_size

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._channels

    def sink_for(self, context_path: str) -> StreamingSink:
        """A sink over a new, not yet attached channel for *context_path*."""
        return StreamingSink(Channel(context_path))

    def attach(self, sink: StreamingSink) -> None:
        """Start routing connections to *sink*'s channel.

        Called once the module's activation succeeded, so a module that
        failed to activate never accepts connections.
        """
        with self._lock:
            self._channels = (*self._channels, sink.channel)

    def resolve(self, path: str) -> Channel | None:
        """First-opened channel whose context path is a raw prefix of *path*."""
        for channel in self._channels:
            if path.startswith(channel.context_path):
                return channel
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Serve one websocket connection from connect to disconnect."""
        if scope["type"] != "websocket":
            return
        ws = WebSocketScope.from_scope(scope)

        message = await receive()
        if message["type"] != "websocket.connect":
            return

        channel = self.resolve(ws.path)
        if channel is None:
            logger.debug("No streaming module owns %s", ws.path)
            await send({"type": "websocket.close", "code": CLOSE_NOT_FOUND})
            return

        await send({"type": "websocket.accept"})
        conn = Connection(ws, send)
        channel._add(conn)
        try:
            await _run_handlers(channel.connect_handlers, conn)
            while not conn.closed:
                message = await receive()
                msg_type = message["type"]
                if msg_type == "websocket.disconnect":
                    conn._closed = True
                    break
                if msg_type != "websocket.receive":
                    continue
                data = message.get("text")
                if data is None:
                    data = message.get("bytes") or b""
                size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
                if size > self.max_message_size:
                    await conn.close(CLOSE_TOO_BIG)
                    break
                await _run_handlers(channel.message_handlers, conn, data)
        except Exception:
            logger.exception("websocket handler failed on %s", ws.path)
            # The peer may already be gone
            with contextlib.suppress(Exception):
                await conn.close(CLOSE_INTERNAL_ERROR)
        finally:
            channel._discard(conn)
            for handler in channel.disconnect_handlers:
                try:
                    await invoke(handler, conn)
                except Exception:
                    logger.exception("websocket disconnect handler failed on %s", ws.path)


async def _run_handlers(handlers: list[Callable[..., Any]], *args: Any) -> None:
    for handler in handlers:
        await invoke(handler, *args)
