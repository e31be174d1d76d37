"""Serve a Host with pounce.

Pounce's ``run()`` takes an import string, but perch has a live ``Host``
object, so we build ``pounce.Server`` directly with the ASGI callable.
"""

from __future__ import annotations

from perch.errors import ConfigurationError


def run_server(
    app: object,
    host: str,
    port: int,
    *,
    workers: int = 1,
    reload: bool = False,
    log_level: str = "info",
) -> None:
    """Start a pounce server for *app* and block until it exits.

    Args:
        app: ASGI callable (a perch ``Host``).
        host: Bind host address.
        port: Bind port number.
        workers: Worker count (0 = auto-detect from CPU count).
        reload: Enable auto-reload on file changes.
        log_level: Log level (debug, info, warning, error, critical).
    """
    try:
        from pounce.config import ServerConfig
        from pounce.server import Server
    except ImportError as exc:
        msg = (
            "Host.listen() requires the pounce ASGI server. "
            "Install it with: pip install perch[server]"
        )
        raise ConfigurationError(msg) from exc

    config = ServerConfig(
        host=host,
        port=port,
        workers=workers,
        reload=reload,
        log_level=log_level,
    )
    server = Server(config, app)
    server.run()
