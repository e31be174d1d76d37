"""Perch - lazy-activating module host for ASGI.

Register handler modules under context paths. A module's activation runs
on the first request whose path starts with its context path; websocket
(STREAMING) modules activate as they are registered.

Basic usage::

    from perch import Host

    host = Host()

    @host.module("/api")
    def api(routes):
        @routes.route("/hello")
        def hello():
            return "Hello, World!"

    host.listen(8000)
"""

__version__ = "0.1.0"
__all__ = [
    "ActivationError",
    "ActivationState",
    "App",
    "ConfigurationError",
    "Connection",
    "FunctionModule",
    "HTTPError",
    "Host",
    "HostConfig",
    "InvalidModuleError",
    "MethodNotAllowed",
    "Middleware",
    "Module",
    "ModuleEntry",
    "Next",
    "NotFound",
    "PerchError",
    "Redirect",
    "Request",
    "Response",
    "RouteSink",
    "ServerType",
    "StreamingSink",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import perch`` fast while providing a clean top-level API.
    """
    if name == "Host":
        from perch.host import Host

        return Host

    if name == "App":
        from perch.app import App

        return App

    if name == "HostConfig":
        from perch.config import HostConfig

        return HostConfig

    if name == "Request":
        from perch.http.request import Request

        return Request

    if name in ("Response", "Redirect"):
        from perch.http import response as _resp

        return getattr(_resp, name)

    if name in ("Middleware", "Next"):
        from perch.middleware import protocol as _mw

        return getattr(_mw, name)

    if name in ("ActivationState", "FunctionModule", "Module", "ServerType"):
        from perch.modules import module as _module

        return getattr(_module, name)

    if name == "ModuleEntry":
        from perch.modules.registry import ModuleEntry

        return ModuleEntry

    if name == "RouteSink":
        from perch.modules.sinks import RouteSink

        return RouteSink

    if name in ("Connection", "StreamingSink"):
        from perch.realtime import streaming as _streaming

        return getattr(_streaming, name)

    if name in (
        "ActivationError",
        "ConfigurationError",
        "HTTPError",
        "InvalidModuleError",
        "MethodNotAllowed",
        "NotFound",
        "PerchError",
    ):
        from perch import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
