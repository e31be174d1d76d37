"""Module capability contract.

A module is anything exposing ``context_path``, ``server_type`` and a
synchronous ``activate(sink)``. ``FunctionModule`` covers the common case
of a plain function, and is what ``Host.module()`` produces.
"""

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from perch.errors import InvalidModuleError


class ServerType(Enum):
    """Which server a module attaches to."""

    # Request/response routes, activated on the first matching request
    PRIMARY = "primary"
    # Persistent websocket connections, activated at registration
    STREAMING = "streaming"


class ActivationState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


@runtime_checkable
class Module(Protocol):
    """Protocol for hosted modules.

    ``activate`` receives a ``RouteSink`` for PRIMARY modules and a
    ``StreamingSink`` for STREAMING modules. It is called at most once
    successfully per registration.
    """

    @property
    def context_path(self) -> str: ...

    @property
    def server_type(self) -> ServerType: ...

    def activate(self, sink: Any) -> None: ...


@dataclass(frozen=True, slots=True)
class FunctionModule:
    """A module whose activation is a plain function.

    Usage::

        def setup(routes: RouteSink) -> None:
            @routes.route("/items")
            def items():
                return ["a", "b"]

        host.register(FunctionModule("/api", setup))
    """

    context_path: str
    setup: Callable[[Any], None]
    server_type: ServerType = ServerType.PRIMARY
    name: str | None = None

    def __post_init__(self) -> None:
        if inspect.iscoroutinefunction(self.setup):
            label = getattr(self.setup, "__name__", "setup")
            msg = (
                f"Module {self.context_path!r}: {label}() is async. "
                "Activation must be synchronous; open async resources from an app "
                "startup hook instead."
            )
            raise InvalidModuleError(msg)

    def activate(self, sink: Any) -> Any:
        return self.setup(sink)

    def __repr__(self) -> str:
        label = self.name or getattr(self.setup, "__name__", "module")
        return f"<FunctionModule {label} at {self.context_path!r} ({self.server_type.value})>"
