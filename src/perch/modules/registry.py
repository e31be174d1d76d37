"""Module registry - ordered entries and their activation state.

Thread safety:
    The entry sequence is copy-on-write: ``register()`` builds a new tuple
    under a lock and swaps it in, so ``resolve()`` reads a consistent
    snapshot without locking. Each entry owns a lock that serializes its
    single UNINITIALIZED -> INITIALIZED transition (double-checked, the
    same pattern as the app freeze). This holds under free-threaded
    workers and under a single event loop alike.
"""

import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any, TypeAlias

from perch.errors import ActivationError, InvalidModuleError
from perch.modules.module import ActivationState, Module, ServerType

logger = logging.getLogger("perch.modules")

SinkFactory: TypeAlias = Callable[[], Any]


class ModuleEntry:
    """One registered module plus its activation state.

    Owned by the registry. The state only ever moves forward.
    """

    __slots__ = ("_lock", "_state", "activation_count", "module", "sink")

    def __init__(self, module: Module) -> None:
        self.module = module
        self._state = ActivationState.UNINITIALIZED
        self._lock = threading.Lock()
        # Successful activations; stays at most 1
        self.activation_count = 0
        # Sink handed to activate(), kept once activation succeeds
        self.sink: Any = None

    @property
    def context_path(self) -> str:
        return self.module.context_path

    @property
    def server_type(self) -> ServerType:
        return self.module.server_type

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def activated(self) -> bool:
        return self._state is ActivationState.INITIALIZED

    def __repr__(self) -> str:
        return f"<ModuleEntry {self.context_path!r} {self._state.value}>"


def validate_module(module: object) -> None:
    """Raise ``InvalidModuleError`` unless *module* meets the contract."""
    if module is None:
        raise InvalidModuleError("Module cannot be None.")

    context_path = getattr(module, "context_path", None)
    if not isinstance(context_path, str) or not context_path:
        msg = f"Module {module!r} must have a non-empty string context_path, got {context_path!r}."
        raise InvalidModuleError(msg)

    server_type = getattr(module, "server_type", None)
    if not isinstance(server_type, ServerType):
        msg = (
            f"Module {context_path!r} has server_type {server_type!r}; "
            f"expected one of: {', '.join(t.name for t in ServerType)}."
        )
        raise InvalidModuleError(msg)

    activate = getattr(module, "activate", None)
    if not callable(activate):
        msg = f"Module {context_path!r} has no callable activate()."
        raise InvalidModuleError(msg)
    if inspect.iscoroutinefunction(activate):
        msg = (
            f"Module {context_path!r} defines async activate(). Activation must be "
            "synchronous; open async resources from an app startup hook instead."
        )
        raise InvalidModuleError(msg)


class ModuleRegistry:
    """Ordered module list with first-match resolution and lazy activation.

    Usage::

        registry = ModuleRegistry(streaming_sink_factory=make_stream_sink)
        registry.register(api_module)
        entry = registry.resolve("/api/items")
        if entry is not None:
            registry.ensure_activated(entry, lambda: RouteSink(app, entry.context_path))
    """

    __slots__ = ("_entries", "_lock", "_on_registered", "_streaming_sink_factory")

    def __init__(
        self,
        streaming_sink_factory: Callable[[ModuleEntry], Any] | None = None,
        *,
        on_registered: Callable[[ModuleEntry], None] | None = None,
    ) -> None:
        self._entries: tuple[ModuleEntry, ...] = ()
        self._lock = threading.Lock()
        self._streaming_sink_factory = streaming_sink_factory
        # Runs under the append lock, so listeners see entries in order
        self._on_registered = on_registered

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[ModuleEntry, ...]:
        """Snapshot of entries in registration order."""
        return self._entries

    def register(self, module: Module) -> ModuleEntry:
        """Validate and append *module*.

        STREAMING modules are activated before the entry is appended, so a
        failing streaming module is never registered. PRIMARY modules wait
        for their first request.

        ``on_registered`` runs inside the same critical section as the
        append. If it raises, the entry is not appended.
        """
        validate_module(module)
        entry = ModuleEntry(module)

        if module.server_type is ServerType.STREAMING:
            if self._streaming_sink_factory is None:
                msg = f"Module {module.context_path!r} is STREAMING but no streaming server is attached."
                raise InvalidModuleError(msg)
            self.ensure_activated(entry, lambda: self._streaming_sink_factory(entry))

        with self._lock:
            if self._on_registered is not None:
                self._on_registered(entry)
            self._entries = (*self._entries, entry)
        return entry

    def resolve(self, path: str) -> ModuleEntry | None:
        """First-registered entry whose context path is a prefix of *path*.

        Plain string prefix, not segment-aware: ``/apix`` resolves to a
        module at ``/api``. Returns ``None`` when nothing matches.
        """
        for entry in self._entries:
            if path.startswith(entry.context_path):
                return entry
        return None

    def ensure_activated(self, entry: ModuleEntry, sink_factory: SinkFactory) -> None:
        """Activate *entry* exactly once.

        Concurrent callers block on the entry lock until the winner
        finishes, then return having observed the committed state. If
        ``activate()`` raises, nothing is committed and ``ActivationError``
        is raised; the next caller retries.
        """
        if entry.activated:
            return
        with entry._lock:
            if entry.activated:
                return
            sink = sink_factory()
            try:
                result = entry.module.activate(sink)
            except Exception as exc:
                raise ActivationError(entry.context_path, str(exc)) from exc
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise ActivationError(entry.context_path, "activate() returned an awaitable")
            # Sinks that stage wiring publish it only after activate() returned
            commit = getattr(sink, "commit", None)
            if commit is not None:
                try:
                    commit()
                except Exception as exc:
                    raise ActivationError(entry.context_path, str(exc)) from exc
            entry.sink = sink
            entry.activation_count += 1
            entry._state = ActivationState.INITIALIZED
            logger.info("Activated module %s (%s)", entry.context_path, entry.server_type.value)
