"""Dispatcher - catch-all middleware that activates modules on demand.

Installed as the outermost middleware by ``Host.listen()``. For every
request it resolves the owning module and makes sure that module is
activated before the rest of the pipeline runs. It never builds a
response itself.
"""

import logging
from collections.abc import Callable
from typing import Any

import anyio.to_thread

from perch.http.request import Request
from perch.http.response import Response
from perch.middleware.protocol import Next
from perch.modules.registry import ModuleEntry, ModuleRegistry

logger = logging.getLogger("perch.modules")


class Dispatcher:
    """Lazy module activation as a middleware.

    ``sink_factory`` builds the handler sink for an entry (a ``RouteSink``
    in the host). With ``offload=True`` the first activation of an entry
    runs in a worker thread, so a slow ``activate()`` and the requests
    waiting on it block threads rather than the event loop.

    Activation failures raise ``ActivationError`` into the pipeline, where
    the app's error handling turns them into a response. The entry stays
    uninitialized and the next matching request retries.
    """

    __slots__ = ("_offload", "_registry", "_sink_factory")

    def __init__(
        self,
        registry: ModuleRegistry,
        sink_factory: Callable[[ModuleEntry], Any],
        *,
        offload: bool = True,
    ) -> None:
        self._registry = registry
        self._sink_factory = sink_factory
        self._offload = offload

    async def __call__(self, request: Request, next: Next) -> Response:
        entry = self._registry.resolve(request.path)
        if entry is None:
            return await next(request)

        if not entry.activated:
            await self._activate(entry)

        return await next(request)

    async def _activate(self, entry: ModuleEntry) -> None:
        def factory() -> Any:
            return self._sink_factory(entry)

        logger.debug("Activating module %s", entry.context_path)
        if self._offload:
            await anyio.to_thread.run_sync(self._registry.ensure_activated, entry, factory)
        else:
            self._registry.ensure_activated(entry, factory)
