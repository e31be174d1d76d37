"""Call sync or async callables uniformly.

Route handlers, websocket event handlers, error handlers, and lifecycle
hooks can all be ``def`` or ``async def``. The sync/async check lives here
so the pipeline never branches on it.

Usage::

    from perch._internal.invoke import invoke

    result = await invoke(handler, *args, **kwargs)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler* and await the result if it is awaitable."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
