"""ASGI handler - translates ASGI scope/messages to perch types.

The only HTTP component that touches raw ASGI directly. Converts scope
dicts to typed Request objects, dispatches through middleware and
routing, and sends the Response back through ASGI send().
"""

import inspect
from collections.abc import Callable
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import invoke
from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.middleware.protocol import Next
from perch.routing.route import RouteMatch
from perch.routing.router import Router
from perch.server.errors import handle_http_error, handle_internal_error
from perch.server.negotiation import negotiate
from perch.server.sender import send_response


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    get_router: Callable[[], Router],
    middleware: tuple[Callable[..., Any], ...],
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
    max_body: int | None = None,
) -> None:
    """Process a single HTTP request through the full pipeline.

    ``get_router`` is called after middleware has run, so routes wired by
    a module activated earlier in the chain are visible to this request.
    """
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive, max_body=max_body)

    try:

        async def dispatch(req: Request) -> Response:
            match = get_router().match(req.method, req.path)
            return await _invoke_handler(match, req)

        handler: Next = dispatch
        for mw in reversed(middleware):
            outer = handler

            async def make_next(req: Request, _mw: Any = mw, _next: Next = outer) -> Response:
                return await _mw(req, _next)

            handler = make_next

        response = await handler(request)

    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers, debug)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, debug)

    await send_response(response, send, head=request.method == "HEAD")


async def _invoke_handler(match: RouteMatch, request: Request) -> Response:
    """Call the matched route handler and negotiate its return value."""
    handler = match.route.handler
    request = request.with_path_params(match.params)
    kwargs = _build_handler_kwargs(handler, request, match.params)
    result = await invoke(handler, **kwargs)
    return negotiate(result)


def _build_handler_kwargs(
    handler: Callable[..., Any],
    request: Request,
    path_params: dict[str, Any],
) -> dict[str, Any]:
    """Inspect handler signature and build kwargs from request + path params.

    Resolution order:
    1. ``request`` parameter (by name or ``Request`` annotation)
    2. Path parameters by name. Values arrive converted by the route's
       converter; an untyped ``{id}`` annotated ``int`` or ``float`` is
       coerced here.
    """
    sig = inspect.signature(handler, eval_str=True)
    kwargs: dict[str, Any] = {}

    for name, param in sig.parameters.items():
        if name == "request" or param.annotation is Request:
            kwargs[name] = request
        elif name in path_params:
            value = path_params[name]
            if param.annotation in (int, float) and isinstance(value, str):
                try:
                    kwargs[name] = param.annotation(value)
                except ValueError:
                    kwargs[name] = value
            else:
                kwargs[name] = value

    return kwargs
