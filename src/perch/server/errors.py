"""Error handling pipeline for perch requests.

Maps HTTPError exceptions and unexpected failures (including module
activation failures) to Response objects, using registered error
handlers or plain defaults.
"""

import inspect
import logging
import traceback
from collections.abc import Callable
from typing import Any

from perch.errors import ActivationError, HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.server.negotiation import negotiate

logger = logging.getLogger("perch.server")


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
) -> Response:
    """Invoke a user-registered error handler with introspected arguments.

    Error handlers may accept zero, one (request), or two (request, exc) args.
    Supports both sync and async error handlers.
    """
    params = list(inspect.signature(handler).parameters.values())

    if len(params) >= 2:
        result = handler(request, exc)
    elif len(params) == 1:
        result = handler(request)
    else:
        result = handler()

    if inspect.isawaitable(result):
        result = await result

    return negotiate(result)


def _find_handler(
    error_handlers: dict[int | type, Callable[..., Any]],
    exc: Exception,
) -> Callable[..., Any] | None:
    """Most specific registered exception type, walking the MRO."""
    for cls in type(exc).__mro__:
        handler = error_handlers.get(cls)
        if handler is not None:
            return handler
    return None


async def handle_http_error(
    exc: HTTPError,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.debug("%d %s %s - %s", exc.status, request.method, request.path, exc.detail)

    handler = _find_handler(error_handlers, exc) or error_handlers.get(exc.status)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        # Keep the exception's status unless the handler chose its own
        if response.status == 200:
            response = response.with_status(exc.status)
        return response

    detail = exc.detail or f"Error {exc.status}"
    if debug and exc.detail:
        detail = f"{exc.status}: {exc.detail}"

    resp = Response(body=detail, status=exc.status)
    for name, value in exc.headers:
        resp = resp.with_header(name, value)
    return resp


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> Response:
    """Handle unexpected exceptions as 500 errors."""
    if isinstance(exc, ActivationError):
        logger.error(
            "500 %s %s - module %s failed to activate",
            request.method,
            request.path,
            exc.context_path,
            exc_info=exc,
        )
    else:
        logger.exception("500 %s %s", request.method, request.path)

    handler = _find_handler(error_handlers, exc) or error_handlers.get(500)
    if handler is not None:
        response = await call_error_handler(handler, request, exc)
        if response.status == 200:
            response = response.with_status(500)
        return response

    if debug:
        body = "".join(traceback.format_exception(exc))
        return Response(body=body, status=500)

    return Response(body="Internal Server Error", status=500)
