"""Tests for perch.modules.dispatcher - the activation middleware on its own."""

from typing import Any

import pytest

from perch.errors import ActivationError
from perch.http.request import Request
from perch.http.response import Response
from perch.modules.dispatcher import Dispatcher
from perch.modules.module import FunctionModule
from perch.modules.registry import ModuleRegistry


def _request(path: str) -> Request:
    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request.from_asgi({"type": "http", "method": "GET", "path": path}, receive)


class TestDispatcher:
    @pytest.mark.parametrize("offload", [True, False])
    async def test_activates_then_forwards(self, offload: bool) -> None:
        registry = ModuleRegistry()
        sinks: list[Any] = []
        entry = registry.register(FunctionModule("/api", sinks.append))
        dispatcher = Dispatcher(registry, lambda e: f"sink for {e.context_path}", offload=offload)
        forwarded: list[str] = []

        async def next(request: Request) -> Response:
            forwarded.append(request.path)
            assert entry.activated
            return Response("done")

        response = await dispatcher(_request("/api/x"), next)

        assert response.text == "done"
        assert forwarded == ["/api/x"]
        assert sinks == ["sink for /api"]

    async def test_unmatched_path_forwards_without_activation(self) -> None:
        registry = ModuleRegistry()
        entry = registry.register(FunctionModule("/api", lambda sink: None))
        dispatcher = Dispatcher(registry, lambda e: None)

        async def next(request: Request) -> Response:
            return Response("passed", status=404)

        response = await dispatcher(_request("/other"), next)

        assert response.status == 404
        assert not entry.activated

    async def test_failure_raises_and_skips_next(self) -> None:
        registry = ModuleRegistry()

        def broken(sink: Any) -> None:
            raise OSError("disk")

        registry.register(FunctionModule("/api", broken))
        dispatcher = Dispatcher(registry, lambda e: None)
        called = False

        async def next(request: Request) -> Response:
            nonlocal called
            called = True
            return Response()

        with pytest.raises(ActivationError) as exc_info:
            await dispatcher(_request("/api"), next)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert not called
