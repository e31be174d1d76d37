"""Tests for perch.modules.registry - registration, resolution, activation."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import pytest

from perch.errors import ActivationError, InvalidModuleError
from perch.modules.module import ActivationState, FunctionModule, ServerType
from perch.modules.registry import ModuleRegistry


class RecordingModule:
    """Module that counts activations and can fail the first N of them."""

    def __init__(
        self,
        context_path: str,
        server_type: ServerType = ServerType.PRIMARY,
        *,
        fail_times: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.context_path = context_path
        self.server_type = server_type
        self.calls = 0
        self.sinks: list[Any] = []
        self._fail_times = fail_times
        self._delay = delay

    def activate(self, sink: Any) -> None:
        self.calls += 1
        if self._delay:
            time.sleep(self._delay)
        if self.calls <= self._fail_times:
            raise RuntimeError("boom")
        self.sinks.append(sink)


def _sink() -> object:
    return object()


class TestResolve:
    def test_first_registered_prefix_wins(self) -> None:
        registry = ModuleRegistry()
        a = registry.register(RecordingModule("/api"))
        registry.register(RecordingModule("/api/v2"))

        assert registry.resolve("/api/v2/items") is a

    def test_later_registration_wins_only_when_earlier_does_not_match(self) -> None:
        registry = ModuleRegistry()
        registry.register(RecordingModule("/api/v2"))
        b = registry.register(RecordingModule("/api"))

        assert registry.resolve("/api/items") is b

    def test_raw_string_prefix(self) -> None:
        registry = ModuleRegistry()
        entry = registry.register(RecordingModule("/api"))

        assert registry.resolve("/apix") is entry
        assert registry.resolve("/api") is entry

    def test_no_match(self) -> None:
        registry = ModuleRegistry()
        registry.register(RecordingModule("/api"))

        assert registry.resolve("/other") is None
        assert registry.resolve("/ap") is None

    def test_empty_registry(self) -> None:
        assert ModuleRegistry().resolve("/anything") is None

    def test_root_context_path_matches_everything(self) -> None:
        registry = ModuleRegistry()
        entry = registry.register(RecordingModule("/"))

        assert registry.resolve("/x/y/z") is entry


class TestRegister:
    def test_entries_in_registration_order(self) -> None:
        registry = ModuleRegistry()
        registry.register(RecordingModule("/b"))
        registry.register(RecordingModule("/a"))

        assert [e.context_path for e in registry.entries] == ["/b", "/a"]
        assert len(registry) == 2

    def test_primary_is_not_activated_at_registration(self) -> None:
        registry = ModuleRegistry()
        module = RecordingModule("/api")
        entry = registry.register(module)

        assert module.calls == 0
        assert entry.state is ActivationState.UNINITIALIZED
        assert entry.activation_count == 0

    def test_streaming_is_activated_at_registration(self) -> None:
        sinks: list[Any] = []

        def factory(entry: Any) -> object:
            sink = object()
            sinks.append(sink)
            return sink

        registry = ModuleRegistry(streaming_sink_factory=factory)
        module = RecordingModule("/ws", ServerType.STREAMING)
        entry = registry.register(module)

        assert module.calls == 1
        assert entry.activated
        assert entry.sink is sinks[0]
        assert module.sinks == sinks

    def test_failed_streaming_is_not_registered(self) -> None:
        registry = ModuleRegistry(streaming_sink_factory=lambda entry: object())
        module = RecordingModule("/ws", ServerType.STREAMING, fail_times=1)

        with pytest.raises(ActivationError) as exc_info:
            registry.register(module)

        assert exc_info.value.context_path == "/ws"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert len(registry) == 0
        assert registry.resolve("/ws") is None

    def test_streaming_without_factory_is_rejected(self) -> None:
        registry = ModuleRegistry()
        with pytest.raises(InvalidModuleError):
            registry.register(RecordingModule("/ws", ServerType.STREAMING))
        assert len(registry) == 0

    def test_duplicate_context_paths_are_allowed(self) -> None:
        registry = ModuleRegistry()
        first = registry.register(RecordingModule("/api"))
        registry.register(RecordingModule("/api"))

        assert len(registry) == 2
        assert registry.resolve("/api/x") is first

    def test_on_registered_runs_before_entry_is_visible(self) -> None:
        seen: list[tuple[str, int]] = []

        def listener(entry: Any) -> None:
            seen.append((entry.context_path, len(registry)))

        registry = ModuleRegistry(on_registered=listener)
        registry.register(RecordingModule("/a"))
        registry.register(RecordingModule("/b"))

        assert seen == [("/a", 0), ("/b", 1)]

    def test_on_registered_failure_leaves_registry_unchanged(self) -> None:
        def listener(entry: Any) -> None:
            raise RuntimeError("listener down")

        registry = ModuleRegistry(on_registered=listener)
        with pytest.raises(RuntimeError):
            registry.register(RecordingModule("/a"))
        assert len(registry) == 0


class TestValidation:
    def test_none(self) -> None:
        with pytest.raises(InvalidModuleError):
            ModuleRegistry().register(None)  # type: ignore[arg-type]

    def test_empty_context_path(self) -> None:
        with pytest.raises(InvalidModuleError, match="context_path"):
            ModuleRegistry().register(RecordingModule(""))

    def test_non_string_context_path(self) -> None:
        with pytest.raises(InvalidModuleError):
            ModuleRegistry().register(RecordingModule(42))  # type: ignore[arg-type]

    def test_unknown_server_type(self) -> None:
        with pytest.raises(InvalidModuleError, match="server_type"):
            ModuleRegistry().register(RecordingModule("/x", "PRIMARY"))  # type: ignore[arg-type]

    def test_missing_activate(self) -> None:
        class NoActivate:
            context_path = "/x"
            server_type = ServerType.PRIMARY

        with pytest.raises(InvalidModuleError, match="activate"):
            ModuleRegistry().register(NoActivate())  # type: ignore[arg-type]

    def test_async_activate_rejected(self) -> None:
        class AsyncModule:
            context_path = "/x"
            server_type = ServerType.PRIMARY

            async def activate(self, sink: Any) -> None:
                pass

        with pytest.raises(InvalidModuleError, match="synchronous"):
            ModuleRegistry().register(AsyncModule())  # type: ignore[arg-type]

    def test_async_function_module_rejected(self) -> None:
        async def setup(sink: Any) -> None:
            pass

        with pytest.raises(InvalidModuleError):
            ModuleRegistry().register(FunctionModule("/x", setup))

    def test_failed_validation_leaves_registry_unchanged(self) -> None:
        registry = ModuleRegistry()
        registry.register(RecordingModule("/a"))
        with pytest.raises(InvalidModuleError):
            registry.register(RecordingModule(""))
        assert len(registry) == 1


class TestEnsureActivated:
    def test_activates_once(self) -> None:
        registry = ModuleRegistry()
        module = RecordingModule("/api")
        entry = registry.register(module)

        for _ in range(5):
            registry.ensure_activated(entry, _sink)

        assert module.calls == 1
        assert entry.activation_count == 1
        assert entry.state is ActivationState.INITIALIZED

    def test_sink_is_kept(self) -> None:
        registry = ModuleRegistry()
        module = RecordingModule("/api")
        entry = registry.register(module)
        sink = object()

        registry.ensure_activated(entry, lambda: sink)

        assert entry.sink is sink
        assert module.sinks == [sink]

    def test_sink_commit_runs_only_after_success(self) -> None:
        class StagingSink:
            def __init__(self) -> None:
                self.committed = False

            def commit(self) -> None:
                self.committed = True

        registry = ModuleRegistry()
        entry = registry.register(RecordingModule("/api", fail_times=1))
        failed, succeeded = StagingSink(), StagingSink()

        with pytest.raises(ActivationError):
            registry.ensure_activated(entry, lambda: failed)
        registry.ensure_activated(entry, lambda: succeeded)

        assert not failed.committed
        assert succeeded.committed

    def test_commit_failure_is_an_activation_error(self) -> None:
        class BrokenSink:
            def commit(self) -> None:
                raise ValueError("route table locked")

        registry = ModuleRegistry()
        entry = registry.register(RecordingModule("/api"))

        with pytest.raises(ActivationError, match="route table locked"):
            registry.ensure_activated(entry, BrokenSink)
        assert not entry.activated

    def test_failure_commits_nothing_then_retry_succeeds(self) -> None:
        registry = ModuleRegistry()
        module = RecordingModule("/api", fail_times=1)
        entry = registry.register(module)

        with pytest.raises(ActivationError, match="boom"):
            registry.ensure_activated(entry, _sink)

        assert entry.state is ActivationState.UNINITIALIZED
        assert entry.activation_count == 0
        assert entry.sink is None

        registry.ensure_activated(entry, _sink)

        assert entry.activated
        assert entry.activation_count == 1
        assert module.calls == 2

    def test_awaitable_result_is_an_error(self) -> None:
        async def later() -> None:
            pass

        class SneakyModule:
            context_path = "/x"
            server_type = ServerType.PRIMARY

            def activate(self, sink: Any) -> Any:
                return later()

        registry = ModuleRegistry()
        entry = registry.register(SneakyModule())  # type: ignore[arg-type]

        with pytest.raises(ActivationError, match="awaitable"):
            registry.ensure_activated(entry, _sink)
        assert not entry.activated

    def test_concurrent_callers_activate_once(self) -> None:
        registry = ModuleRegistry()
        module = RecordingModule("/api", delay=0.05)
        entry = registry.register(module)
        barrier = threading.Barrier(8)

        def worker() -> bool:
            barrier.wait()
            registry.ensure_activated(entry, _sink)
            return entry.activated

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: worker(), range(8)))

        assert all(results)
        assert module.calls == 1
        assert entry.activation_count == 1

    def test_concurrent_callers_after_failure_retry_once(self) -> None:
        registry = ModuleRegistry()
        module = RecordingModule("/api", fail_times=1, delay=0.02)
        entry = registry.register(module)

        with pytest.raises(ActivationError):
            registry.ensure_activated(entry, _sink)

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(lambda _: registry.ensure_activated(entry, _sink), range(4)))

        assert module.calls == 2
        assert entry.activation_count == 1
