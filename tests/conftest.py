from __future__ import annotations

import itertools
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from tutor_repl.errors import ExecutionError, ExecutionTimeoutError
from tutor_repl.languages import get_language
from tutor_repl.sandbox.registry import SessionRegistry
from tutor_repl.sandbox.runtime import ExecOutput, ResourceLimits


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeRuntime:
    """
    In-memory stand-in for DockerRuntimeClient.

    Python code is run against a namespace kept per container, so state
    carries over between submissions like it does in a real session container.
    """

    def __init__(self) -> None:
        self.limits = ResourceLimits()
        self._ids = itertools.count(1)
        self.containers: dict[str, dict] = {}
        self.destroyed: list[str] = []
        self.exec_calls: list[dict] = []
        self.sweeps: list[dict] = []
        self.create_error: Exception | None = None
        self.exec_error: Exception | None = None
        self.destroy_error: Exception | None = None
        self.delays: dict[str, float] = {}
        self._lock = threading.Lock()

    def image_for(self, language: str) -> str:
        return get_language(language).image

    def create_container(self, language: str, session_id: str) -> str:
        if self.create_error is not None:
            raise self.create_error
        with self._lock:
            container_id = f"container-{next(self._ids)}"
            self.containers[container_id] = {"session_id": session_id, "language": language, "namespace": {}}
        return container_id

    def destroy_container(self, container_id: str) -> bool:
        with self._lock:
            self.destroyed.append(container_id)
            if self.destroy_error is not None:
                raise self.destroy_error
            return self.containers.pop(container_id, None) is not None

    def list_containers(self) -> list[str]:
        with self._lock:
            return list(self.containers)

    def cleanup_containers(self, max_age=None, exclude=()) -> int:
        self.sweeps.append({"max_age": max_age, "exclude": list(exclude)})
        return 0

    def execute_in_container(self, language, code, session_id, timeout, container_id=None) -> ExecOutput:
        self.exec_calls.append(
            {"language": language, "code": code, "session_id": session_id,
             "timeout": timeout, "container_id": container_id}
        )
        if self.exec_error is not None:
            raise self.exec_error

        delay = self.delays.get(session_id, 0.0)
        if delay > timeout:
            time.sleep(timeout)
            raise ExecutionTimeoutError(timeout, session_id)
        time.sleep(delay)

        container = self.containers.get(container_id)
        if container is None:
            raise ExecutionError(f"Container for session {session_id} no longer exists", session_id)
        if language != "python":
            return ExecOutput(output=code, error=None, exit_code=0)
        return _run_python(code, container["namespace"])


def _run_python(code: str, namespace: dict) -> ExecOutput:
    try:
        try:
            value = eval(code, namespace)
        except SyntaxError:
            exec(code, namespace)
            value = None
    except Exception as e:
        return ExecOutput(output="", error=f"{type(e).__name__}: {e}", exit_code=1)
    return ExecOutput(output="" if value is None else repr(value), error=None, exit_code=0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def registry(runtime: FakeRuntime, clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(
        runtime=runtime,
        session_timeout=3600,
        execution_timeout=2,
        max_history=100,
        clock=clock,
    )
