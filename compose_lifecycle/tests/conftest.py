from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import pytest

from compose_lifecycle.executor import ProcessExecutor, ProcessResult
from compose_lifecycle.services import PropertyService, TimeService


class FakeClock(TimeService):
    """Deterministic clock; sleeping advances monotonic time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.current = start
        self.sleeps: list[float] = []
        self.wall = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.wall

    def monotonic(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


class FakeExecutor(ProcessExecutor):
    """Records commands and answers them through a handler."""

    def __init__(self, handler: Callable[[list[str]], ProcessResult | Exception] | None = None):
        self.handler = handler or (lambda cmd: ProcessResult(tuple(cmd), 0))
        self.calls: list[list[str]] = []
        self.timeouts: list[float] = []
        self.cwds: list[object] = []

    def execute(self, cmd, *, timeout, cwd=None, env=None) -> ProcessResult:
        self.calls.append(list(cmd))
        self.timeouts.append(timeout)
        self.cwds.append(cwd)
        result = self.handler(list(cmd))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_executor() -> type[FakeExecutor]:
    return FakeExecutor


@pytest.fixture
def properties() -> PropertyService:
    return PropertyService({})
