# Where: compose_lifecycle/tests/test_interceptor.py
# What: Unit tests for the setup/cleanup state machine.
# Why: Teardown must happen exactly once and never mask the unit's own outcome.
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from compose_lifecycle import constants
from compose_lifecycle.compose import ComposeService
from compose_lifecycle.config import DeclaredConfig
from compose_lifecycle.exceptions import (
    ConfigurationError,
    ResourceNotFoundError,
    StackStartError,
    WaitTimeoutError,
)
from compose_lifecycle.executor import ProcessResult
from compose_lifecycle.interceptor import HookKind, Invocation, LifecycleInterceptor
from compose_lifecycle.models import LifecyclePhase, LifecycleScope, TestUnit
from compose_lifecycle.services import FileService

_SUBCOMMANDS = ("up", "down", "ps", "logs")


class _Docker:
    """Scripted docker CLI: compose up/down/ps/logs plus ps -aq and rm -f."""

    def __init__(
        self,
        statuses: dict[str, str] | None = None,
        *,
        up_exit: int = 0,
        up_stderr: str = "",
        down_exit: int = 0,
        residual: tuple[str, ...] = (),
        rm_exit: int = 0,
    ) -> None:
        self.statuses = statuses if statuses is not None else {"web": "Up 2 seconds"}
        self.up_exit = up_exit
        self.up_stderr = up_stderr
        self.down_exit = down_exit
        self.residual = residual
        self.rm_exit = rm_exit
        self.log: list[str] = []

    def __call__(self, cmd: list[str]) -> ProcessResult:
        args = tuple(cmd)
        if cmd[:2] == ["docker", "compose"]:
            sub = next(token for token in cmd if token in _SUBCOMMANDS)
            self.log.append(f"compose {sub}")
            if sub == "up":
                return ProcessResult(args, self.up_exit, "", self.up_stderr)
            if sub == "down":
                stderr = "" if self.down_exit == 0 else "failed to remove network"
                return ProcessResult(args, self.down_exit, "", stderr)
            if sub == "logs":
                return ProcessResult(args, 0, "web-1  | listening\n")
            return ProcessResult(args, 0, self._ps_output())
        if cmd[:2] == ["docker", "ps"]:
            self.log.append("docker ps")
            return ProcessResult(args, 0, "\n".join(self.residual))
        if cmd[:3] == ["docker", "rm", "-f"]:
            self.log.append(f"docker rm {cmd[-1]}")
            return ProcessResult(args, self.rm_exit, "", "" if self.rm_exit == 0 else "busy")
        raise AssertionError(f"unexpected command: {cmd}")

    def _ps_output(self) -> str:
        return "\n".join(
            json.dumps(
                {
                    "ID": f"id-{name}",
                    "Name": f"proj-{name}-1",
                    "Service": name,
                    "Status": status,
                    "Publishers": [{"TargetPort": 80, "PublishedPort": 18080, "Protocol": "tcp"}],
                }
            )
            for name, status in self.statuses.items()
        )

    def count(self, entry: str) -> int:
        return self.log.count(entry)


def _compose_file(tmp_path: Path, name: str = "docker-compose.yml") -> Path:
    path = tmp_path / name
    path.write_text("services:\n  web:\n    image: nginx\n", encoding="utf-8")
    return path


def _interceptor(tmp_path, docker, clock, properties, fake_executor, **declared):
    executor = fake_executor(docker)
    declared.setdefault("stack_name", "shop")
    declared.setdefault("compose_file", "docker-compose.yml")
    interceptor = LifecycleInterceptor(
        DeclaredConfig(**declared),
        compose_service=ComposeService(executor, clock),
        executor=executor,
        file_service=FileService(tmp_path),
        property_service=properties,
        time_service=clock,
    )
    return interceptor, executor


def test_setup_without_wait_targets_writes_state_and_publishes(
    tmp_path, clock, properties, fake_executor
):
    _compose_file(tmp_path)
    docker = _Docker()
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)
    ran: list[str] = []

    context = interceptor.before_unit(TestUnit("OrderTests"), proceed=lambda: ran.append("setup"))

    assert ran == ["setup"]
    assert context.phase is LifecyclePhase.READY
    assert context.scope is LifecycleScope.CLASS
    assert context.project_name == "shop-ordertests-20260304050607"
    assert clock.sleeps == []
    assert docker.log == ["docker ps", "docker ps", "compose up", "compose ps"]

    payload = json.loads(context.state_file.read_text(encoding="utf-8"))
    assert list(payload["services"]) == ["web"]
    assert payload["services"]["web"]["publishedPorts"] == [
        {"container": 80, "host": 18080, "protocol": "tcp"}
    ]
    assert context.state_file == (
        tmp_path.resolve() / "build" / "compose-state" / "shop" / "OrderTests-state.json"
    )
    assert properties.get(constants.PROP_STATE_FILE) == str(context.state_file)
    assert properties.get(constants.PROP_COMPOSE_PROJECT) == context.project_name


def test_cleanup_stops_stack_even_when_unit_cleanup_raises(
    tmp_path, clock, properties, fake_executor
):
    _compose_file(tmp_path)
    docker = _Docker()
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)
    context = interceptor.before_unit(TestUnit("OrderTests"))

    def failing_cleanup():
        raise AssertionError("unit teardown failed")

    with pytest.raises(AssertionError, match="unit teardown failed"):
        interceptor.after_unit(context, proceed=failing_cleanup)

    assert docker.count("compose down") == 1
    assert context.phase is LifecyclePhase.IDLE
    assert properties.get(constants.PROP_STATE_FILE) is None
    assert properties.get(constants.PROP_COMPOSE_PROJECT) is None


def test_start_failure_stops_once_and_skips_unit(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    docker = _Docker(up_exit=1, up_stderr="pull access denied for shop/web")
    interceptor, executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)
    ran: list[str] = []

    with pytest.raises(StackStartError) as excinfo:
        interceptor.before_unit(TestUnit("OrderTests"), proceed=lambda: ran.append("setup"))

    assert ran == []
    assert "pull access denied for shop/web" in str(excinfo.value)
    down_calls = [cmd for cmd in executor.calls if "down" in cmd]
    assert len(down_calls) == 1
    assert down_calls[0][:4] == ["docker", "compose", "-p", "shop-ordertests-20260304050607"]
    assert properties.get(constants.PROP_STATE_FILE) is None


def test_stack_name_conflict_fails_before_any_process(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    properties.set(constants.PROP_STACK, "other")
    interceptor, executor = _interceptor(tmp_path, _Docker(), clock, properties, fake_executor)

    with pytest.raises(ConfigurationError, match="stack name"):
        interceptor.before_unit(TestUnit("OrderTests"))

    assert executor.calls == []


def test_missing_compose_file_fails_before_any_process(tmp_path, clock, properties, fake_executor):
    interceptor, executor = _interceptor(
        tmp_path, _Docker(), clock, properties, fake_executor, compose_file="missing.yml"
    )

    with pytest.raises(ResourceNotFoundError) as excinfo:
        interceptor.before_unit(TestUnit("OrderTests"))

    assert excinfo.value.path == str(tmp_path.resolve() / "missing.yml")
    assert executor.calls == []


def test_missing_env_file_fails_before_any_process(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    interceptor, executor = _interceptor(
        tmp_path, _Docker(), clock, properties, fake_executor, env_files=["ci.env"]
    )

    with pytest.raises(ResourceNotFoundError, match="Env file not found"):
        interceptor.before_unit(TestUnit("OrderTests"))

    assert executor.calls == []


def test_stop_failure_in_cleanup_is_swallowed(tmp_path, clock, properties, fake_executor, caplog):
    _compose_file(tmp_path)
    docker = _Docker(down_exit=1, residual=("abc",), rm_exit=1)
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)
    context = interceptor.before_unit(TestUnit("OrderTests"))
    ran: list[str] = []

    with caplog.at_level(logging.WARNING, logger="compose_lifecycle.interceptor"):
        interceptor.after_unit(context, proceed=lambda: ran.append("cleanup"))

    assert ran == ["cleanup"]
    assert docker.count("compose down") == 1
    assert docker.count("docker rm abc") == 2
    assert context.phase is LifecyclePhase.IDLE
    assert "failed to remove network" in caplog.text


def test_waits_for_running_before_healthy(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    docker = _Docker({"web": "Up 1 second (health: starting)", "db": "Up 1 second"})
    interceptor, _executor = _interceptor(
        tmp_path,
        docker,
        clock,
        properties,
        fake_executor,
        wait_for_running=["db"],
        wait_for_healthy=["web"],
        timeout_seconds=4,
        poll_seconds=2,
    )
    polls: list[str] = []
    original = interceptor.compose_service.wait_for_services

    def recording_wait(spec, definition=None):
        polls.append(spec.readiness.value)
        if spec.readiness.value == "HEALTHY":
            docker.statuses["web"] = "Up 5 seconds (healthy)"
        return original(spec, definition)

    interceptor.compose_service.wait_for_services = recording_wait

    context = interceptor.before_unit(TestUnit("OrderTests"))

    assert polls == ["RUNNING", "HEALTHY"]
    assert context.phase is LifecyclePhase.READY


def test_wait_timeout_captures_logs_and_tears_down(
    tmp_path, clock, properties, fake_executor, caplog
):
    _compose_file(tmp_path)
    docker = _Docker({"web": "Up 1 second (unhealthy)"})
    interceptor, _executor = _interceptor(
        tmp_path,
        docker,
        clock,
        properties,
        fake_executor,
        wait_for_healthy="web",
        timeout_seconds=6,
        poll_seconds=2,
    )

    with caplog.at_level(logging.WARNING, logger="compose_lifecycle.interceptor"):
        with pytest.raises(WaitTimeoutError) as excinfo:
            interceptor.before_unit(TestUnit("OrderTests"))

    assert excinfo.value.services == ["web"]
    assert docker.count("compose logs") == 1
    assert docker.count("compose down") == 1
    assert "web-1  | listening" in caplog.text
    assert properties.get(constants.PROP_STATE_FILE) is None


def test_unit_setup_failure_tears_down(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    docker = _Docker()
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)

    def broken_setup():
        raise RuntimeError("fixture exploded")

    with pytest.raises(RuntimeError, match="fixture exploded"):
        interceptor.before_unit(TestUnit("OrderTests"), proceed=broken_setup)

    assert docker.count("compose down") == 1
    assert properties.get(constants.PROP_STATE_FILE) is None
    assert properties.get(constants.PROP_COMPOSE_PROJECT) is None


def test_method_scope_names_project_and_state_per_method(
    tmp_path, clock, properties, fake_executor
):
    _compose_file(tmp_path)
    interceptor, _executor = _interceptor(
        tmp_path, _Docker(), clock, properties, fake_executor, lifecycle="method"
    )

    context = interceptor.before_unit(TestUnit("OrderTests", "test_refund"))

    assert context.project_name == "shop-ordertests-test_refund-20260304050607"
    assert context.state_file.name == "test_refund-state.json"
    assert context.state_file.parent.name == "OrderTests"


def test_class_scope_ignores_method_id(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    interceptor, _executor = _interceptor(tmp_path, _Docker(), clock, properties, fake_executor)

    context = interceptor.before_unit(TestUnit("OrderTests", "test_refund"))

    assert context.unit == TestUnit("OrderTests")
    assert context.project_name == "shop-ordertests-20260304050607"


def test_pre_clean_failure_is_swallowed(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    docker = _Docker(residual=("stale1",), rm_exit=1)
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)

    context = interceptor.before_unit(TestUnit("OrderTests"))

    assert context.phase is LifecyclePhase.READY
    assert docker.log[:3] == ["docker ps", "docker ps", "docker rm stale1"]


def test_cleanup_keeps_properties_owned_by_another_context(
    tmp_path, clock, properties, fake_executor
):
    _compose_file(tmp_path)
    interceptor, _executor = _interceptor(tmp_path, _Docker(), clock, properties, fake_executor)
    context = interceptor.before_unit(TestUnit("OrderTests"))
    properties.set(constants.PROP_STATE_FILE, "/elsewhere/state.json")
    properties.set(constants.PROP_COMPOSE_PROJECT, "someone-else")

    interceptor.after_unit(context)

    assert properties.get(constants.PROP_STATE_FILE) == "/elsewhere/state.json"
    assert properties.get(constants.PROP_COMPOSE_PROJECT) == "someone-else"


def test_best_effort_lets_programming_errors_surface():
    def buggy():
        raise TypeError("bad call")

    def disk_full():
        raise OSError(28, "No space left on device")

    with pytest.raises(TypeError):
        LifecycleInterceptor._best_effort("cleanup step", buggy)

    assert LifecycleInterceptor._best_effort("cleanup step", disk_full) is None
    assert LifecycleInterceptor._best_effort("cleanup step", lambda: "done") == "done"


def test_intercept_dispatches_by_hook_kind(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    docker = _Docker()
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)
    unit = TestUnit("OrderTests")

    context = interceptor.intercept(Invocation(HookKind.BEFORE_UNIT, unit))
    assert interceptor.intercept(Invocation(HookKind.UNIT_CALL, unit, lambda: "body")) == "body"
    interceptor.intercept(Invocation(HookKind.AFTER_UNIT, unit), context)

    assert context.phase is LifecyclePhase.IDLE
    assert docker.count("compose down") == 1
    with pytest.raises(ValueError):
        interceptor.intercept(Invocation(HookKind.AFTER_UNIT, unit))


def test_cleanup_removes_state_file(tmp_path, clock, properties, fake_executor):
    _compose_file(tmp_path)
    interceptor, _executor = _interceptor(tmp_path, _Docker(), clock, properties, fake_executor)
    context = interceptor.before_unit(TestUnit("OrderTests"))
    assert context.state_file.is_file()

    interceptor.after_unit(context)

    assert not context.state_file.exists()


class _UndeletableFiles(FileService):
    def delete(self, path: Path) -> None:
        raise PermissionError(13, "Permission denied", str(path))


def test_state_file_removal_failure_is_swallowed(
    tmp_path, clock, properties, fake_executor, caplog
):
    _compose_file(tmp_path)
    docker = _Docker()
    interceptor, _executor = _interceptor(tmp_path, docker, clock, properties, fake_executor)
    interceptor.file_service = _UndeletableFiles(tmp_path)
    context = interceptor.before_unit(TestUnit("OrderTests"))

    with caplog.at_level(logging.WARNING, logger="compose_lifecycle"):
        interceptor.after_unit(context)

    assert context.state_file.is_file()
    assert context.phase is LifecyclePhase.IDLE
    assert docker.count("compose down") == 1
    assert properties.get(constants.PROP_STATE_FILE) is None
    assert "removal of state file" in caplog.text
