# Where: compose_lifecycle/plugin.py
# What: pytest marker and fixtures that drive the compose lifecycle interceptor.
# Why: Tests declare a stack with @pytest.mark.compose_up and receive a ready stack.
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator

import pytest

from compose_lifecycle.compose import ComposeService, detect_compose_command
from compose_lifecycle.config import DeclaredConfig
from compose_lifecycle.executor import ProcessExecutor
from compose_lifecycle.interceptor import LifecycleInterceptor
from compose_lifecycle.logging_config import setup_logging
from compose_lifecycle.models import LifecycleScope, RunContext, TestUnit
from compose_lifecycle.services import FileService, TimeService
from compose_lifecycle.state_file import read_state_file

MARKER = "compose_up"


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("compose_lifecycle")
    group.addoption(
        "--compose-log-config",
        action="store",
        default=None,
        help="YAML logging dictConfig for the compose lifecycle plugin "
        "('default' selects the bundled config).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER}(stack_name, compose_file(s), ...): start a docker compose stack "
        "around the marked class, module, or test function.",
    )
    setup_logging(config.getoption("compose_log_config", default=None))


@lru_cache(maxsize=1)
def compose_command() -> tuple[str, ...]:
    return detect_compose_command(ProcessExecutor())


def build_interceptor(declared: DeclaredConfig, rootdir: Path) -> LifecycleInterceptor:
    executor = ProcessExecutor()
    time_service = TimeService()
    return LifecycleInterceptor(
        declared,
        compose_service=ComposeService(executor, time_service, tool=compose_command()),
        executor=executor,
        file_service=FileService(Path(rootdir)),
        time_service=time_service,
    )


def declared_config(node: Any) -> DeclaredConfig | None:
    marker = node.get_closest_marker(MARKER)
    if marker is None:
        return None
    return DeclaredConfig.from_marker(marker.args, marker.kwargs)


def module_class_id(module_name: str) -> str:
    return module_name.rsplit(".", 1)[-1]


def _run_lifecycle(interceptor: LifecycleInterceptor, unit: TestUnit) -> Iterator[RunContext]:
    context = interceptor.before_unit(unit)
    try:
        yield context
    finally:
        interceptor.after_unit(context)


@pytest.fixture(scope="class", autouse=True)
def _compose_class_lifecycle(request: pytest.FixtureRequest) -> Iterator[RunContext | None]:
    declared = declared_config(request.node) if request.cls is not None else None
    if declared is None:
        yield None
        return
    interceptor = build_interceptor(declared, request.config.rootpath)
    if interceptor.resolve().lifecycle is not LifecycleScope.CLASS:
        yield None
        return
    yield from _run_lifecycle(interceptor, TestUnit(request.cls.__name__))


@pytest.fixture(scope="module")
def _compose_module_lifecycle(request: pytest.FixtureRequest) -> Iterator[RunContext | None]:
    # Requested lazily by module-level test functions only.
    declared = declared_config(request.node)
    if declared is None:
        yield None
        return
    interceptor = build_interceptor(declared, request.config.rootpath)
    unit = TestUnit(module_class_id(request.module.__name__))
    yield from _run_lifecycle(interceptor, unit)


@pytest.fixture(autouse=True)
def _compose_method_lifecycle(request: pytest.FixtureRequest) -> Iterator[RunContext | None]:
    declared = declared_config(request.node)
    if declared is None:
        yield None
        return
    interceptor = build_interceptor(declared, request.config.rootpath)
    if interceptor.resolve().lifecycle is LifecycleScope.CLASS:
        if request.cls is not None:
            shared = request.getfixturevalue("_compose_class_lifecycle")
        else:
            shared = request.getfixturevalue("_compose_module_lifecycle")
        if shared is not None:
            yield shared
            return
        # Marker placed on the function itself: the function is its own unit.

    if request.cls is not None:
        class_id = request.cls.__name__
    else:
        class_id = module_class_id(request.module.__name__)
    yield from _run_lifecycle(interceptor, TestUnit(class_id, request.function.__name__))


@pytest.fixture
def compose_stack(_compose_method_lifecycle: RunContext | None) -> RunContext:
    """The RunContext of the compose stack active for the current test."""
    if _compose_method_lifecycle is None:
        pytest.fail(f"compose_stack requires @pytest.mark.{MARKER}(...)", pytrace=False)
    return _compose_method_lifecycle


@pytest.fixture
def compose_state(compose_stack: RunContext) -> dict[str, Any]:
    """The state file written for the current stack, loaded as a dict."""
    return read_state_file(compose_stack.state_file)
