# Where: compose_lifecycle/interceptor.py
# What: Setup/cleanup state machine wrapped around one test unit.
# Why: Guarantee teardown whatever the outcome of start, wait, or the unit itself.
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, TypeVar

from compose_lifecycle import constants
from compose_lifecycle.cleanup import force_remove_containers
from compose_lifecycle.compose import ComposeService
from compose_lifecycle.config import ComposeUpConfig, DeclaredConfig, resolve_config
from compose_lifecycle.exceptions import (
    ComposeLifecycleError,
    ResourceNotFoundError,
    WaitTimeoutError,
)
from compose_lifecycle.executor import ProcessExecutor
from compose_lifecycle.models import (
    LifecyclePhase,
    LifecycleScope,
    LogsSpec,
    Readiness,
    RunContext,
    StackDefinition,
    TestUnit,
    WaitSpec,
)
from compose_lifecycle.naming import generate_project_name
from compose_lifecycle.services import FileService, PropertyService, TimeService
from compose_lifecycle.state_file import write_state_file

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FAILURE_LOG_TAIL = 200


class HookKind(str, Enum):
    BEFORE_UNIT = "before_unit"
    AFTER_UNIT = "after_unit"
    UNIT_CALL = "unit_call"


@dataclass(frozen=True)
class Invocation:
    kind: HookKind
    unit: TestUnit
    proceed: Callable[[], Any] | None = None


class LifecycleInterceptor:
    """Starts a compose stack before a test unit and tears it down afterwards.

    Setup failures after the stack was started tear everything down before the
    error propagates. Cleanup never raises infrastructure errors; only an
    exception from the unit's own cleanup callback is re-raised.
    """

    def __init__(
        self,
        declared: DeclaredConfig,
        *,
        compose_service: ComposeService | None = None,
        executor: ProcessExecutor | None = None,
        file_service: FileService | None = None,
        property_service: PropertyService | None = None,
        time_service: TimeService | None = None,
        docker_cmd: tuple[str, ...] = constants.DOCKER_COMMAND,
    ) -> None:
        self.declared = declared
        self.executor = executor or ProcessExecutor()
        self.time_service = time_service or TimeService()
        self.compose_service = compose_service or ComposeService(
            self.executor, self.time_service
        )
        self.file_service = file_service or FileService()
        self.property_service = property_service or PropertyService()
        self.docker_cmd = tuple(docker_cmd)

    def resolve(self) -> ComposeUpConfig:
        return resolve_config(self.declared, self.property_service)

    def intercept(self, invocation: Invocation, context: RunContext | None = None) -> Any:
        if invocation.kind is HookKind.BEFORE_UNIT:
            return self.before_unit(invocation.unit, invocation.proceed)
        if invocation.kind is HookKind.AFTER_UNIT:
            if context is None:
                raise ValueError("after_unit requires the RunContext returned by before_unit")
            return self.after_unit(context, invocation.proceed)
        if invocation.proceed is not None:
            return invocation.proceed()
        return None

    def before_unit(
        self,
        unit: TestUnit,
        proceed: Callable[[], Any] | None = None,
    ) -> RunContext:
        config = self.resolve()
        compose_files, env_files = self._verify_files(config)

        method_id = unit.method_id if config.lifecycle is LifecycleScope.METHOD else None
        project_name = generate_project_name(
            config.project_name,
            unit.class_id,
            method_id,
            now=self.time_service.now(),
        )
        definition = StackDefinition(
            stack_name=config.stack_name,
            project_name=project_name,
            compose_files=compose_files,
            env_files=env_files,
        )
        context = RunContext(
            unit=TestUnit(unit.class_id, method_id),
            scope=config.lifecycle,
            definition=definition,
            project_name=project_name,
            phase=LifecyclePhase.SETUP_IN_PROGRESS,
        )
        logger.info(
            "Setting up compose stack '%s' for %s (project: %s)",
            config.stack_name,
            _describe(context.unit),
            project_name,
        )

        self._best_effort(
            f"pre-clean of project '{project_name}'",
            lambda: force_remove_containers(
                self.executor, project_name, docker_cmd=self.docker_cmd
            ),
        )

        try:
            context.state = self.compose_service.start(definition)
            self._wait(context, config, Readiness.RUNNING, config.wait_for_running)
            self._wait(context, config, Readiness.HEALTHY, config.wait_for_healthy)
            context.state_file = write_state_file(
                context.state,
                self.file_service.resolve(config.state_dir),
                config.stack_name,
                context.unit.class_id,
                context.unit.method_id,
                file_service=self.file_service,
                property_service=self.property_service,
                time_service=self.time_service,
            )
            context.phase = LifecyclePhase.READY
            if proceed is not None:
                proceed()
        except BaseException as exc:
            logger.error("Compose setup failed for project '%s': %s", project_name, exc)
            if isinstance(exc, WaitTimeoutError):
                self._log_stack_output(context)
            self._teardown(context)
            raise
        return context

    def after_unit(
        self,
        context: RunContext,
        proceed: Callable[[], Any] | None = None,
    ) -> None:
        context.phase = LifecyclePhase.CLEANUP_IN_PROGRESS
        held: BaseException | None = None
        if proceed is not None:
            try:
                proceed()
            except BaseException as exc:
                held = exc
        logger.info("Cleaning up compose project '%s'", context.project_name)
        self._teardown(context)
        if held is not None:
            raise held

    def _verify_files(self, config: ComposeUpConfig) -> tuple[tuple[Path, ...], tuple[Path, ...]]:
        compose_files = tuple(self.file_service.resolve(item) for item in config.compose_files)
        env_files = tuple(self.file_service.resolve(item) for item in config.env_files)
        for path in compose_files:
            if not self.file_service.exists(path):
                raise ResourceNotFoundError(str(path), kind="compose file")
        for path in env_files:
            if not self.file_service.exists(path):
                raise ResourceNotFoundError(str(path), kind="env file")
        return compose_files, env_files

    def _wait(
        self,
        context: RunContext,
        config: ComposeUpConfig,
        readiness: Readiness,
        services: list[str],
    ) -> None:
        if not services:
            return
        spec = WaitSpec(
            project_name=context.project_name,
            services=list(services),
            readiness=readiness,
            timeout=float(config.timeout_seconds),
            poll_interval=float(config.poll_seconds),
        )
        self.compose_service.wait_for_services(spec, context.definition)

    def _log_stack_output(self, context: RunContext) -> None:
        output = self.compose_service.capture_logs(
            context.project_name,
            LogsSpec(tail=_FAILURE_LOG_TAIL, timestamps=True),
            context.definition,
        )
        if output.strip():
            logger.warning(
                "Compose logs for project '%s' (last %d lines per service):\n%s",
                context.project_name,
                _FAILURE_LOG_TAIL,
                output.rstrip(),
            )

    def _teardown(self, context: RunContext) -> None:
        project_name = context.project_name
        self._best_effort(
            f"stop of project '{project_name}'",
            lambda: self.compose_service.stop(project_name, context.definition),
        )
        self._best_effort(
            f"forced cleanup of project '{project_name}'",
            lambda: force_remove_containers(
                self.executor, project_name, docker_cmd=self.docker_cmd
            ),
        )
        state_file = context.state_file
        if state_file is not None:
            self._best_effort(
                f"removal of state file {state_file}",
                lambda: self.file_service.delete(state_file),
            )
        self._clear_published(context)
        context.phase = LifecyclePhase.IDLE

    def _clear_published(self, context: RunContext) -> None:
        # Only clear values this context published; a newer context may own them.
        props = self.property_service
        if context.state_file is not None and props.get(constants.PROP_STATE_FILE) == str(
            context.state_file
        ):
            props.clear(constants.PROP_STATE_FILE)
        if props.get(constants.PROP_COMPOSE_PROJECT) == context.project_name:
            props.clear(constants.PROP_COMPOSE_PROJECT)

    @staticmethod
    def _best_effort(label: str, action: Callable[[], T]) -> T | None:
        try:
            return action()
        except (ComposeLifecycleError, OSError) as exc:
            logger.warning("Ignoring failure during %s: %s", label, exc)
            return None


def _describe(unit: TestUnit) -> str:
    if unit.method_id:
        return f"{unit.class_id}::{unit.method_id}"
    return unit.class_id
