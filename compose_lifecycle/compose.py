# Where: compose_lifecycle/compose.py
# What: Start/stop/status/log operations for one compose project.
# Why: Wrap the compose CLI behind typed errors so the interceptor stays declarative.
from __future__ import annotations

import logging
from pathlib import Path

from compose_lifecycle import constants
from compose_lifecycle.exceptions import (
    ComposeLifecycleError,
    ProcessExecutionError,
    StackStartError,
    StackStopError,
)
from compose_lifecycle.executor import ProcessExecutor, ProcessResult
from compose_lifecycle.models import LogsSpec, ServiceInfo, StackDefinition, StackState, WaitSpec
from compose_lifecycle.parser import parse_ps_output
from compose_lifecycle.services import TimeService
from compose_lifecycle.waiter import wait_for_services

logger = logging.getLogger(__name__)


def compose_base_cmd(
    *,
    tool: tuple[str, ...],
    project_name: str,
    definition: StackDefinition | None = None,
) -> list[str]:
    cmd = [*tool, "-p", project_name]
    if definition is not None:
        for compose_file in definition.compose_files:
            cmd.extend(["-f", str(compose_file)])
        for env_file in definition.env_files:
            cmd.extend(["--env-file", str(env_file)])
    return cmd


def detect_compose_command(executor: ProcessExecutor) -> tuple[str, ...]:
    """Prefer the `docker compose` plugin, falling back to legacy `docker-compose`."""
    for candidate in (constants.COMPOSE_COMMAND, constants.LEGACY_COMPOSE_COMMAND):
        try:
            result = executor.execute([*candidate, "version"], timeout=constants.VERSION_TIMEOUT)
        except ProcessExecutionError as exc:
            logger.debug("Compose tool %s unavailable: %s", " ".join(candidate), exc)
            continue
        if result.ok:
            return tuple(candidate)
        logger.debug(
            "Compose tool %s unavailable (exit code %d)", " ".join(candidate), result.exit_code
        )
    logger.warning(
        "No compose tool answered 'version'; using '%s'", " ".join(constants.COMPOSE_COMMAND)
    )
    return constants.COMPOSE_COMMAND


class ComposeService:
    """Compose CLI operations scoped to a single project name."""

    def __init__(
        self,
        executor: ProcessExecutor | None = None,
        time_service: TimeService | None = None,
        *,
        tool: tuple[str, ...] = constants.COMPOSE_COMMAND,
    ) -> None:
        self.executor = executor or ProcessExecutor()
        self.time_service = time_service or TimeService()
        self.tool = tuple(tool)

    def start(self, definition: StackDefinition) -> StackState:
        project = definition.project_name
        logger.info(
            "Starting compose stack '%s' (project: %s, files: %s)",
            definition.stack_name,
            project,
            ", ".join(str(path) for path in definition.compose_files),
        )
        cmd = compose_base_cmd(tool=self.tool, project_name=project, definition=definition)
        cmd.extend(["up", "-d", "--remove-orphans"])
        try:
            result = self._run(cmd, definition, timeout=constants.UP_TIMEOUT)
        except ProcessExecutionError as exc:
            raise StackStartError(project, None, str(exc)) from exc
        if not result.ok:
            raise StackStartError(project, result.exit_code, result.stderr)

        try:
            services = self.service_states(project, definition)
        except ComposeLifecycleError as exc:
            raise StackStartError(project, None, f"unable to list services: {exc}") from exc

        logger.info(
            "Compose stack '%s' started with services: %s",
            definition.stack_name,
            ", ".join(sorted(services)) or "(none)",
        )
        return StackState(
            stack_name=definition.stack_name,
            project_name=project,
            services=services,
            created_at=self.time_service.now(),
        )

    def stop(self, project_name: str, definition: StackDefinition | None = None) -> None:
        logger.info("Stopping compose project '%s'", project_name)
        cmd = compose_base_cmd(tool=self.tool, project_name=project_name, definition=definition)
        cmd.extend(["down", "--remove-orphans", "--volumes"])
        try:
            result = self._run(cmd, definition, timeout=constants.DOWN_TIMEOUT)
        except ProcessExecutionError as exc:
            raise StackStopError(project_name, None, str(exc)) from exc
        if not result.ok:
            raise StackStopError(project_name, result.exit_code, result.stderr)
        logger.info("Compose project '%s' stopped", project_name)

    def service_states(
        self, project_name: str, definition: StackDefinition | None = None
    ) -> dict[str, ServiceInfo]:
        cmd = compose_base_cmd(tool=self.tool, project_name=project_name, definition=definition)
        cmd.extend(["ps", "--all", "--format", "json"])
        result = self._run(cmd, definition, timeout=constants.PS_TIMEOUT)
        if not result.ok:
            raise ComposeLifecycleError(
                f"compose ps failed for project '{project_name}' "
                f"(exit code {result.exit_code}): {result.stderr.strip()}"
            )
        return parse_ps_output(result.stdout)

    def wait_for_services(self, spec: WaitSpec, definition: StackDefinition | None = None) -> None:
        wait_for_services(
            spec,
            lambda: self.service_states(spec.project_name, definition),
            time_service=self.time_service,
        )

    def capture_logs(
        self,
        project_name: str,
        logs_spec: LogsSpec | None = None,
        definition: StackDefinition | None = None,
    ) -> str:
        """Best-effort log retrieval for diagnostics; never raises on process failure."""
        spec = logs_spec or LogsSpec()
        cmd = compose_base_cmd(tool=self.tool, project_name=project_name, definition=definition)
        cmd.extend(["logs", "--no-color"])
        if spec.timestamps:
            cmd.append("--timestamps")
        if spec.tail is not None and spec.tail > 0:
            cmd.extend(["--tail", str(spec.tail)])
        cmd.extend(spec.services)
        try:
            result = self._run(cmd, definition, timeout=constants.LOGS_TIMEOUT)
        except ProcessExecutionError as exc:
            logger.warning("Failed to capture logs for project '%s': %s", project_name, exc)
            return ""
        if not result.ok:
            logger.warning(
                "Failed to capture logs for project '%s': %s",
                project_name,
                result.stderr.strip(),
            )
        return result.stdout

    def _run(
        self,
        cmd: list[str],
        definition: StackDefinition | None,
        *,
        timeout: float,
    ) -> ProcessResult:
        cwd: Path | None = definition.working_dir if definition is not None else None
        env = definition.environment if definition is not None else None
        return self.executor.execute(cmd, timeout=timeout, cwd=cwd, env=env)
