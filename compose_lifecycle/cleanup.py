# Where: compose_lifecycle/cleanup.py
# What: Forced removal of containers left behind by a compose project.
# Why: Keep residue cleanup separate from the ordinary start/stop flow.
from __future__ import annotations

import logging

from compose_lifecycle import constants
from compose_lifecycle.exceptions import ForcedCleanupError, ProcessExecutionError
from compose_lifecycle.executor import ProcessExecutor

logger = logging.getLogger(__name__)


def _container_filters(project_name: str) -> list[str]:
    # Name filters are regexes; match only <project>-<service>-N and <project>_<service>_N.
    return [
        f"name=^/?{project_name}[-_]",
        f"label={constants.PROJECT_LABEL}={project_name}",
    ]


def _collect_container_ids(
    executor: ProcessExecutor,
    project_name: str,
    docker_cmd: tuple[str, ...],
) -> tuple[list[str], dict[str, str]]:
    container_ids: list[str] = []
    failures: dict[str, str] = {}
    for filt in _container_filters(project_name):
        try:
            result = executor.execute(
                [*docker_cmd, "ps", "-aq", "--filter", filt],
                timeout=constants.CLEANUP_TIMEOUT,
            )
        except ProcessExecutionError as exc:
            failures[filt] = str(exc)
            continue
        if not result.ok:
            failures[filt] = result.stderr.strip() or f"exit code {result.exit_code}"
            continue
        for cid in result.stdout.split():
            cid = cid.strip()
            if cid and cid not in container_ids:
                container_ids.append(cid)
    return container_ids, failures


def list_project_containers(
    executor: ProcessExecutor,
    project_name: str,
    *,
    docker_cmd: tuple[str, ...] = constants.DOCKER_COMMAND,
) -> list[str]:
    """Return ids of containers whose name or compose label matches the project."""
    container_ids, failures = _collect_container_ids(executor, project_name, docker_cmd)
    if failures:
        raise ForcedCleanupError(project_name, failures)
    return container_ids


def force_remove_containers(
    executor: ProcessExecutor,
    project_name: str,
    *,
    docker_cmd: tuple[str, ...] = constants.DOCKER_COMMAND,
) -> list[str]:
    """Force-remove every container matching the project; returns removed ids.

    Each listing filter and each container is attempted even when an earlier
    step fails. Failures are collected into a single ForcedCleanupError raised
    at the end.
    """
    container_ids, failures = _collect_container_ids(executor, project_name, docker_cmd)

    if not container_ids:
        if failures:
            raise ForcedCleanupError(project_name, failures)
        logger.debug("No residual containers found for project '%s'", project_name)
        return []

    logger.info(
        "Force removing %d container(s) for project '%s': %s",
        len(container_ids),
        project_name,
        ", ".join(container_ids),
    )
    removed: list[str] = []
    for cid in container_ids:
        try:
            result = executor.execute(
                [*docker_cmd, "rm", "-f", cid],
                timeout=constants.CLEANUP_TIMEOUT,
            )
        except ProcessExecutionError as exc:
            failures[cid] = str(exc)
            continue
        if result.ok:
            removed.append(cid)
        else:
            failures[cid] = result.stderr.strip() or f"exit code {result.exit_code}"

    if failures:
        raise ForcedCleanupError(project_name, failures)
    return removed
