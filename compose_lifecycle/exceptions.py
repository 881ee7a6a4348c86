"""
Custom exception classes.

Represent errors raised while starting, waiting on, and tearing down a compose stack.
"""

from __future__ import annotations

from typing import Sequence


class ComposeLifecycleError(Exception):
    """Base exception class for compose lifecycle failures."""

    pass


class ConfigurationError(ComposeLifecycleError):
    """Raised when configuration is missing, invalid, or specified twice."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class ResourceNotFoundError(ComposeLifecycleError):
    """Raised when a declared compose or env file does not exist."""

    def __init__(self, path: str, kind: str = "compose file"):
        self.path = path
        self.kind = kind
        super().__init__(f"{kind.capitalize()} not found: {path}")


class ProcessExecutionError(ComposeLifecycleError):
    """Raised when an external command cannot be launched or exceeds its timeout."""

    def __init__(self, args: Sequence[str], detail: str, *, timed_out: bool = False):
        self.cmd = tuple(args)
        self.timed_out = timed_out
        super().__init__(f"{' '.join(self.cmd)}: {detail}")


class StackStartError(ComposeLifecycleError):
    """Raised when the stack fails to start."""

    def __init__(self, project_name: str, exit_code: int | None, stderr: str):
        self.project_name = project_name
        self.exit_code = exit_code
        self.stderr = stderr
        code = "n/a" if exit_code is None else str(exit_code)
        super().__init__(
            f"Failed to start compose project '{project_name}' (exit code {code}): {stderr}"
        )


class WaitTimeoutError(ComposeLifecycleError):
    """Raised when services do not reach the target readiness in time."""

    def __init__(
        self,
        project_name: str,
        readiness: str,
        timeout: float,
        unsatisfied: dict[str, str | None],
    ):
        self.project_name = project_name
        self.readiness = readiness
        self.timeout = timeout
        self.unsatisfied = dict(unsatisfied)
        self.services = sorted(self.unsatisfied)
        details = ", ".join(
            f"{name} (status: {status!r})" if status is not None else f"{name} (not found)"
            for name, status in sorted(self.unsatisfied.items())
        )
        super().__init__(
            f"Timed out after {timeout:g}s waiting for services to be {readiness} "
            f"in project '{project_name}': {details}"
        )


class StackStopError(ComposeLifecycleError):
    """Raised when stopping the stack fails."""

    def __init__(self, project_name: str, exit_code: int | None, stderr: str):
        self.project_name = project_name
        self.exit_code = exit_code
        self.stderr = stderr
        code = "n/a" if exit_code is None else str(exit_code)
        super().__init__(
            f"Failed to stop compose project '{project_name}' (exit code {code}): {stderr}"
        )


class ForcedCleanupError(ComposeLifecycleError):
    """Raised when forced container removal leaves containers behind."""

    def __init__(self, project_name: str, failures: dict[str, str]):
        self.project_name = project_name
        self.failures = dict(failures)
        joined = "; ".join(f"{cid}: {reason}" for cid, reason in self.failures.items())
        super().__init__(f"Forced cleanup failed for project '{project_name}': {joined}")
