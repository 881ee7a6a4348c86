"""Command execution helpers for compose lifecycle operations."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from compose_lifecycle.exceptions import ProcessExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Normalized command execution result."""

    args: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessExecutor:
    """Thin subprocess wrapper with a mandatory timeout and captured output."""

    def format_cmd(self, cmd: Sequence[str]) -> str:
        return "$ " + " ".join(shlex.quote(str(token)) for token in cmd)

    def execute(
        self,
        cmd: Sequence[str],
        *,
        timeout: float,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        args = tuple(str(token) for token in cmd)
        logger.debug(self.format_cmd(args))

        run_env = os.environ.copy()
        if env:
            run_env.update({str(key): str(value) for key, value in env.items()})

        try:
            completed = subprocess.run(
                list(args),
                cwd=str(cwd) if cwd else None,
                env=run_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=False,
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProcessExecutionError(
                args, f"timed out after {timeout:g}s", timed_out=True
            ) from exc
        except OSError as exc:
            raise ProcessExecutionError(args, f"failed to launch: {exc}") from exc

        return ProcessResult(
            args,
            completed.returncode,
            completed.stdout or "",
            completed.stderr or "",
        )
