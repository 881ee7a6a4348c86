# Where: compose_lifecycle/services.py
# What: Time, file, and process-wide property collaborators.
# Why: Let tests substitute the clock, filesystem, and environment deterministically.
from __future__ import annotations

import os
import re
import time
from datetime import datetime
from pathlib import Path
from typing import MutableMapping

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")


class TimeService:
    def now(self) -> datetime:
        return datetime.now().astimezone()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class FileService:
    def __init__(self, base_dir: Path | None = None) -> None:
        self.base_dir = (base_dir or Path.cwd()).resolve()

    def resolve(self, path: str | Path) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.base_dir / candidate
        return candidate.absolute()

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def create_directories(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def write_text(self, path: Path, content: str) -> None:
        path.write_text(content, encoding="utf-8")

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def delete(self, path: Path) -> None:
        path.unlink(missing_ok=True)


def property_env_name(key: str) -> str:
    """Map a dotted property key to its environment variable name.

    ``docker.compose.waitForHealthy.services`` -> ``DOCKER_COMPOSE_WAIT_FOR_HEALTHY_SERVICES``
    """
    split = _CAMEL_RE.sub("_", key)
    return _NON_ALNUM_RE.sub("_", split).strip("_").upper()


class PropertyService:
    """Process-wide properties backed by the test process environment."""

    def __init__(self, environ: MutableMapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._environ.get(property_env_name(key), default)

    def set(self, key: str, value: str) -> None:
        self._environ[property_env_name(key)] = value

    def clear(self, key: str) -> None:
        self._environ.pop(property_env_name(key), None)
