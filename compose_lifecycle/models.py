# Where: compose_lifecycle/models.py
# What: Dataclasses and enums for stack definitions, state, and run context.
# Why: Keep lifecycle inputs explicit and avoid implicit global state.
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class Readiness(str, Enum):
    RUNNING = "RUNNING"
    HEALTHY = "HEALTHY"


class LifecycleScope(str, Enum):
    CLASS = "class"
    METHOD = "method"


class LifecyclePhase(str, Enum):
    IDLE = "idle"
    SETUP_IN_PROGRESS = "setup_in_progress"
    READY = "ready"
    CLEANUP_IN_PROGRESS = "cleanup_in_progress"


@dataclass(frozen=True)
class PortMapping:
    container_port: int
    host_port: int
    protocol: str = "tcp"


@dataclass(frozen=True)
class ServiceInfo:
    container_id: str
    container_name: str
    status: str
    ports: list[PortMapping] = field(default_factory=list)


@dataclass(frozen=True)
class StackDefinition:
    stack_name: str
    project_name: str
    compose_files: tuple[Path, ...]
    env_files: tuple[Path, ...] = ()
    environment: dict[str, str] = field(default_factory=dict)

    @property
    def working_dir(self) -> Path:
        return self.compose_files[0].parent


@dataclass(frozen=True)
class StackState:
    stack_name: str
    project_name: str
    services: dict[str, ServiceInfo]
    created_at: datetime


@dataclass(frozen=True)
class WaitSpec:
    project_name: str
    services: list[str]
    readiness: Readiness
    timeout: float
    poll_interval: float


@dataclass(frozen=True)
class LogsSpec:
    services: list[str] = field(default_factory=list)
    tail: int | None = None
    timestamps: bool = False


@dataclass(frozen=True)
class TestUnit:
    class_id: str
    method_id: str | None = None

    __test__ = False


@dataclass
class RunContext:
    unit: TestUnit
    scope: LifecycleScope
    definition: StackDefinition
    project_name: str
    state: StackState | None = None
    state_file: Path | None = None
    phase: LifecyclePhase = LifecyclePhase.IDLE
