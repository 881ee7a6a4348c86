"""Test-scoped docker compose stack lifecycle for pytest."""

from compose_lifecycle.compose import ComposeService, detect_compose_command
from compose_lifecycle.config import ComposeUpConfig, DeclaredConfig, resolve_config
from compose_lifecycle.exceptions import (
    ComposeLifecycleError,
    ConfigurationError,
    ForcedCleanupError,
    ProcessExecutionError,
    ResourceNotFoundError,
    StackStartError,
    StackStopError,
    WaitTimeoutError,
)
from compose_lifecycle.interceptor import HookKind, Invocation, LifecycleInterceptor
from compose_lifecycle.models import (
    LifecyclePhase,
    LifecycleScope,
    Readiness,
    RunContext,
    ServiceInfo,
    StackState,
)
from compose_lifecycle.state_file import published_port, read_state_file

__all__ = [
    "ComposeLifecycleError",
    "ComposeService",
    "ComposeUpConfig",
    "ConfigurationError",
    "DeclaredConfig",
    "ForcedCleanupError",
    "HookKind",
    "Invocation",
    "LifecycleInterceptor",
    "LifecyclePhase",
    "LifecycleScope",
    "ProcessExecutionError",
    "Readiness",
    "ResourceNotFoundError",
    "RunContext",
    "ServiceInfo",
    "StackStartError",
    "StackState",
    "StackStopError",
    "WaitTimeoutError",
    "detect_compose_command",
    "published_port",
    "read_state_file",
    "resolve_config",
]
