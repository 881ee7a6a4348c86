"""
Compose lifecycle configuration.

Merges the configuration declared on a ``compose_up`` marker with process-wide
override properties. A field may come from either source but never from both.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable, Mapping, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from compose_lifecycle import constants
from compose_lifecycle.exceptions import ConfigurationError
from compose_lifecycle.models import LifecycleScope
from compose_lifecycle.services import PropertyService, property_env_name

T = TypeVar("T")

ListInput = Sequence[str] | str | None


@dataclass(frozen=True)
class DeclaredConfig:
    """Configuration declared on the test unit (``@pytest.mark.compose_up``)."""

    stack_name: str | None = None
    compose_file: str | None = None
    compose_files: ListInput = None
    env_files: ListInput = None
    lifecycle: LifecycleScope | str | None = None
    project_name: str | None = None
    wait_for_running: ListInput = None
    wait_for_healthy: ListInput = None
    timeout_seconds: int | None = None
    poll_seconds: int | None = None
    state_dir: str | None = None

    @classmethod
    def from_marker(cls, args: Sequence[Any], kwargs: Mapping[str, Any]) -> DeclaredConfig:
        if args:
            raise ConfigurationError(
                "compose_up", "compose_up accepts keyword arguments only, e.g. stack_name='app'"
            )
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise ConfigurationError(
                unknown[0], f"Unknown compose_up argument(s): {', '.join(unknown)}"
            )
        return cls(**dict(kwargs))


class ComposeUpConfig(BaseModel):
    """Effective configuration after merging declared values and overrides."""

    model_config = ConfigDict(frozen=True)

    stack_name: str = Field(min_length=1)
    compose_files: list[str] = Field(min_length=1)
    env_files: list[str] = Field(default_factory=list)
    lifecycle: LifecycleScope = LifecycleScope.CLASS
    project_name: str = Field(min_length=1)
    wait_for_running: list[str] = Field(default_factory=list)
    wait_for_healthy: list[str] = Field(default_factory=list)
    timeout_seconds: int = Field(default=constants.DEFAULT_TIMEOUT_SECONDS, gt=0)
    poll_seconds: int = Field(default=constants.DEFAULT_POLL_SECONDS, gt=0)
    state_dir: str = constants.DEFAULT_STATE_DIR

    @field_validator("compose_files", "env_files", "wait_for_running", "wait_for_healthy")
    @classmethod
    def _strip_entries(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]


_FIELD_LABELS = {
    "stack_name": "stack name",
    "compose_files": "compose files",
    "env_files": "env files",
    "lifecycle": "lifecycle",
    "project_name": "project name",
    "wait_for_running": "wait for running services",
    "wait_for_healthy": "wait for healthy services",
    "timeout_seconds": "timeout seconds",
    "poll_seconds": "poll seconds",
    "state_dir": "state directory",
}


def normalize_list(value: ListInput) -> list[str]:
    """Accept a single value, a list, or comma-separated text; keep order."""
    if value is None:
        return []
    raw_items = value.split(",") if isinstance(value, str) else [str(item) for item in value]
    return [item.strip() for item in raw_items if item and item.strip()]


def _is_specified(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple)):
        return len(normalize_list(value)) > 0
    return True


def _parse_int(label: str, key: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(
            label,
            f"Invalid {label} in property '{key}': {raw!r}. Must be a positive integer.",
        ) from None


def _parse_lifecycle(raw: LifecycleScope | str) -> LifecycleScope:
    if isinstance(raw, LifecycleScope):
        return raw
    try:
        return LifecycleScope(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(scope.value for scope in LifecycleScope)
        raise ConfigurationError(
            "lifecycle", f"Invalid lifecycle {raw!r}; expected one of: {allowed}"
        ) from None


def _pick(
    field: str,
    key: str,
    declared: Any,
    properties: PropertyService,
    parse: Callable[[str], T],
    normalize: Callable[[Any], T],
    default: T,
) -> T:
    label = _FIELD_LABELS[field]
    raw = properties.get(key)
    has_property = raw is not None and raw.strip() != ""
    has_declared = _is_specified(declared)
    if has_property and has_declared:
        raise ConfigurationError(
            label,
            f"Configuration conflict for {label}: specified both as property '{key}' "
            f"(env {property_env_name(key)}={raw!r}) and in @compose_up ({field}={declared!r}). "
            "Remove one of them.",
        )
    if has_property:
        return parse(raw)
    if has_declared:
        return normalize(declared)
    return default


def _declared_compose_files(declared: DeclaredConfig) -> ListInput:
    single = _is_specified(declared.compose_file)
    many = _is_specified(declared.compose_files)
    if single and many:
        raise ConfigurationError(
            _FIELD_LABELS["compose_files"],
            "Configuration conflict for compose files: declare either compose_file "
            "or compose_files on @compose_up, not both.",
        )
    return declared.compose_file if single else declared.compose_files


def resolve_config(
    declared: DeclaredConfig,
    properties: PropertyService,
) -> ComposeUpConfig:
    def _text(value: Any) -> str:
        return str(value).strip()

    stack_name = _pick(
        "stack_name", constants.PROP_STACK, declared.stack_name, properties, _text, _text, ""
    )
    if not stack_name:
        raise ConfigurationError(
            _FIELD_LABELS["stack_name"],
            "Compose stack name not configured. Pass stack_name to @pytest.mark.compose_up "
            f"or set property '{constants.PROP_STACK}' "
            f"(env {property_env_name(constants.PROP_STACK)}).",
        )

    compose_files = _pick(
        "compose_files",
        constants.PROP_FILES,
        _declared_compose_files(declared),
        properties,
        normalize_list,
        normalize_list,
        [],
    )
    if not compose_files:
        raise ConfigurationError(
            _FIELD_LABELS["compose_files"],
            f"Compose file(s) not configured for stack '{stack_name}'. Pass compose_file(s) "
            f"to @pytest.mark.compose_up or set property '{constants.PROP_FILES}' "
            f"(env {property_env_name(constants.PROP_FILES)}).",
        )

    values: dict[str, Any] = {
        "stack_name": stack_name,
        "compose_files": compose_files,
        "env_files": _pick(
            "env_files",
            constants.PROP_ENV_FILES,
            declared.env_files,
            properties,
            normalize_list,
            normalize_list,
            [],
        ),
        "lifecycle": _pick(
            "lifecycle",
            constants.PROP_LIFECYCLE,
            declared.lifecycle,
            properties,
            _parse_lifecycle,
            _parse_lifecycle,
            LifecycleScope.CLASS,
        ),
        "project_name": _pick(
            "project_name",
            constants.PROP_PROJECT_NAME,
            declared.project_name,
            properties,
            _text,
            _text,
            stack_name,
        ),
        "wait_for_running": _pick(
            "wait_for_running",
            constants.PROP_WAIT_RUNNING,
            declared.wait_for_running,
            properties,
            normalize_list,
            normalize_list,
            [],
        ),
        "wait_for_healthy": _pick(
            "wait_for_healthy",
            constants.PROP_WAIT_HEALTHY,
            declared.wait_for_healthy,
            properties,
            normalize_list,
            normalize_list,
            [],
        ),
        "timeout_seconds": _pick(
            "timeout_seconds",
            constants.PROP_TIMEOUT_SECONDS,
            declared.timeout_seconds,
            properties,
            lambda raw: _parse_int("timeout seconds", constants.PROP_TIMEOUT_SECONDS, raw),
            lambda value: value,
            constants.DEFAULT_TIMEOUT_SECONDS,
        ),
        "poll_seconds": _pick(
            "poll_seconds",
            constants.PROP_POLL_SECONDS,
            declared.poll_seconds,
            properties,
            lambda raw: _parse_int("poll seconds", constants.PROP_POLL_SECONDS, raw),
            lambda value: value,
            constants.DEFAULT_POLL_SECONDS,
        ),
        "state_dir": _pick(
            "state_dir",
            constants.PROP_STATE_DIR,
            declared.state_dir,
            properties,
            _text,
            _text,
            constants.DEFAULT_STATE_DIR,
        ),
    }

    try:
        return ComposeUpConfig(**values)
    except ValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else "configuration"
        label = _FIELD_LABELS.get(field, field)
        raise ConfigurationError(label, f"Invalid {label}: {error['msg']}") from None
