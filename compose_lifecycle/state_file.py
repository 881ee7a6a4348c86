# Where: compose_lifecycle/state_file.py
# What: Serialize stack connectivity data and publish it to the test process.
# Why: Consuming tests locate containers and ports without hardcoded paths.
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from compose_lifecycle import constants
from compose_lifecycle.exceptions import ConfigurationError, ResourceNotFoundError
from compose_lifecycle.models import LifecycleScope, StackState
from compose_lifecycle.services import FileService, PropertyService, TimeService

logger = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_component(value: str) -> str:
    cleaned = _UNSAFE_RE.sub("_", value).strip("._")
    return cleaned or "unknown"


def state_file_path(
    dest_dir: Path,
    stack_name: str,
    class_id: str,
    method_id: str | None = None,
) -> Path:
    stack_dir = dest_dir / _safe_component(stack_name)
    if method_id:
        return stack_dir / _safe_component(class_id) / f"{_safe_component(method_id)}-state.json"
    return stack_dir / f"{_safe_component(class_id)}-state.json"


def build_state_payload(
    state: StackState,
    stack_name: str,
    class_id: str,
    method_id: str | None,
    timestamp: str,
) -> dict[str, Any]:
    scope = LifecycleScope.METHOD if method_id else LifecycleScope.CLASS
    payload: dict[str, Any] = {
        "stackName": stack_name,
        "lifecycle": scope.value,
        "testClass": class_id,
    }
    if method_id:
        payload["testMethod"] = method_id
    payload["composeProject"] = state.project_name
    payload["services"] = {
        name: {
            "containerId": info.container_id,
            "containerName": info.container_name,
            "state": info.status,
            "publishedPorts": [
                {
                    "container": port.container_port,
                    "host": port.host_port,
                    "protocol": port.protocol or "tcp",
                }
                for port in info.ports
            ],
        }
        for name, info in sorted(state.services.items())
    }
    payload["timestamp"] = timestamp
    return payload


def write_state_file(
    state: StackState,
    dest_dir: Path,
    stack_name: str,
    class_id: str,
    method_id: str | None = None,
    *,
    file_service: FileService,
    property_service: PropertyService,
    time_service: TimeService,
) -> Path:
    path = state_file_path(dest_dir, stack_name, class_id, method_id)
    file_service.create_directories(path.parent)
    payload = build_state_payload(
        state, stack_name, class_id, method_id, time_service.now().isoformat()
    )
    file_service.write_text(path, json.dumps(payload, indent=2) + "\n")

    property_service.set(constants.PROP_STATE_FILE, str(path))
    property_service.set(constants.PROP_COMPOSE_PROJECT, state.project_name)
    logger.info("State file generated: %s", path)
    return path


def read_state_file(
    path: str | Path | None = None,
    *,
    property_service: PropertyService | None = None,
    file_service: FileService | None = None,
) -> dict[str, Any]:
    """Load a state file, defaulting to the path published for this process."""
    files = file_service or FileService()
    if path is None:
        props = property_service or PropertyService()
        path = props.get(constants.PROP_STATE_FILE)
        if not path:
            raise ConfigurationError(
                constants.PROP_STATE_FILE,
                f"State file property '{constants.PROP_STATE_FILE}' is not set; "
                "is the test marked with @pytest.mark.compose_up?",
            )
    state_path = files.resolve(path)
    if not files.exists(state_path):
        raise ResourceNotFoundError(str(state_path), kind="state file")
    return json.loads(files.read_text(state_path))


def published_port(
    state: dict[str, Any],
    service: str,
    container_port: int,
    protocol: str = "tcp",
) -> int:
    services = state.get("services") or {}
    entry = services.get(service)
    if entry is None:
        raise KeyError(f"service '{service}' not present in state file")
    for port in entry.get("publishedPorts", []):
        if port.get("container") == container_port and port.get("protocol", "tcp") == protocol:
            return int(port["host"])
    raise KeyError(f"container port {container_port}/{protocol} of '{service}' is not published")
