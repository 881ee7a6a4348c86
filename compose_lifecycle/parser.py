# Where: compose_lifecycle/parser.py
# What: Parse `docker compose ps --format json` output into service records.
# Why: Compose versions emit either a JSON array or one object per line.
from __future__ import annotations

import json
import logging
import re
from typing import Any

from compose_lifecycle.models import PortMapping, ServiceInfo

logger = logging.getLogger(__name__)

_PORT_RE = re.compile(r"(?:[\d.]+:)?(\d+)(?:-(\d+))?->(\d+)(?:-(\d+))?(?:/(\w+))?")


def parse_ps_output(output: str) -> dict[str, ServiceInfo]:
    services: dict[str, ServiceInfo] = {}
    for entry in _load_entries(output):
        name = _service_name(entry)
        if not name:
            logger.debug("Skipping compose ps entry without service name: %s", entry)
            continue
        # First container listed represents a scaled service.
        services.setdefault(name, _to_service_info(entry))
    return services


def parse_port_mappings(ports: str | None) -> list[PortMapping]:
    if not ports:
        return []
    mappings: list[PortMapping] = []
    for raw in ports.split(","):
        token = raw.strip()
        if not token:
            continue
        match = _PORT_RE.search(token)
        if not match:
            continue
        host_start, host_end, container_start, container_end, protocol = match.groups()
        host_ports = _port_range(host_start, host_end)
        container_ports = _port_range(container_start, container_end)
        if len(host_ports) != len(container_ports):
            logger.debug("Skipping port range of unequal length: %s", token)
            continue
        for host_port, container_port in zip(host_ports, container_ports):
            mapping = PortMapping(
                container_port=container_port,
                host_port=host_port,
                protocol=protocol or "tcp",
            )
            if mapping not in mappings:
                mappings.append(mapping)
    return mappings


def _port_range(start: str, end: str | None) -> range:
    first = int(start)
    return range(first, int(end or first) + 1)


def _load_entries(output: str) -> list[dict[str, Any]]:
    text = (output or "").strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Malformed compose ps JSON array output")
            return []
        return [item for item in data if isinstance(item, dict)]

    entries: list[dict[str, Any]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed compose ps line: %s", line)
            continue
        if isinstance(item, dict):
            entries.append(item)
    return entries


def _service_name(entry: dict[str, Any]) -> str:
    service = str(entry.get("Service") or "").strip()
    if service:
        return service
    # Fallback for container names like {project}-{service}-{index}.
    name = str(entry.get("Name") or "").strip()
    for sep in ("-", "_"):
        parts = name.split(sep)
        if len(parts) >= 3 and parts[-1].isdigit():
            return sep.join(parts[1:-1])
    return ""


def _status_text(entry: dict[str, Any]) -> str:
    status = str(entry.get("Status") or "").strip() or str(entry.get("State") or "").strip()
    health = str(entry.get("Health") or "").strip()
    if health and health.lower() not in status.lower():
        status = f"{status} ({health})" if status else health
    return status


def _publishers(entry: dict[str, Any]) -> list[PortMapping]:
    publishers = entry.get("Publishers")
    if not isinstance(publishers, list):
        return parse_port_mappings(entry.get("Ports"))
    mappings: list[PortMapping] = []
    for publisher in publishers:
        if not isinstance(publisher, dict):
            continue
        try:
            host_port = int(publisher.get("PublishedPort") or 0)
            container_port = int(publisher.get("TargetPort") or 0)
        except (TypeError, ValueError):
            continue
        if host_port == 0 or container_port == 0:
            continue
        mapping = PortMapping(
            container_port=container_port,
            host_port=host_port,
            protocol=str(publisher.get("Protocol") or "tcp"),
        )
        # IPv4 and IPv6 bindings show up as separate rows.
        if mapping not in mappings:
            mappings.append(mapping)
    return mappings


def _to_service_info(entry: dict[str, Any]) -> ServiceInfo:
    return ServiceInfo(
        container_id=str(entry.get("ID") or "unknown"),
        container_name=str(entry.get("Name") or ""),
        status=_status_text(entry),
        ports=_publishers(entry),
    )
