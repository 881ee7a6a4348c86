# Where: compose_lifecycle/waiter.py
# What: Readiness classification and the bounded service polling loop.
# Why: Keep the wait policy independent from how status snapshots are fetched.
from __future__ import annotations

import logging
import math
from typing import Callable, Mapping

from compose_lifecycle.exceptions import ComposeLifecycleError, WaitTimeoutError
from compose_lifecycle.models import Readiness, ServiceInfo, WaitSpec
from compose_lifecycle.services import TimeService

logger = logging.getLogger(__name__)


def is_ready(status: str | None, readiness: Readiness) -> bool:
    """Classify a free-text engine status against the target readiness."""
    text = (status or "").lower()
    if readiness == Readiness.RUNNING:
        return "up" in text or "running" in text
    if readiness == Readiness.HEALTHY:
        return "healthy" in text.replace("unhealthy", "")
    return False


def max_attempts(timeout: float, poll_interval: float) -> int:
    if poll_interval <= 0:
        return 1
    return max(1, math.floor(timeout / poll_interval))


def wait_for_services(
    spec: WaitSpec,
    query: Callable[[], Mapping[str, ServiceInfo]],
    *,
    time_service: TimeService,
) -> None:
    if not spec.services:
        return

    attempts = max_attempts(spec.timeout, spec.poll_interval)
    started = time_service.monotonic()
    last_seen: dict[str, str | None] = {name: None for name in spec.services}
    pending = list(spec.services)

    logger.info(
        "Waiting for services to be %s in project '%s': %s",
        spec.readiness.value,
        spec.project_name,
        ", ".join(spec.services),
    )
    for attempt in range(1, attempts + 1):
        if attempt > 1 and time_service.monotonic() - started >= spec.timeout:
            logger.warning(
                "Wait budget of %ss exhausted after %d attempt(s)", spec.timeout, attempt - 1
            )
            break
        try:
            snapshot = query()
        except ComposeLifecycleError as exc:
            logger.warning("Service status check %d/%d failed: %s", attempt, attempts, exc)
            snapshot = {}

        pending = []
        for name in spec.services:
            info = snapshot.get(name)
            if info is not None:
                last_seen[name] = info.status
            if info is None or not is_ready(info.status, spec.readiness):
                pending.append(name)

        if not pending:
            logger.info(
                "All services are %s after %d attempt(s): %s",
                spec.readiness.value,
                attempt,
                ", ".join(spec.services),
            )
            return

        remaining = spec.timeout - (time_service.monotonic() - started)
        if remaining <= 0:
            break
        time_service.sleep(min(spec.poll_interval, remaining))

    raise WaitTimeoutError(
        spec.project_name,
        spec.readiness.value,
        spec.timeout,
        {name: last_seen[name] for name in pending},
    )
