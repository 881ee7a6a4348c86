# Where: compose_lifecycle/naming.py
# What: Collision-resistant compose project names for test units.
# Why: Concurrent test processes must never share a compose project namespace.
from __future__ import annotations

import re
from datetime import datetime

from compose_lifecycle.constants import PROJECT_NAME_FALLBACK, PROJECT_NAME_PREFIX

_INVALID_RE = re.compile(r"[^a-z0-9_-]")
_DASHES_RE = re.compile(r"-+")
_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def sanitize(name: str) -> str:
    """Reduce a name to the compose project charset ``[a-z0-9_-]``."""
    cleaned = _INVALID_RE.sub("-", (name or "").lower())
    cleaned = _DASHES_RE.sub("-", cleaned).strip("-")
    if cleaned and not cleaned[0].isalnum():
        cleaned = PROJECT_NAME_PREFIX + cleaned
    return cleaned or PROJECT_NAME_FALLBACK


def generate_project_name(
    base: str,
    class_id: str,
    method_id: str | None = None,
    *,
    now: datetime | None = None,
) -> str:
    # Identical inputs within the same wall-clock second yield the same name.
    stamp = (now or datetime.now()).strftime(_TIMESTAMP_FORMAT)
    parts = [base, class_id]
    if method_id:
        parts.append(method_id)
    parts.append(stamp)
    return sanitize("-".join(parts))
