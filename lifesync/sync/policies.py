"""
Domain policies applied to mutation fields before they are validated
and sent. The remote service does not enforce these.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable

from lifesync.models.entities import CREATE_DEFAULTS, RecordKind, TaskStatus


Clock = Callable[[], datetime]


def apply_create_defaults(kind: RecordKind, fields: dict[str, Any]) -> dict[str, Any]:
    """Fill in defaults for fields the caller left out or set to None."""
    prepared = dict(fields)
    for name, default in CREATE_DEFAULTS.get(kind, {}).items():
        if prepared.get(name) is None:
            prepared[name] = default
    return prepared


def apply_status_policy(kind: RecordKind, fields: dict[str, Any], clock: Clock) -> dict[str, Any]:
    """
    Keep Task.completed_at set if and only if status is COMPLETED.

    Only acts when the fields change status. A caller-supplied completion
    time is kept when completing; any other status clears it.
    """
    if kind != RecordKind.TASK or "status" not in fields:
        return fields

    prepared = dict(fields)
    status = prepared["status"]
    raw = status.value if isinstance(status, Enum) else status

    if raw == TaskStatus.COMPLETED.value:
        if prepared.get("completed_at") is None:
            prepared["completed_at"] = clock()
    else:
        prepared["completed_at"] = None

    return prepared
