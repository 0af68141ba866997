# Overview: Append-only activity log for lifecycle operations.

from __future__ import annotations

import json

from ..extensions import db
from ..models import ActivityLog
"""
Activity Log Invariants

- Append-only; rows are never updated or deleted.
- Written inside the same DB transaction as the change they record, so a
  rolled-back operation leaves no log entry behind.
- No business logic here.
"""


def record_activity(
    *,
    entity_type: str,
    entity_id: int | None,
    action: str,
    actor: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    entry = ActivityLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor=actor,
        details=json.dumps(details, default=str, sort_keys=True) if details else None,
    )
    db.session.add(entry)
    return entry
