# Overview: Append-only business event log written alongside domain changes.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import EventLog
"""
Event Log Invariants

- Append-only; no updates or deletes.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back change never leaves an orphan event (and vice versa).
"""


def append_event(
    *,
    table_name: str,
    record_id,
    action: str,
    actor_user_id: int | None = None,
    payload: dict[str, Any] | None = None,
) -> EventLog:
    ev = EventLog(
        table_name=table_name,
        record_id=str(record_id),
        action=action,
        actor_user_id=actor_user_id,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(*, table_name: str, record_id, limit: int = 100) -> list[EventLog]:
    return (
        db.session.query(EventLog)
        .filter_by(table_name=table_name, record_id=str(record_id))
        .order_by(EventLog.id.asc())
        .limit(limit)
        .all()
    )
