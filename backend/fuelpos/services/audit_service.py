# Overview: Service-layer operations for the shift change audit trail.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import ShiftChangeLog
from ..models.audit import VALID_CHANGE_KINDS

"""
Shift audit invariants

- Append-only: entries are never updated or deleted.
- Written inside the same DB transaction as the change they record, so a
  rolled-back correction leaves no audit entry behind.
"""


def record_change(
    *,
    shift_id: int,
    actor_id: int | None,
    change_kind: str,
    old_payload: Any = None,
    new_payload: Any = None,
    description: str | None = None,
) -> ShiftChangeLog:
    """Append a before/after snapshot of a shift edit."""
    if change_kind not in VALID_CHANGE_KINDS:
        raise ValueError(f"Invalid change kind: {change_kind}. Must be one of {VALID_CHANGE_KINDS}")

    entry = ShiftChangeLog(
        shift_id=shift_id,
        actor_id=actor_id,
        change_kind=change_kind,
        old_payload=old_payload,
        new_payload=new_payload,
        description=description,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_changes(shift_id: int, page: int = 1, limit: int = 20) -> dict:
    """Paginated audit entries of a shift, newest first."""
    query = db.session.query(ShiftChangeLog).filter_by(shift_id=shift_id)
    total = query.count()
    entries = (
        query.order_by(ShiftChangeLog.created_at.desc(), ShiftChangeLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "entries": [e.to_dict() for e in entries],
        "total": total,
        "total_pages": (total + limit - 1) // limit if limit else 0,
        "current_page": page,
    }
