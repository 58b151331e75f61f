"""
quotemaster/audit.py

Audit trail for quotation, price and master data changes.

Every mutating service writes one AuditLog row next to its change, in the same
session, before it commits. A rollback therefore drops the audit row too.

Snapshots are flat {column: str} dicts so Decimal prices, dates and statuses
compare cleanly between `before` and `after`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog
from .security import Actor


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """Column snapshot of a model row (relationships are not followed)."""
    return {column.name: _as_text(getattr(instance, column.name)) for column in instance.__table__.columns}


def _client_address() -> Optional[str]:
    # Outside a request (CLI, batch jobs) there is no client to record
    if not has_request_context():
        return None
    return request.remote_addr


def log_action(
    actor: Actor,
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an AuditLog row for `entity` in the current session.

    The entity must already have an id, so callers flush before logging.
    `action` is a short verb such as CREATE, IMPORT, NEGOTIATE, APPROVED.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError(f"Cannot audit an unsaved {entity.__class__.__name__}; flush it first")

    entry = AuditLog(
        user_id=actor.user_id if actor else None,
        username_snapshot=actor.username if actor else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action)[:20],
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=_client_address(),
    )
    db.session.add(entry)
    return entry
