"""Audit trail helper. Rows are written in the caller's unit of work."""

import json

from sqlalchemy.orm import Session

from gst_billing.models.audit_log import AuditLog


def record_event(
    db: Session,
    *,
    tenant_id: int,
    event_type: str,
    instance,
    actor_id: str | None = None,
    details: dict | None = None,
) -> AuditLog:
    """Append an audit row for a change to `instance`."""
    entry = AuditLog(
        tenant_id=tenant_id,
        entity_type=instance.__class__.__name__,
        entity_id=instance.id,
        event_type=event_type,
        actor_id=actor_id,
        details=json.dumps(details or {}, default=str),
    )
    db.add(entry)
    return entry
