from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from . import models


def create_audit_event(
    db: Session,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
) -> models.AuditEvent:
    """
    Append an audit event to the caller's transaction.

    The event commits (or rolls back) together with the change it
    describes, so the trail never records a mutation that did not happen.
    """
    event = models.AuditEvent(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        before=before,
        after=after,
        correlation_id=correlation_id,
    )
    db.add(event)
    return event


def list_audit_events(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
) -> List[models.AuditEvent]:
    query = db.query(models.AuditEvent)
    if entity_type:
        query = query.filter(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditEvent.entity_id == entity_id)
    return query.order_by(models.AuditEvent.occurred_at.desc()).limit(limit).all()
