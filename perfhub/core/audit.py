from sqlalchemy.orm import Session
from typing import Any

from perfhub.models.audit_event import AuditEvent
from perfhub.models.user import User


def log_event(
    *,
    db: Session,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id,
    company_id=None,
    metadata: dict[str, Any] | None = None,
):
    if company_id is None and actor is not None:
        company_id = actor.company_id
    event = AuditEvent(
        actor_user_id=actor.id if actor else None,
        company_id=company_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
    )
    db.add(event)
