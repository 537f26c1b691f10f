from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from perfhub.core.rbac import get_active_role, require_roles
from perfhub.core.tenancy import parse_uuid
from perfhub.db.session import get_db
from perfhub.models.audit_event import AuditEvent
from perfhub.models.user import User

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("")
def list_audit_events(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    action: str | None = Query(default=None),
    actor_user_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "super_admin")),
    active_role: str = Depends(get_active_role),
):
    """Admins see their own company's trail; super admins see everything."""
    q = db.query(AuditEvent)
    if active_role != "super_admin":
        q = q.filter(AuditEvent.company_id == current_user.company_id)

    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == parse_uuid(entity_id, "Entity"))
    if action:
        q = q.filter(AuditEvent.action == action)
    if actor_user_id:
        q = q.filter(AuditEvent.actor_user_id == parse_uuid(actor_user_id, "User"))

    rows = q.order_by(AuditEvent.created_at.desc()).offset(offset).limit(limit).all()

    return [
        {
            "id": str(r.id),
            "actor_user_id": str(r.actor_user_id) if r.actor_user_id else None,
            "company_id": str(r.company_id) if r.company_id else None,
            "action": r.action,
            "entity_type": r.entity_type,
            "entity_id": str(r.entity_id),
            "metadata": r.event_metadata,
            "created_at": r.created_at,
        }
        for r in rows
    ]
