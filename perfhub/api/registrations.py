import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import parse_uuid
from perfhub.db.session import get_db
from perfhub.models.registration import Registration
from perfhub.models.user import User
from perfhub.schemas.pagination import paginate
from perfhub.schemas.registration import RegistrationCreate, RegistrationOut, RegistrationUpdate
from perfhub.services.email import send_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/registrations", tags=["registrations"])


def to_out(r: Registration) -> RegistrationOut:
    return RegistrationOut(
        id=str(r.id),
        name=r.name,
        company_name=r.company_name,
        designation=r.designation,
        email=r.email,
        mobile=r.mobile,
        status=r.status,
        notification_sent=r.notification_sent,
        notes=r.notes,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _notify_super_admins(db: Session, r: Registration) -> bool:
    recipients = [
        email
        for (email,) in db.query(User.email).filter(User.role == "super_admin", User.status == "active").all()
    ]
    if not recipients:
        return False

    result = send_email(
        db,
        to=recipients,
        subject=f"New registration request: {r.company_name}",
        html=(
            f"<p>{r.name} ({r.designation}) from <strong>{r.company_name}</strong> "
            f"asked for access.</p><p>Email: {r.email}<br>Mobile: {r.mobile}</p>"
        ),
    )
    return result.sent


@router.post("", response_model=RegistrationOut, status_code=status.HTTP_201_CREATED)
def create_registration(payload: RegistrationCreate, db: Session = Depends(get_db)):
    """Public sign-up form; no authentication."""
    r = Registration(**payload.model_dump(), status="pending")
    db.add(r)
    db.flush()

    r.notification_sent = _notify_super_admins(db, r)
    logger.info(
        "Registration received",
        extra={"registration_id": str(r.id), "notification_sent": r.notification_sent},
    )

    log_event(
        db=db,
        actor=None,
        action="REGISTRATION_CREATED",
        entity_type="registration",
        entity_id=r.id,
        metadata={"company_name": r.company_name, "email": r.email},
    )

    db.commit()
    db.refresh(r)
    return to_out(r)


@router.get("")
def list_registrations(
    search: str | None = Query(default=None, description="Search by name, company or email"),
    status: str | None = Query(default=None, description="Filter by status (pending, contacted, approved, rejected)"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("super_admin")),
):
    q = db.query(Registration)
    if search:
        term = f"%{search.lower()}%"
        q = q.filter(
            or_(
                Registration.name.ilike(term),
                Registration.company_name.ilike(term),
                Registration.email.ilike(term),
            )
        )
    if status:
        q = q.filter(Registration.status == status)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=Registration.created_at.desc(),
    )


@router.patch("/{registration_id}", response_model=RegistrationOut)
def update_registration(
    registration_id: str,
    payload: RegistrationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    r = db.get(Registration, parse_uuid(registration_id, "Registration"))
    if not r:
        raise HTTPException(status_code=404, detail="Registration not found")

    prev = r.status
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(r, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="REGISTRATION_UPDATED",
        entity_type="registration",
        entity_id=r.id,
        metadata={"from": prev, "to": r.status},
    )

    db.commit()
    db.refresh(r)
    return to_out(r)
