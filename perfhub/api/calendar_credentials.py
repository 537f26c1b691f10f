from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import get_scoped_or_404, require_company, scoped
from perfhub.db.session import get_db
from perfhub.models.notification import CalendarCredential
from perfhub.models.user import User
from perfhub.schemas.notification import (
    CalendarCredentialCreate,
    CalendarCredentialOut,
    CalendarCredentialUpdate,
    CalendarStatusOut,
)
from perfhub.services.calendar import detect_provider

router = APIRouter(prefix="/calendar-credentials", tags=["calendar-credentials"])


def to_out(c: CalendarCredential) -> CalendarCredentialOut:
    return CalendarCredentialOut(
        id=str(c.id),
        company_id=str(c.company_id),
        provider=c.provider,
        client_id=c.client_id,
        has_access_token=bool(c.access_token),
        expires_at=c.expires_at,
        scope=c.scope,
        is_active=c.is_active,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


@router.get("", response_model=list[CalendarCredentialOut])
def list_calendar_credentials(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    return [to_out(c) for c in scoped(db, CalendarCredential, current_user).order_by(CalendarCredential.provider)]


@router.get("/status", response_model=CalendarStatusOut)
def get_calendar_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager", "manager")),
):
    """Which provider meeting invitations would use right now (may refresh a token)."""
    provider, _ = detect_provider(db, require_company(current_user))
    db.commit()
    return CalendarStatusOut(provider=provider, connected=provider != "ics")


@router.post("", response_model=CalendarCredentialOut, status_code=status.HTTP_201_CREATED)
def create_calendar_credential(
    payload: CalendarCredentialCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    company_id = require_company(current_user)
    exists = (
        db.query(CalendarCredential.id)
        .filter(CalendarCredential.company_id == company_id, CalendarCredential.provider == payload.provider)
        .first()
    )
    if exists:
        raise HTTPException(status_code=409, detail=f"{payload.provider} credentials already exist")

    c = CalendarCredential(company_id=company_id, **payload.model_dump())
    db.add(c)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="CALENDAR_CREDENTIAL_CREATED",
        entity_type="calendar_credential",
        entity_id=c.id,
        metadata={"provider": c.provider},
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.patch("/{credential_id}", response_model=CalendarCredentialOut)
def update_calendar_credential(
    credential_id: str,
    payload: CalendarCredentialUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    c = get_scoped_or_404(db, CalendarCredential, credential_id, current_user, "Calendar credential")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(c, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="CALENDAR_CREDENTIAL_UPDATED",
        entity_type="calendar_credential",
        entity_id=c.id,
        metadata={"provider": c.provider, "fields": sorted(changes.keys())},
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.delete("/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_calendar_credential(
    credential_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    c = get_scoped_or_404(db, CalendarCredential, credential_id, current_user, "Calendar credential")
    entity_id, provider = c.id, c.provider

    db.delete(c)
    log_event(
        db=db,
        actor=current_user,
        action="CALENDAR_CREDENTIAL_DELETED",
        entity_type="calendar_credential",
        entity_id=entity_id,
        metadata={"provider": provider},
    )
    db.commit()
