from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import parse_uuid
from perfhub.db.session import get_db
from perfhub.models.notification import EmailConfig
from perfhub.models.user import User
from perfhub.schemas.notification import (
    EmailConfigCreate,
    EmailConfigOut,
    EmailConfigUpdate,
    EmailSendOut,
    EmailTestPayload,
)
from perfhub.services.email import send_templated_email

router = APIRouter(prefix="/email-config", tags=["email-config"])


def to_out(c: EmailConfig) -> EmailConfigOut:
    return EmailConfigOut(
        id=str(c.id),
        smtp_host=c.smtp_host,
        smtp_port=c.smtp_port,
        smtp_username=c.smtp_username,
        from_email=c.from_email,
        from_name=c.from_name,
        is_active=c.is_active,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _get_or_404(db: Session, config_id: str) -> EmailConfig:
    c = db.get(EmailConfig, parse_uuid(config_id, "Email config"))
    if not c:
        raise HTTPException(status_code=404, detail="Email config not found")
    return c


@router.get("", response_model=list[EmailConfigOut])
def list_email_configs(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("super_admin")),
):
    return [to_out(c) for c in db.query(EmailConfig).order_by(EmailConfig.updated_at.desc()).all()]


@router.post("", response_model=EmailConfigOut, status_code=status.HTTP_201_CREATED)
def create_email_config(
    payload: EmailConfigCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    c = EmailConfig(**payload.model_dump())
    db.add(c)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_CONFIG_CREATED",
        entity_type="email_config",
        entity_id=c.id,
        metadata={"smtp_host": c.smtp_host, "smtp_port": c.smtp_port, "is_active": c.is_active},
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.patch("/{config_id}", response_model=EmailConfigOut)
def update_email_config(
    config_id: str,
    payload: EmailConfigUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    c = _get_or_404(db, config_id)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(c, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_CONFIG_UPDATED",
        entity_type="email_config",
        entity_id=c.id,
        metadata={"fields": sorted(changes.keys())},
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_email_config(
    config_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    c = _get_or_404(db, config_id)
    entity_id = c.id

    db.delete(c)
    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_CONFIG_DELETED",
        entity_type="email_config",
        entity_id=entity_id,
    )
    db.commit()


@router.post("/test", response_model=EmailSendOut)
def send_test_email(
    payload: EmailTestPayload,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    """Send the `test` template through the SMTP settings currently in effect."""
    result = send_templated_email(
        db,
        company_id=None,
        template_type="test",
        to=payload.to_email,
        context={"recipient_name": payload.to_email},
    )

    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_TEST_SENT",
        entity_type="email_config",
        entity_id=current_user.id,
        metadata={"to": payload.to_email, "sent": result.sent, "skipped": result.skipped, "error": result.error},
    )
    db.commit()

    return EmailSendOut(sent=result.sent, skipped=result.skipped, error=result.error)
