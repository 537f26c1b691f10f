from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import get_active_role, require_roles
from perfhub.core.tenancy import parse_uuid
from perfhub.db.session import get_db
from perfhub.models.notification import EmailTemplate
from perfhub.models.user import User
from perfhub.schemas.notification import EmailTemplateCreate, EmailTemplateOut, EmailTemplateUpdate
from perfhub.services.email import DEFAULT_TEMPLATES

router = APIRouter(prefix="/email-templates", tags=["email-templates"])


def to_out(t: EmailTemplate) -> EmailTemplateOut:
    return EmailTemplateOut(
        id=str(t.id),
        company_id=str(t.company_id) if t.company_id else None,
        name=t.name,
        subject=t.subject,
        body=t.body,
        template_type=t.template_type,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _owned_or_404(db: Session, template_id: str, current_user: User, active_role: str) -> EmailTemplate:
    """Admins manage their company's templates; global ones belong to super admins."""
    t = db.get(EmailTemplate, parse_uuid(template_id, "Email template"))
    if not t:
        raise HTTPException(status_code=404, detail="Email template not found")
    if active_role != "super_admin" and t.company_id != current_user.company_id:
        raise HTTPException(status_code=404, detail="Email template not found")
    return t


@router.get("/defaults")
def list_default_templates(
    _: User = Depends(require_roles("super_admin", "admin")),
):
    """Built-in templates used when neither a company nor a global template exists."""
    return [
        {"template_type": template_type, "subject": subject, "body": body}
        for template_type, (subject, body) in DEFAULT_TEMPLATES.items()
    ]


@router.get("", response_model=list[EmailTemplateOut])
def list_email_templates(
    template_type: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    q = db.query(EmailTemplate)
    if active_role != "super_admin":
        q = q.filter(
            or_(EmailTemplate.company_id == current_user.company_id, EmailTemplate.company_id.is_(None))
        )
    if template_type:
        q = q.filter(EmailTemplate.template_type == template_type)
    return [to_out(t) for t in q.order_by(EmailTemplate.template_type, EmailTemplate.name).all()]


@router.get("/{template_id}", response_model=EmailTemplateOut)
def get_email_template(
    template_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    t = db.get(EmailTemplate, parse_uuid(template_id, "Email template"))
    if not t or (active_role != "super_admin" and t.company_id not in (None, current_user.company_id)):
        raise HTTPException(status_code=404, detail="Email template not found")
    return to_out(t)


@router.post("", response_model=EmailTemplateOut, status_code=status.HTTP_201_CREATED)
def create_email_template(
    payload: EmailTemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    if active_role == "super_admin" and (payload.is_global or current_user.company_id is None):
        company_id = None
    elif current_user.company_id is None:
        raise HTTPException(status_code=403, detail="User is not associated with a company")
    else:
        company_id = current_user.company_id

    q = db.query(EmailTemplate.id).filter(EmailTemplate.template_type == payload.template_type)
    if company_id is None:
        q = q.filter(EmailTemplate.company_id.is_(None))
    else:
        q = q.filter(EmailTemplate.company_id == company_id)
    if q.first():
        raise HTTPException(status_code=409, detail=f"A '{payload.template_type}' template already exists")

    t = EmailTemplate(company_id=company_id, **payload.model_dump(exclude={"is_global"}))
    db.add(t)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_TEMPLATE_CREATED",
        entity_type="email_template",
        entity_id=t.id,
        company_id=company_id,
        metadata={"template_type": t.template_type, "global": company_id is None},
    )

    db.commit()
    db.refresh(t)
    return to_out(t)


@router.patch("/{template_id}", response_model=EmailTemplateOut)
def update_email_template(
    template_id: str,
    payload: EmailTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    t = _owned_or_404(db, template_id, current_user, active_role)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(t, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_TEMPLATE_UPDATED",
        entity_type="email_template",
        entity_id=t.id,
        company_id=t.company_id,
        metadata={"fields": sorted(changes.keys())},
    )

    db.commit()
    db.refresh(t)
    return to_out(t)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_email_template(
    template_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    t = _owned_or_404(db, template_id, current_user, active_role)
    entity_id, company_id, template_type = t.id, t.company_id, t.template_type

    db.delete(t)
    log_event(
        db=db,
        actor=current_user,
        action="EMAIL_TEMPLATE_DELETED",
        entity_type="email_template",
        entity_id=entity_id,
        company_id=company_id,
        metadata={"template_type": template_type},
    )
    db.commit()
