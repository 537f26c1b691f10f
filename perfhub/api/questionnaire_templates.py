from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import get_active_role, require_roles
from perfhub.core.tenancy import delete_or_409, parse_uuid
from perfhub.db.session import get_db
from perfhub.models.org_structure import Grade, Level, Location
from perfhub.models.questionnaire import QuestionnaireTemplate
from perfhub.models.user import User
from perfhub.schemas.pagination import paginate
from perfhub.schemas.questionnaire import (
    QuestionnaireTemplateCreate,
    QuestionnaireTemplateOut,
    QuestionnaireTemplateUpdate,
)

router = APIRouter(prefix="/questionnaire-templates", tags=["questionnaire-templates"])

APPLICABILITY_FIELDS = {
    "applicable_level_id": (Level, "Level"),
    "applicable_grade_id": (Grade, "Grade"),
    "applicable_location_id": (Location, "Location"),
}


def to_out(t: QuestionnaireTemplate) -> QuestionnaireTemplateOut:
    def _s(v):
        return str(v) if v else None

    return QuestionnaireTemplateOut(
        id=str(t.id),
        company_id=_s(t.company_id),
        name=t.name,
        description=t.description,
        target_role=t.target_role,
        applicable_category=t.applicable_category,
        applicable_level_id=_s(t.applicable_level_id),
        applicable_grade_id=_s(t.applicable_grade_id),
        applicable_location_id=_s(t.applicable_location_id),
        send_on_mail=t.send_on_mail,
        questions=list(t.questions or []),
        year=t.year,
        status=t.status,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


def _visible_or_404(db: Session, template_id: str, current_user: User, active_role: str) -> QuestionnaireTemplate:
    """Company templates plus global ones; super admins see everything."""
    t = db.get(QuestionnaireTemplate, parse_uuid(template_id, "Questionnaire template"))
    if not t:
        raise HTTPException(status_code=404, detail="Questionnaire template not found")
    if active_role != "super_admin" and t.company_id not in (None, current_user.company_id):
        raise HTTPException(status_code=404, detail="Questionnaire template not found")
    return t


def _editable_or_403(t: QuestionnaireTemplate, active_role: str) -> None:
    if t.company_id is None and active_role != "super_admin":
        raise HTTPException(status_code=403, detail="Global templates can only be changed by a super admin")


def _resolve_applicability(db: Session, company_id, data: dict) -> dict:
    resolved = {}
    for field, (model, label) in APPLICABILITY_FIELDS.items():
        if field not in data:
            continue
        raw = data[field]
        if raw is None:
            resolved[field] = None
            continue
        obj = db.get(model, parse_uuid(raw, label))
        if not obj or (company_id is not None and obj.company_id != company_id):
            raise HTTPException(status_code=422, detail=f"{label} does not belong to this company")
        resolved[field] = obj.id
    return resolved


@router.get("")
def list_questionnaire_templates(
    search: str | None = Query(default=None, description="Search by name or description"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    target_role: str | None = Query(default=None, description="Filter by target role (employee, manager)"),
    year: int | None = Query(default=None),
    include_global: bool = Query(default=True, description="Include global templates"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    q = db.query(QuestionnaireTemplate)
    if active_role != "super_admin":
        if include_global:
            q = q.filter(
                or_(
                    QuestionnaireTemplate.company_id == current_user.company_id,
                    QuestionnaireTemplate.company_id.is_(None),
                )
            )
        else:
            q = q.filter(QuestionnaireTemplate.company_id == current_user.company_id)

    if search:
        term = f"%{search.lower()}%"
        q = q.filter(or_(QuestionnaireTemplate.name.ilike(term), QuestionnaireTemplate.description.ilike(term)))
    if status:
        q = q.filter(QuestionnaireTemplate.status == status)
    if target_role:
        q = q.filter(QuestionnaireTemplate.target_role == target_role)
    if year is not None:
        q = q.filter(QuestionnaireTemplate.year == year)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=QuestionnaireTemplate.name,
    )


@router.get("/{template_id}", response_model=QuestionnaireTemplateOut)
def get_questionnaire_template(
    template_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    return to_out(_visible_or_404(db, template_id, current_user, active_role))


@router.post("", response_model=QuestionnaireTemplateOut, status_code=status.HTTP_201_CREATED)
def create_questionnaire_template(
    payload: QuestionnaireTemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    if active_role == "super_admin":
        company_id = None if (payload.is_global or current_user.company_id is None) else current_user.company_id
    else:
        if current_user.company_id is None:
            raise HTTPException(status_code=403, detail="User is not associated with a company")
        company_id = current_user.company_id

    data = payload.model_dump(exclude={"is_global", "questions"})
    data.update(_resolve_applicability(db, company_id, data))

    t = QuestionnaireTemplate(
        company_id=company_id,
        created_by_user_id=current_user.id,
        questions=[q.model_dump(exclude_none=True) for q in payload.questions],
        **data,
    )
    db.add(t)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="QUESTIONNAIRE_TEMPLATE_CREATED",
        entity_type="questionnaire_template",
        entity_id=t.id,
        company_id=company_id,
        metadata={"name": t.name, "questions": len(t.questions), "global": company_id is None},
    )

    db.commit()
    db.refresh(t)
    return to_out(t)


@router.patch("/{template_id}", response_model=QuestionnaireTemplateOut)
def update_questionnaire_template(
    template_id: str,
    payload: QuestionnaireTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    t = _visible_or_404(db, template_id, current_user, active_role)
    _editable_or_403(t, active_role)

    changes = payload.model_dump(exclude_unset=True, exclude={"questions"})
    changes = {k: v for k, v in changes.items() if v is not None or k in APPLICABILITY_FIELDS}
    changes.update(_resolve_applicability(db, t.company_id, changes))

    for field, value in changes.items():
        setattr(t, field, value)
    if payload.questions is not None:
        t.questions = [q.model_dump(exclude_none=True) for q in payload.questions]

    log_event(
        db=db,
        actor=current_user,
        action="QUESTIONNAIRE_TEMPLATE_UPDATED",
        entity_type="questionnaire_template",
        entity_id=t.id,
        company_id=t.company_id,
        metadata={
            "fields": sorted(changes.keys()) + (["questions"] if payload.questions is not None else []),
        },
    )

    db.commit()
    db.refresh(t)
    return to_out(t)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_questionnaire_template(
    template_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    t = _visible_or_404(db, template_id, current_user, active_role)
    _editable_or_403(t, active_role)
    entity_id, name, company_id = t.id, t.name, t.company_id

    delete_or_409(db, t, "Questionnaire template")

    log_event(
        db=db,
        actor=current_user,
        action="QUESTIONNAIRE_TEMPLATE_DELETED",
        entity_type="questionnaire_template",
        entity_id=entity_id,
        company_id=company_id,
        metadata={"name": name},
    )
    db.commit()
