from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import (
    delete_or_409,
    ensure_code_available,
    get_scoped_or_404,
    parse_uuid,
    require_company,
    scoped,
)
from perfhub.db.session import get_db
from perfhub.models.calendar import FrequencyCalendar
from perfhub.models.questionnaire import PublishQuestionnaire, QuestionnaireTemplate
from perfhub.models.user import User
from perfhub.schemas.pagination import paginate
from perfhub.schemas.questionnaire import (
    PublishQuestionnaireCreate,
    PublishQuestionnaireOut,
    PublishQuestionnaireUpdate,
)

router = APIRouter(prefix="/publish-questionnaires", tags=["publish-questionnaires"])


def to_out(p: PublishQuestionnaire) -> PublishQuestionnaireOut:
    return PublishQuestionnaireOut(
        id=str(p.id),
        company_id=str(p.company_id),
        code=p.code,
        display_name=p.display_name,
        template_id=str(p.template_id),
        frequency_calendar_id=str(p.frequency_calendar_id) if p.frequency_calendar_id else None,
        status=p.status,
        publish_type=p.publish_type,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _usable_template_or_404(db: Session, template_id: str, company_id) -> QuestionnaireTemplate:
    t = db.get(QuestionnaireTemplate, parse_uuid(template_id, "Questionnaire template"))
    if not t or t.company_id not in (None, company_id):
        raise HTTPException(status_code=404, detail="Questionnaire template not found")
    return t


@router.get("")
def list_publish_questionnaires(
    search: str | None = Query(default=None, description="Search by code or display name"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    publish_type: str | None = Query(default=None, description="Filter by publish type (now, as_per_calendar)"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager", "admin")),
):
    q = scoped(db, PublishQuestionnaire, current_user)
    if search:
        term = f"%{search.lower()}%"
        q = q.filter(or_(PublishQuestionnaire.code.ilike(term), PublishQuestionnaire.display_name.ilike(term)))
    if status:
        q = q.filter(PublishQuestionnaire.status == status)
    if publish_type:
        q = q.filter(PublishQuestionnaire.publish_type == publish_type)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=PublishQuestionnaire.created_at.desc(),
    )


@router.get("/{publish_id}", response_model=PublishQuestionnaireOut)
def get_publish_questionnaire(
    publish_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager", "admin")),
):
    return to_out(get_scoped_or_404(db, PublishQuestionnaire, publish_id, current_user, "Published questionnaire"))


@router.post("", response_model=PublishQuestionnaireOut, status_code=status.HTTP_201_CREATED)
def create_publish_questionnaire(
    payload: PublishQuestionnaireCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager", "admin")),
):
    company_id = require_company(current_user)
    ensure_code_available(db, PublishQuestionnaire, company_id, payload.code)

    template = _usable_template_or_404(db, payload.template_id, company_id)
    calendar_id = None
    if payload.frequency_calendar_id:
        calendar_id = get_scoped_or_404(
            db, FrequencyCalendar, payload.frequency_calendar_id, current_user, "Frequency calendar"
        ).id

    p = PublishQuestionnaire(
        company_id=company_id,
        code=payload.code,
        display_name=payload.display_name,
        template_id=template.id,
        frequency_calendar_id=calendar_id,
        status=payload.status,
        publish_type=payload.publish_type,
        created_by_user_id=current_user.id,
    )
    db.add(p)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="QUESTIONNAIRE_PUBLISHED",
        entity_type="publish_questionnaire",
        entity_id=p.id,
        metadata={"code": p.code, "template_id": str(template.id), "publish_type": p.publish_type},
    )

    db.commit()
    db.refresh(p)
    return to_out(p)


@router.patch("/{publish_id}", response_model=PublishQuestionnaireOut)
def update_publish_questionnaire(
    publish_id: str,
    payload: PublishQuestionnaireUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager", "admin")),
):
    p = get_scoped_or_404(db, PublishQuestionnaire, publish_id, current_user, "Published questionnaire")

    changes = payload.model_dump(exclude_unset=True)
    if "frequency_calendar_id" in changes and changes["frequency_calendar_id"] is not None:
        changes["frequency_calendar_id"] = get_scoped_or_404(
            db, FrequencyCalendar, changes["frequency_calendar_id"], current_user, "Frequency calendar"
        ).id
    changes = {k: v for k, v in changes.items() if v is not None or k == "frequency_calendar_id"}

    publish_type = changes.get("publish_type", p.publish_type)
    calendar_id = changes.get("frequency_calendar_id", p.frequency_calendar_id)
    if publish_type == "as_per_calendar" and calendar_id is None:
        raise HTTPException(
            status_code=422,
            detail="frequency_calendar_id is required when publish_type is as_per_calendar",
        )

    for field, value in changes.items():
        setattr(p, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="PUBLISHED_QUESTIONNAIRE_UPDATED",
        entity_type="publish_questionnaire",
        entity_id=p.id,
        metadata={"changes": {k: (str(v) if v is not None else None) for k, v in changes.items()}},
    )

    db.commit()
    db.refresh(p)
    return to_out(p)


@router.delete("/{publish_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_publish_questionnaire(
    publish_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager", "admin")),
):
    p = get_scoped_or_404(db, PublishQuestionnaire, publish_id, current_user, "Published questionnaire")
    entity_id, code = p.id, p.code

    delete_or_409(db, p, "Published questionnaire")

    log_event(
        db=db,
        actor=current_user,
        action="PUBLISHED_QUESTIONNAIRE_DELETED",
        entity_type="publish_questionnaire",
        entity_id=entity_id,
        metadata={"code": code},
    )
    db.commit()
