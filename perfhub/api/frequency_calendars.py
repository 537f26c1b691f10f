from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import (
    delete_or_409,
    ensure_code_available,
    get_scoped_or_404,
    require_company,
    scoped,
)
from perfhub.db.session import get_db
from perfhub.models.calendar import (
    AppraisalCycle,
    FrequencyCalendar,
    FrequencyCalendarDetails,
    ReviewFrequency,
)
from perfhub.models.user import User
from perfhub.schemas.calendar import (
    FrequencyCalendarCreate,
    FrequencyCalendarDetailOut,
    FrequencyCalendarOut,
    FrequencyCalendarUpdate,
)
from perfhub.schemas.pagination import paginate

router = APIRouter(prefix="/frequency-calendars", tags=["frequency-calendars"])


def detail_to_out(d: FrequencyCalendarDetails) -> FrequencyCalendarDetailOut:
    return FrequencyCalendarDetailOut(
        id=str(d.id),
        frequency_calendar_id=str(d.frequency_calendar_id),
        display_name=d.display_name,
        start_date=d.start_date,
        end_date=d.end_date,
        status=d.status,
        created_at=d.created_at,
        updated_at=d.updated_at,
    )


def _details_of(db: Session, cal: FrequencyCalendar) -> list[FrequencyCalendarDetails]:
    return (
        db.query(FrequencyCalendarDetails)
        .filter(FrequencyCalendarDetails.frequency_calendar_id == cal.id)
        .order_by(FrequencyCalendarDetails.start_date)
        .all()
    )


def to_out(cal: FrequencyCalendar, details: list[FrequencyCalendarDetails] | None = None) -> FrequencyCalendarOut:
    return FrequencyCalendarOut(
        id=str(cal.id),
        company_id=str(cal.company_id),
        code=cal.code,
        description=cal.description,
        appraisal_cycle_id=str(cal.appraisal_cycle_id),
        review_frequency_id=str(cal.review_frequency_id),
        status=cal.status,
        details=[detail_to_out(d) for d in (details or [])],
        created_at=cal.created_at,
        updated_at=cal.updated_at,
    )


@router.get("")
def list_frequency_calendars(
    search: str | None = Query(default=None, description="Search by code or description"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    appraisal_cycle_id: str | None = Query(default=None, description="Filter by appraisal cycle"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    q = scoped(db, FrequencyCalendar, current_user)
    if search:
        term = f"%{search.lower()}%"
        q = q.filter(or_(FrequencyCalendar.code.ilike(term), FrequencyCalendar.description.ilike(term)))
    if status:
        q = q.filter(FrequencyCalendar.status == status)
    if appraisal_cycle_id:
        cycle = get_scoped_or_404(db, AppraisalCycle, appraisal_cycle_id, current_user, "Appraisal cycle")
        q = q.filter(FrequencyCalendar.appraisal_cycle_id == cycle.id)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=lambda cal: to_out(cal, _details_of(db, cal)),
        order_by=FrequencyCalendar.code,
    )


@router.get("/{calendar_id}", response_model=FrequencyCalendarOut)
def get_frequency_calendar(
    calendar_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    cal = get_scoped_or_404(db, FrequencyCalendar, calendar_id, current_user, "Frequency calendar")
    return to_out(cal, _details_of(db, cal))


@router.post("", response_model=FrequencyCalendarOut, status_code=status.HTTP_201_CREATED)
def create_frequency_calendar(
    payload: FrequencyCalendarCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    company_id = require_company(current_user)
    ensure_code_available(db, FrequencyCalendar, company_id, payload.code)

    cal = FrequencyCalendar(
        company_id=company_id,
        code=payload.code,
        description=payload.description,
        appraisal_cycle_id=get_scoped_or_404(
            db, AppraisalCycle, payload.appraisal_cycle_id, current_user, "Appraisal cycle"
        ).id,
        review_frequency_id=get_scoped_or_404(
            db, ReviewFrequency, payload.review_frequency_id, current_user, "Review frequency"
        ).id,
        status=payload.status,
        created_by_user_id=current_user.id,
    )
    db.add(cal)
    db.flush()

    for d in payload.details:
        db.add(
            FrequencyCalendarDetails(
                company_id=company_id,
                frequency_calendar_id=cal.id,
                display_name=d.display_name,
                start_date=d.start_date,
                end_date=d.end_date,
                status=d.status,
                created_by_user_id=current_user.id,
            )
        )
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="FREQUENCY_CALENDAR_CREATED",
        entity_type="frequency_calendar",
        entity_id=cal.id,
        metadata={"code": cal.code, "details": len(payload.details)},
    )

    db.commit()
    db.refresh(cal)
    return to_out(cal, _details_of(db, cal))


@router.patch("/{calendar_id}", response_model=FrequencyCalendarOut)
def update_frequency_calendar(
    calendar_id: str,
    payload: FrequencyCalendarUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    cal = get_scoped_or_404(db, FrequencyCalendar, calendar_id, current_user, "Frequency calendar")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "code" in changes and changes["code"] != cal.code:
        ensure_code_available(db, FrequencyCalendar, cal.company_id, changes["code"], exclude_id=cal.id)

    if "appraisal_cycle_id" in changes:
        changes["appraisal_cycle_id"] = get_scoped_or_404(
            db, AppraisalCycle, changes["appraisal_cycle_id"], current_user, "Appraisal cycle"
        ).id
    if "review_frequency_id" in changes:
        changes["review_frequency_id"] = get_scoped_or_404(
            db, ReviewFrequency, changes["review_frequency_id"], current_user, "Review frequency"
        ).id

    for field, value in changes.items():
        setattr(cal, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="FREQUENCY_CALENDAR_UPDATED",
        entity_type="frequency_calendar",
        entity_id=cal.id,
        metadata={"changes": {k: str(v) for k, v in changes.items()}},
    )

    db.commit()
    db.refresh(cal)
    return to_out(cal, _details_of(db, cal))


@router.delete("/{calendar_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_frequency_calendar(
    calendar_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    cal = get_scoped_or_404(db, FrequencyCalendar, calendar_id, current_user, "Frequency calendar")
    if _details_of(db, cal):
        raise HTTPException(
            status_code=409,
            detail="Frequency calendar has calendar details; delete them first",
        )
    entity_id, code = cal.id, cal.code

    delete_or_409(db, cal, "Frequency calendar")

    log_event(
        db=db,
        actor=current_user,
        action="FREQUENCY_CALENDAR_DELETED",
        entity_type="frequency_calendar",
        entity_id=entity_id,
        metadata={"code": code},
    )
    db.commit()
