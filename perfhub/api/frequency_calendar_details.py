from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from perfhub.api.frequency_calendars import detail_to_out
from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import delete_or_409, get_scoped_or_404, require_company, scoped
from perfhub.db.session import get_db
from perfhub.models.calendar import FrequencyCalendar, FrequencyCalendarDetails
from perfhub.models.user import User
from perfhub.schemas.calendar import (
    FrequencyCalendarDetailOut,
    FrequencyCalendarDetailStandaloneCreate,
    FrequencyCalendarDetailUpdate,
)
from perfhub.schemas.pagination import paginate

router = APIRouter(prefix="/frequency-calendar-details", tags=["frequency-calendar-details"])


@router.get("")
def list_frequency_calendar_details(
    frequency_calendar_id: str | None = Query(default=None, description="Filter by frequency calendar"),
    search: str | None = Query(default=None, description="Search by display name"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    q = scoped(db, FrequencyCalendarDetails, current_user)
    if frequency_calendar_id:
        cal = get_scoped_or_404(db, FrequencyCalendar, frequency_calendar_id, current_user, "Frequency calendar")
        q = q.filter(FrequencyCalendarDetails.frequency_calendar_id == cal.id)
    if search:
        q = q.filter(FrequencyCalendarDetails.display_name.ilike(f"%{search.lower()}%"))
    if status:
        q = q.filter(FrequencyCalendarDetails.status == status)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=detail_to_out,
        order_by=FrequencyCalendarDetails.start_date,
    )


@router.get("/{detail_id}", response_model=FrequencyCalendarDetailOut)
def get_frequency_calendar_detail(
    detail_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    return detail_to_out(
        get_scoped_or_404(db, FrequencyCalendarDetails, detail_id, current_user, "Frequency calendar detail")
    )


@router.post("", response_model=FrequencyCalendarDetailOut, status_code=status.HTTP_201_CREATED)
def create_frequency_calendar_detail(
    payload: FrequencyCalendarDetailStandaloneCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    company_id = require_company(current_user)
    cal = get_scoped_or_404(db, FrequencyCalendar, payload.frequency_calendar_id, current_user, "Frequency calendar")

    d = FrequencyCalendarDetails(
        company_id=company_id,
        frequency_calendar_id=cal.id,
        display_name=payload.display_name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        status=payload.status,
        created_by_user_id=current_user.id,
    )
    db.add(d)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="FREQUENCY_CALENDAR_DETAIL_CREATED",
        entity_type="frequency_calendar_detail",
        entity_id=d.id,
        metadata={
            "frequency_calendar_id": str(cal.id),
            "display_name": d.display_name,
            "start_date": str(d.start_date),
            "end_date": str(d.end_date),
        },
    )

    db.commit()
    db.refresh(d)
    return detail_to_out(d)


@router.patch("/{detail_id}", response_model=FrequencyCalendarDetailOut)
def update_frequency_calendar_detail(
    detail_id: str,
    payload: FrequencyCalendarDetailUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    d = get_scoped_or_404(db, FrequencyCalendarDetails, detail_id, current_user, "Frequency calendar detail")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    start_date = changes.get("start_date", d.start_date)
    end_date = changes.get("end_date", d.end_date)
    if end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date must be on or after start_date")

    before = {"start_date": str(d.start_date), "end_date": str(d.end_date), "status": d.status}
    for field, value in changes.items():
        setattr(d, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="FREQUENCY_CALENDAR_DETAIL_UPDATED",
        entity_type="frequency_calendar_detail",
        entity_id=d.id,
        metadata={
            "before": before,
            "after": {"start_date": str(d.start_date), "end_date": str(d.end_date), "status": d.status},
        },
    )

    db.commit()
    db.refresh(d)
    return detail_to_out(d)


@router.delete("/{detail_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_frequency_calendar_detail(
    detail_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    d = get_scoped_or_404(db, FrequencyCalendarDetails, detail_id, current_user, "Frequency calendar detail")
    entity_id, display_name = d.id, d.display_name

    delete_or_409(db, d, "Frequency calendar detail")

    log_event(
        db=db,
        actor=current_user,
        action="FREQUENCY_CALENDAR_DETAIL_DELETED",
        entity_type="frequency_calendar_detail",
        entity_id=entity_id,
        metadata={"display_name": display_name},
    )
    db.commit()
