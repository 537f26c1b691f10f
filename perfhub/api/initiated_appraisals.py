from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.clock import today, utcnow
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import get_scoped_or_404, parse_uuid, require_company, scoped
from perfhub.db.session import get_db
from perfhub.models.appraisal_group import AppraisalGroup
from perfhub.models.calendar import FrequencyCalendar, FrequencyCalendarDetails
from perfhub.models.evaluation import OPEN_STATUSES, Evaluation
from perfhub.models.initiated_appraisal import (
    InitiatedAppraisal,
    InitiatedAppraisalDetailTiming,
    ScheduledAppraisalTask,
)
from perfhub.models.questionnaire import QuestionnaireTemplate
from perfhub.models.user import User
from perfhub.schemas.initiated_appraisal import (
    AppraisalProgressOut,
    DetailTimingIn,
    DetailTimingOut,
    InitiatedAppraisalCreate,
    InitiatedAppraisalLaunchOut,
    InitiatedAppraisalOut,
    InitiatedAppraisalUpdate,
    LaunchSummary,
    ScheduledTaskOut,
    SendReminderPayload,
    SkippedEmployee,
)
from perfhub.schemas.notification import EmailSendOut
from perfhub.schemas.pagination import paginate
from perfhub.services.notifications import notify_reminder
from perfhub.services.scheduling import LaunchResult, launch

router = APIRouter(prefix="/initiated-appraisals", tags=["initiated-appraisals"])


def to_out(a: InitiatedAppraisal) -> InitiatedAppraisalOut:
    return InitiatedAppraisalOut(
        id=str(a.id),
        company_id=str(a.company_id),
        appraisal_group_id=str(a.appraisal_group_id),
        appraisal_group_name=a.group.name if a.group else None,
        appraisal_type=a.appraisal_type,
        questionnaire_template_ids=[str(x) for x in a.questionnaire_template_ids or []],
        document_url=a.document_url,
        frequency_calendar_id=str(a.frequency_calendar_id) if a.frequency_calendar_id else None,
        days_to_initiate=a.days_to_initiate,
        days_to_close=a.days_to_close,
        number_of_reminders=a.number_of_reminders,
        exclude_tenure_less_than_year=a.exclude_tenure_less_than_year,
        excluded_employee_ids=[str(x) for x in a.excluded_employee_ids or []],
        status=a.status,
        make_public=a.make_public,
        publish_type=a.publish_type,
        detail_timings=[
            DetailTimingOut(
                frequency_calendar_detail_id=str(t.frequency_calendar_detail_id),
                days_to_initiate=t.days_to_initiate,
                days_to_close=t.days_to_close,
                number_of_reminders=t.number_of_reminders,
            )
            for t in a.detail_timings
        ],
        launched_at=a.launched_at,
        closed_at=a.closed_at,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


def launch_to_out(a: InitiatedAppraisal, result: LaunchResult | None) -> InitiatedAppraisalLaunchOut:
    summary = None
    if result is not None:
        summary = LaunchSummary(
            evaluations_created=result.evaluations_created,
            already_existing=result.already_existing,
            tasks_scheduled=result.tasks_scheduled,
            emails_sent=result.emails_sent,
            skipped=[SkippedEmployee(user_id=s.user_id, reason=s.reason) for s in result.skipped],
        )
    return InitiatedAppraisalLaunchOut(**to_out(a).model_dump(), launch=summary)


def task_to_out(t: ScheduledAppraisalTask) -> ScheduledTaskOut:
    return ScheduledTaskOut(
        id=str(t.id),
        initiated_appraisal_id=str(t.initiated_appraisal_id),
        frequency_calendar_detail_id=str(t.frequency_calendar_detail_id),
        scheduled_date=t.scheduled_date,
        status=t.status,
        executed_at=t.executed_at,
        error=t.error,
        created_at=t.created_at,
    )


def _template_ids_or_422(db: Session, company_id, raw_ids: list[str]) -> list[str]:
    ids = []
    for raw in dict.fromkeys(raw_ids):
        t = db.get(QuestionnaireTemplate, parse_uuid(raw, "Questionnaire template"))
        if not t or t.company_id not in (None, company_id):
            raise HTTPException(status_code=422, detail=f"Questionnaire template {raw} is not available")
        ids.append(str(t.id))
    return ids


def _employee_ids_or_422(db: Session, company_id, raw_ids: list[str]) -> list[str]:
    ids = []
    for raw in dict.fromkeys(raw_ids):
        u = db.get(User, parse_uuid(raw, "User"))
        if not u or u.company_id != company_id:
            raise HTTPException(status_code=422, detail=f"User {raw} does not belong to this company")
        ids.append(str(u.id))
    return ids


def _check_timings(db: Session, calendar_id, timings: list[DetailTimingIn]) -> list[DetailTimingIn]:
    if timings and calendar_id is None:
        raise HTTPException(status_code=422, detail="Detail timings need a frequency calendar")
    seen = set()
    for t in timings:
        d = db.get(FrequencyCalendarDetails, parse_uuid(t.frequency_calendar_detail_id, "Frequency calendar detail"))
        if not d or d.frequency_calendar_id != calendar_id:
            raise HTTPException(
                status_code=422,
                detail=f"Period {t.frequency_calendar_detail_id} does not belong to the frequency calendar",
            )
        if d.id in seen:
            raise HTTPException(status_code=422, detail="Each period may have only one timing override")
        seen.add(d.id)
    return timings


def _apply_timings(a: InitiatedAppraisal, timings: list[DetailTimingIn]) -> None:
    """Sync the override rows in place; rows for periods no longer listed are removed."""
    wanted = {parse_uuid(t.frequency_calendar_detail_id): t for t in timings}
    for row in list(a.detail_timings):
        if row.frequency_calendar_detail_id not in wanted:
            a.detail_timings.remove(row)

    current = {row.frequency_calendar_detail_id: row for row in a.detail_timings}
    for detail_id, t in wanted.items():
        row = current.get(detail_id)
        if row is None:
            row = InitiatedAppraisalDetailTiming(frequency_calendar_detail_id=detail_id)
            a.detail_timings.append(row)
        row.days_to_initiate = t.days_to_initiate
        row.days_to_close = t.days_to_close
        row.number_of_reminders = t.number_of_reminders


def _draft_or_409(a: InitiatedAppraisal, action: str) -> None:
    if a.status != "draft":
        raise HTTPException(status_code=409, detail=f"Only draft appraisals can be {action}")


def _pending_tasks(db: Session, appraisal_id):
    return db.query(ScheduledAppraisalTask).filter(
        ScheduledAppraisalTask.initiated_appraisal_id == appraisal_id,
        ScheduledAppraisalTask.status == "pending",
    )


@router.get("")
def list_initiated_appraisals(
    status: str | None = Query(default=None, description="Filter by status (draft, active, closed, cancelled)"),
    appraisal_type: str | None = Query(default=None),
    publish_type: str | None = Query(default=None, description="Filter by publish type (now, as_per_calendar)"),
    appraisal_group_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    q = scoped(db, InitiatedAppraisal, current_user)
    if status:
        q = q.filter(InitiatedAppraisal.status == status)
    if appraisal_type:
        q = q.filter(InitiatedAppraisal.appraisal_type == appraisal_type)
    if publish_type:
        q = q.filter(InitiatedAppraisal.publish_type == publish_type)
    if appraisal_group_id:
        q = q.filter(InitiatedAppraisal.appraisal_group_id == parse_uuid(appraisal_group_id, "Appraisal group"))

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=InitiatedAppraisal.created_at.desc(),
    )


@router.get("/{appraisal_id}", response_model=InitiatedAppraisalOut)
def get_initiated_appraisal(
    appraisal_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    return to_out(get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal"))


@router.post("", response_model=InitiatedAppraisalLaunchOut, status_code=status.HTTP_201_CREATED)
def create_initiated_appraisal(
    payload: InitiatedAppraisalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    """
    Create an appraisal. A draft is only stored; anything else is launched in the same request.
    """
    company_id = require_company(current_user)

    group = get_scoped_or_404(db, AppraisalGroup, payload.appraisal_group_id, current_user, "Appraisal group")
    if group.status != "active":
        raise HTTPException(status_code=422, detail="Appraisal group is inactive")

    calendar_id = None
    if payload.frequency_calendar_id:
        calendar_id = get_scoped_or_404(
            db, FrequencyCalendar, payload.frequency_calendar_id, current_user, "Frequency calendar"
        ).id

    a = InitiatedAppraisal(
        company_id=company_id,
        appraisal_group_id=group.id,
        appraisal_type=payload.appraisal_type,
        questionnaire_template_ids=_template_ids_or_422(db, company_id, payload.questionnaire_template_ids),
        document_url=payload.document_url,
        frequency_calendar_id=calendar_id,
        days_to_initiate=payload.days_to_initiate,
        days_to_close=payload.days_to_close,
        number_of_reminders=payload.number_of_reminders,
        exclude_tenure_less_than_year=payload.exclude_tenure_less_than_year,
        excluded_employee_ids=_employee_ids_or_422(db, company_id, payload.excluded_employee_ids),
        status="draft",
        make_public=payload.make_public,
        publish_type=payload.publish_type,
        created_by_user_id=current_user.id,
    )
    a.group = group
    _apply_timings(a, _check_timings(db, calendar_id, payload.detail_timings))
    db.add(a)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_CREATED",
        entity_type="initiated_appraisal",
        entity_id=a.id,
        metadata={
            "appraisal_group_id": str(group.id),
            "appraisal_type": a.appraisal_type,
            "publish_type": a.publish_type,
            "draft": payload.status == "draft",
        },
    )

    result = None
    if payload.status != "draft":
        result = launch(db, a, today())
        log_event(
            db=db,
            actor=current_user,
            action="APPRAISAL_LAUNCHED",
            entity_type="initiated_appraisal",
            entity_id=a.id,
            metadata={
                "evaluations_created": result.evaluations_created,
                "tasks_scheduled": result.tasks_scheduled,
                "skipped": len(result.skipped),
            },
        )

    db.commit()
    db.refresh(a)
    return launch_to_out(a, result)


@router.patch("/{appraisal_id}", response_model=InitiatedAppraisalOut)
def update_initiated_appraisal(
    appraisal_id: str,
    payload: InitiatedAppraisalUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")
    _draft_or_409(a, "edited")

    changes = payload.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None or k in ("document_url", "frequency_calendar_id")}

    if "appraisal_group_id" in changes:
        group = get_scoped_or_404(db, AppraisalGroup, changes["appraisal_group_id"], current_user, "Appraisal group")
        if group.status != "active":
            raise HTTPException(status_code=422, detail="Appraisal group is inactive")
        changes["appraisal_group_id"] = group.id
        a.group = group
    if changes.get("frequency_calendar_id") is not None:
        changes["frequency_calendar_id"] = get_scoped_or_404(
            db, FrequencyCalendar, changes["frequency_calendar_id"], current_user, "Frequency calendar"
        ).id
    if "questionnaire_template_ids" in changes:
        changes["questionnaire_template_ids"] = _template_ids_or_422(
            db, a.company_id, changes["questionnaire_template_ids"]
        )
    if "excluded_employee_ids" in changes:
        changes["excluded_employee_ids"] = _employee_ids_or_422(db, a.company_id, changes["excluded_employee_ids"])

    appraisal_type = changes.get("appraisal_type", a.appraisal_type)
    template_ids = changes.get("questionnaire_template_ids", a.questionnaire_template_ids)
    if appraisal_type == "questionnaire_based" and not template_ids:
        raise HTTPException(
            status_code=422,
            detail="questionnaire_based appraisals need at least one questionnaire template",
        )
    publish_type = changes.get("publish_type", a.publish_type)
    calendar_id = changes.get("frequency_calendar_id", a.frequency_calendar_id)
    if publish_type == "as_per_calendar" and calendar_id is None:
        raise HTTPException(
            status_code=422,
            detail="frequency_calendar_id is required when publish_type is as_per_calendar",
        )
    if calendar_id != a.frequency_calendar_id:
        a.detail_timings.clear()

    for field, value in changes.items():
        setattr(a, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_UPDATED",
        entity_type="initiated_appraisal",
        entity_id=a.id,
        metadata={"fields": sorted(changes.keys())},
    )

    db.commit()
    db.refresh(a)
    return to_out(a)


@router.put("/{appraisal_id}/detail-timings", response_model=InitiatedAppraisalOut)
def replace_detail_timings(
    appraisal_id: str,
    payload: list[DetailTimingIn],
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")
    _draft_or_409(a, "edited")

    _apply_timings(a, _check_timings(db, a.frequency_calendar_id, payload))
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_TIMINGS_UPDATED",
        entity_type="initiated_appraisal",
        entity_id=a.id,
        metadata={"periods": [t.frequency_calendar_detail_id for t in payload]},
    )

    db.commit()
    db.refresh(a)
    return to_out(a)


@router.post("/{appraisal_id}/launch", response_model=InitiatedAppraisalLaunchOut)
def launch_initiated_appraisal(
    appraisal_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")
    result = launch(db, a, today())

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_LAUNCHED",
        entity_type="initiated_appraisal",
        entity_id=a.id,
        metadata={
            "evaluations_created": result.evaluations_created,
            "tasks_scheduled": result.tasks_scheduled,
            "skipped": len(result.skipped),
        },
    )

    db.commit()
    db.refresh(a)
    return launch_to_out(a, result)


@router.post("/{appraisal_id}/cancel", response_model=InitiatedAppraisalOut)
def cancel_initiated_appraisal(
    appraisal_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")
    if a.status not in ("draft", "active"):
        raise HTTPException(status_code=409, detail=f"Cannot cancel an appraisal that is {a.status}")

    prev = a.status
    cancelled_tasks = _pending_tasks(db, a.id).update({"status": "cancelled"}, synchronize_session="fetch")
    a.status = "cancelled"
    a.closed_at = utcnow()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_CANCELLED",
        entity_type="initiated_appraisal",
        entity_id=a.id,
        metadata={"from": prev, "to": a.status, "tasks_cancelled": cancelled_tasks},
    )

    db.commit()
    db.refresh(a)
    return to_out(a)


@router.post("/{appraisal_id}/close", response_model=InitiatedAppraisalOut)
def close_initiated_appraisal(
    appraisal_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")
    if a.status != "active":
        raise HTTPException(status_code=409, detail="Only active appraisals can be closed")

    cancelled_tasks = _pending_tasks(db, a.id).update({"status": "cancelled"}, synchronize_session="fetch")
    a.status = "closed"
    a.closed_at = utcnow()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_CLOSED",
        entity_type="initiated_appraisal",
        entity_id=a.id,
        metadata={"tasks_cancelled": cancelled_tasks},
    )

    db.commit()
    db.refresh(a)
    return to_out(a)


@router.get("/{appraisal_id}/progress", response_model=AppraisalProgressOut)
def get_appraisal_progress(
    appraisal_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")

    rows = (
        db.query(Evaluation.status, func.count(Evaluation.id))
        .filter(Evaluation.initiated_appraisal_id == a.id)
        .group_by(Evaluation.status)
        .all()
    )
    by_status = {s: n for s, n in rows}
    total = sum(by_status.values())
    done = by_status.get("completed", 0) + by_status.get("finalized", 0)

    return AppraisalProgressOut(
        initiated_appraisal_id=str(a.id),
        status=a.status,
        total_evaluations=total,
        evaluations_by_status=by_status,
        completion_rate=round(done * 100 / total, 2) if total else 0.0,
        pending_tasks=_pending_tasks(db, a.id).count(),
    )


@router.get("/{appraisal_id}/tasks", response_model=list[ScheduledTaskOut])
def list_appraisal_tasks(
    appraisal_id: str,
    status: str | None = Query(default=None, description="Filter by status (pending, completed, failed, cancelled)"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")

    q = db.query(ScheduledAppraisalTask).filter(ScheduledAppraisalTask.initiated_appraisal_id == a.id)
    if status:
        q = q.filter(ScheduledAppraisalTask.status == status)
    return [task_to_out(t) for t in q.order_by(ScheduledAppraisalTask.scheduled_date).all()]


@router.post("/{appraisal_id}/send-reminder", response_model=EmailSendOut)
def send_reminder(
    appraisal_id: str,
    payload: SendReminderPayload,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    a = get_scoped_or_404(db, InitiatedAppraisal, appraisal_id, current_user, "Initiated appraisal")
    if a.status != "active":
        raise HTTPException(status_code=409, detail="Reminders can only be sent for active appraisals")

    employee_id = parse_uuid(payload.employee_id, "Evaluation")
    ev = (
        db.query(Evaluation)
        .filter(
            Evaluation.initiated_appraisal_id == a.id,
            Evaluation.employee_id == employee_id,
            Evaluation.status.in_(OPEN_STATUSES),
        )
        .order_by(Evaluation.due_date.desc())
        .first()
    )
    if not ev:
        raise HTTPException(status_code=404, detail="No open evaluation for this employee")

    result = notify_reminder(db, ev)
    if result.sent:
        ev.last_reminder_at = utcnow()

    log_event(
        db=db,
        actor=current_user,
        action="REMINDER_SENT",
        entity_type="evaluation",
        entity_id=ev.id,
        metadata={"sent": result.sent, "skipped": result.skipped, "error": result.error},
    )

    db.commit()
    return EmailSendOut(sent=result.sent, skipped=result.skipped, error=result.error)
