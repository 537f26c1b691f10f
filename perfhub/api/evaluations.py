from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from perfhub.core.audit import log_event
from perfhub.core.clock import utcnow
from perfhub.core.config import settings
from perfhub.core.optimistic_lock import assert_version_matches, parse_if_match, set_etag
from perfhub.core.questionnaire_validation import validate_draft_answers, validate_submitted_answers
from perfhub.core.rbac import get_active_role, require_roles
from perfhub.core.security import get_current_user
from perfhub.core.tenancy import parse_uuid
from perfhub.db.session import get_db
from perfhub.models.evaluation import Evaluation
from perfhub.models.questionnaire import QuestionnaireTemplate
from perfhub.models.user import User
from perfhub.schemas.evaluation import (
    EvaluationOut,
    EvaluationWithQuestionsOut,
    ManagerSubmitPayload,
    MeetingCompletePayload,
    MeetingScheduledOut,
    MeetingSchedulePayload,
    SaveAnswersPayload,
)
from perfhub.schemas.pagination import paginate
from perfhub.services.calendar import create_event, meeting_event
from perfhub.services.notifications import notify_meeting_scheduled

router = APIRouter(prefix="/evaluations", tags=["evaluations"])

COMPANY_WIDE_ROLES = ("hr_manager", "admin")


def eval_to_out(e: Evaluation, viewer: User | None = None) -> EvaluationOut:
    # the employee only sees meeting notes the manager chose to share
    hide_notes = viewer is not None and viewer.id == e.employee_id and not e.show_notes_to_employee
    return EvaluationOut(
        id=str(e.id),
        company_id=str(e.company_id),
        employee_id=str(e.employee_id),
        employee_name=e.employee.full_name if e.employee else None,
        manager_id=str(e.manager_id),
        manager_name=e.manager.full_name if e.manager else None,
        initiated_appraisal_id=str(e.initiated_appraisal_id),
        appraisal_type=e.appraisal.appraisal_type if e.appraisal else None,
        frequency_calendar_detail_id=str(e.frequency_calendar_detail_id) if e.frequency_calendar_detail_id else None,
        questionnaire_template_id=str(e.questionnaire_template_id) if e.questionnaire_template_id else None,
        status=e.status,
        initiated_on=e.initiated_on,
        due_date=e.due_date,
        reminders_sent=e.reminders_sent,
        self_evaluation_data=e.self_evaluation_data,
        self_evaluation_submitted_at=e.self_evaluation_submitted_at,
        manager_evaluation_data=e.manager_evaluation_data,
        manager_evaluation_submitted_at=e.manager_evaluation_submitted_at,
        overall_rating=e.overall_rating,
        meeting_scheduled_at=e.meeting_scheduled_at,
        meeting_location=e.meeting_location,
        meeting_notes=None if hide_notes else e.meeting_notes,
        show_notes_to_employee=e.show_notes_to_employee,
        meeting_completed_at=e.meeting_completed_at,
        calendar_provider=e.calendar_provider,
        finalized_at=e.finalized_at,
        created_at=e.created_at,
        updated_at=e.updated_at,
        version=e.version,
    )


def _questions(db: Session, e: Evaluation) -> list[dict] | None:
    """None when the evaluation has no questionnaire (KPI/MBO/OKR appraisals)."""
    if e.questionnaire_template_id is None:
        return None
    template = db.get(QuestionnaireTemplate, e.questionnaire_template_id)
    return list(template.questions or []) if template else []


def eval_to_out_with_questions(db: Session, e: Evaluation, viewer: User) -> EvaluationWithQuestionsOut:
    return EvaluationWithQuestionsOut(
        **eval_to_out(e, viewer).model_dump(),
        questions=_questions(db, e) or [],
    )


def _visible_or_404(db: Session, evaluation_id: str, user: User, active_role: str) -> Evaluation:
    e = db.get(Evaluation, parse_uuid(evaluation_id, "Evaluation"))
    if not e or e.company_id != user.company_id:
        raise HTTPException(status_code=404, detail="Evaluation not found")
    if active_role in COMPANY_WIDE_ROLES or user.id in (e.employee_id, e.manager_id):
        return e
    raise HTTPException(status_code=404, detail="Evaluation not found")


def _assert_employee(e: Evaluation, user: User) -> None:
    if e.employee_id != user.id:
        raise HTTPException(status_code=403, detail="Only the employee can edit the self evaluation")


def _assert_manager(e: Evaluation, user: User) -> None:
    if e.manager_id != user.id:
        raise HTTPException(status_code=403, detail="Only the reporting manager can perform this action")


def _assert_appraisal_open(e: Evaluation, allow_closed: bool = False) -> None:
    allowed = ("active", "closed") if allow_closed else ("active",)
    if e.appraisal.status not in allowed:
        raise HTTPException(status_code=409, detail=f"Appraisal is {e.appraisal.status}")


def _assert_status(e: Evaluation, allowed: tuple[str, ...], action: str) -> None:
    if e.status not in allowed:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot {action} an evaluation that is {e.status}",
        )


def _merge(current: dict | None, answers: dict[str, Any]) -> dict[str, Any]:
    return {**(current or {}), **answers}


def _finish(db: Session, e: Evaluation, viewer: User) -> EvaluationOut:
    try:
        db.flush()  # bumps version
    except StaleDataError:
        raise HTTPException(status_code=409, detail="Stale version")
    db.refresh(e)
    return eval_to_out(e, viewer)


@router.get("")
def list_evaluations(
    status: str | None = Query(default=None, description="Filter by status"),
    initiated_appraisal_id: str | None = Query(default=None),
    employee_id: str | None = Query(default=None),
    manager_id: str | None = Query(default=None),
    mine: bool = Query(default=False, description="Only evaluations where I am the employee"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
):
    """
    hr_managers and admins see the whole company; everyone else sees the
    evaluations they are the employee or the reporting manager of.
    """
    q = db.query(Evaluation).filter(Evaluation.company_id == user.company_id)
    if mine:
        q = q.filter(Evaluation.employee_id == user.id)
    elif active_role == "manager":
        q = q.filter(or_(Evaluation.manager_id == user.id, Evaluation.employee_id == user.id))
    elif active_role not in COMPANY_WIDE_ROLES:
        q = q.filter(Evaluation.employee_id == user.id)

    if status:
        q = q.filter(Evaluation.status == status)
    if initiated_appraisal_id:
        q = q.filter(
            Evaluation.initiated_appraisal_id == parse_uuid(initiated_appraisal_id, "Initiated appraisal")
        )
    if employee_id:
        q = q.filter(Evaluation.employee_id == parse_uuid(employee_id, "User"))
    if manager_id:
        q = q.filter(Evaluation.manager_id == parse_uuid(manager_id, "User"))

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=lambda e: eval_to_out(e, user),
        order_by=Evaluation.due_date,
    )


@router.get("/{evaluation_id}", response_model=EvaluationWithQuestionsOut)
def get_evaluation(
    evaluation_id: str,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
):
    e = _visible_or_404(db, evaluation_id, user, active_role)
    out = eval_to_out_with_questions(db, e, user)
    set_etag(response, out.version)
    return out


@router.put("/{evaluation_id}/self", response_model=EvaluationOut)
def save_self_evaluation(
    evaluation_id: str,
    payload: SaveAnswersPayload,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, active_role)
    _assert_employee(e, user)
    _assert_appraisal_open(e)
    _assert_status(e, ("not_started", "in_progress"), "edit the self evaluation of")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    questions = _questions(db, e)
    if questions is not None:
        # draft: keys exist + type sanity only
        validate_draft_answers(questions, payload.answers)

    prev = e.status
    e.self_evaluation_data = _merge(e.self_evaluation_data, payload.answers)
    e.status = "in_progress"
    out = _finish(db, e, user)

    log_event(
        db=db,
        actor=user,
        action="SELF_EVALUATION_SAVED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"from": prev, "to": e.status, "answers": len(payload.answers), "version": e.version},
    )
    db.commit()

    set_etag(response, out.version)
    return out


@router.post("/{evaluation_id}/self/submit", response_model=EvaluationOut)
def submit_self_evaluation(
    evaluation_id: str,
    response: Response,
    payload: SaveAnswersPayload | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, active_role)
    _assert_employee(e, user)
    _assert_appraisal_open(e)
    _assert_status(e, ("not_started", "in_progress"), "submit the self evaluation of")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    answers = _merge(e.self_evaluation_data, payload.answers if payload else {})
    questions = _questions(db, e)
    if questions is not None:
        validate_submitted_answers(questions, answers)

    prev = e.status
    e.self_evaluation_data = answers
    e.status = "submitted"
    e.self_evaluation_submitted_at = utcnow()
    out = _finish(db, e, user)

    log_event(
        db=db,
        actor=user,
        action="SELF_EVALUATION_SUBMITTED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"from": prev, "to": e.status, "version": e.version},
    )
    db.commit()

    set_etag(response, out.version)
    return out


@router.put("/{evaluation_id}/manager", response_model=EvaluationOut)
def save_manager_evaluation(
    evaluation_id: str,
    payload: SaveAnswersPayload,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, active_role)
    _assert_manager(e, user)
    _assert_appraisal_open(e)
    _assert_status(e, ("submitted",), "edit the manager evaluation of")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    questions = _questions(db, e)
    if questions is not None:
        validate_draft_answers(questions, payload.answers)

    e.manager_evaluation_data = _merge(e.manager_evaluation_data, payload.answers)
    out = _finish(db, e, user)

    log_event(
        db=db,
        actor=user,
        action="MANAGER_EVALUATION_SAVED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"answers": len(payload.answers), "version": e.version},
    )
    db.commit()

    set_etag(response, out.version)
    return out


@router.post("/{evaluation_id}/manager/submit", response_model=EvaluationOut)
def submit_manager_evaluation(
    evaluation_id: str,
    payload: ManagerSubmitPayload,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, active_role)
    _assert_manager(e, user)
    _assert_appraisal_open(e)
    _assert_status(e, ("submitted",), "complete")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    answers = _merge(e.manager_evaluation_data, payload.answers)
    questions = _questions(db, e)
    if questions is not None:
        validate_submitted_answers(questions, answers)

    prev = e.status
    e.manager_evaluation_data = answers
    e.overall_rating = payload.overall_rating
    e.status = "completed"
    e.manager_evaluation_submitted_at = utcnow()
    out = _finish(db, e, user)

    log_event(
        db=db,
        actor=user,
        action="MANAGER_EVALUATION_SUBMITTED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"from": prev, "to": e.status, "overall_rating": e.overall_rating, "version": e.version},
    )
    db.commit()

    set_etag(response, out.version)
    return out


@router.post("/{evaluation_id}/meeting", response_model=MeetingScheduledOut)
def schedule_meeting(
    evaluation_id: str,
    payload: MeetingSchedulePayload,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    """
    Book the review meeting with the company's calendar provider and email
    both participants. Calendar or SMTP trouble is reported, not raised.
    """
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, active_role)
    _assert_manager(e, user)
    _assert_appraisal_open(e)
    _assert_status(e, ("submitted", "completed"), "schedule a meeting for")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    duration = payload.duration_minutes or settings.DEFAULT_MEETING_MINUTES
    event = meeting_event(
        employee_name=e.employee.full_name,
        employee_email=e.employee.email,
        manager_name=e.manager.full_name,
        manager_email=e.manager.email,
        start=payload.scheduled_at,
        duration_minutes=duration,
        location=payload.location,
        notes=payload.notes,
    )
    result = create_event(db, e.company_id, event)

    e.meeting_scheduled_at = event.start
    e.meeting_location = payload.location
    if payload.notes is not None:
        e.meeting_notes = payload.notes
    e.meeting_completed_at = None
    e.calendar_provider = result.provider
    e.calendar_event_id = result.event_id
    out = _finish(db, e, user)

    email = notify_meeting_scheduled(db, e, event, provider=result.provider, duration_minutes=duration)

    log_event(
        db=db,
        actor=user,
        action="MEETING_SCHEDULED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={
            "scheduled_at": event.start.isoformat(),
            "provider": result.provider,
            "calendar_error": result.error,
            "email_sent": email.sent,
        },
    )
    db.commit()

    set_etag(response, out.version)
    return MeetingScheduledOut(
        evaluation=out,
        provider=result.provider,
        event_id=result.event_id,
        email_sent=email.sent,
    )


@router.post("/{evaluation_id}/meeting/complete", response_model=EvaluationOut)
def complete_meeting(
    evaluation_id: str,
    payload: MeetingCompletePayload,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, active_role)
    _assert_manager(e, user)
    _assert_appraisal_open(e)
    if e.meeting_scheduled_at is None:
        raise HTTPException(status_code=409, detail="No meeting has been scheduled")
    if e.meeting_completed_at is not None:
        raise HTTPException(status_code=409, detail="Meeting is already completed")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    if payload.notes is not None:
        e.meeting_notes = payload.notes
    e.show_notes_to_employee = payload.show_notes_to_employee
    e.meeting_completed_at = utcnow()
    out = _finish(db, e, user)

    log_event(
        db=db,
        actor=user,
        action="MEETING_COMPLETED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"show_notes_to_employee": e.show_notes_to_employee, "version": e.version},
    )
    db.commit()

    set_etag(response, out.version)
    return out


@router.post("/{evaluation_id}/finalize", response_model=EvaluationOut)
def finalize_evaluation(
    evaluation_id: str,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("hr_manager")),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _visible_or_404(db, evaluation_id, user, "hr_manager")
    _assert_appraisal_open(e, allow_closed=True)
    _assert_status(e, ("completed",), "finalize")
    assert_version_matches(current_version=e.version, if_match_version=expected_version)

    prev = e.status
    e.status = "finalized"
    e.finalized_at = utcnow()
    out = _finish(db, e, user)

    log_event(
        db=db,
        actor=user,
        action="EVALUATION_FINALIZED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"from": prev, "to": e.status, "version": e.version},
    )
    db.commit()

    set_etag(response, out.version)
    return out
