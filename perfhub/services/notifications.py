from datetime import timezone

from sqlalchemy.orm import Session

from perfhub.core.clock import ensure_aware
from perfhub.models.company import Company
from perfhub.models.evaluation import Evaluation
from perfhub.services.calendar import CalendarEvent, build_ics
from perfhub.services.email import Attachment, EmailResult, send_templated_email

APPRAISAL_TYPE_LABELS = {
    "questionnaire_based": "questionnaire based",
    "kpi_based": "KPI based",
    "mbo_based": "MBO based",
    "okr_based": "OKR based",
}


def evaluation_context(db: Session, ev: Evaluation) -> dict:
    company = db.get(Company, ev.company_id)
    appraisal_type = ev.appraisal.appraisal_type if ev.appraisal else None
    return {
        "company_name": company.name if company else "",
        "employee_name": ev.employee.full_name,
        "employee_email": ev.employee.email,
        "manager_name": ev.manager.full_name,
        "manager_email": ev.manager.email,
        "appraisal_type": APPRAISAL_TYPE_LABELS.get(appraisal_type, appraisal_type or ""),
        "document_url": ev.appraisal.document_url if ev.appraisal else None,
        "due_date": ev.due_date.isoformat(),
        "status": ev.status.replace("_", " "),
    }


def notify_appraisal_initiated(db: Session, ev: Evaluation) -> EmailResult:
    return send_templated_email(
        db,
        company_id=ev.company_id,
        template_type="appraisal_initiated",
        to=ev.employee.email,
        context=evaluation_context(db, ev),
    )


def notify_reminder(db: Session, ev: Evaluation) -> EmailResult:
    """
    Employees are reminded until they submit; after that the reminder goes to the manager.
    """
    ctx = evaluation_context(db, ev)
    if ev.status == "submitted":
        to, ctx["recipient_name"] = ev.manager.email, ev.manager.full_name
    else:
        to, ctx["recipient_name"] = ev.employee.email, ev.employee.full_name

    return send_templated_email(
        db,
        company_id=ev.company_id,
        template_type="appraisal_reminder",
        to=to,
        context=ctx,
    )


def notify_meeting_scheduled(
    db: Session,
    ev: Evaluation,
    event: CalendarEvent,
    *,
    provider: str,
    duration_minutes: int,
) -> EmailResult:
    """
    Meeting invitation to employee and manager. Without a calendar provider the
    invitation carries an .ics attachment instead.
    """
    ctx = evaluation_context(db, ev)
    start = ensure_aware(event.start).astimezone(timezone.utc)
    ctx.update(
        {
            "meeting_date": start.strftime("%Y-%m-%d %H:%M UTC"),
            "duration": duration_minutes,
            "location": event.location or "To be confirmed",
            "notes": ev.meeting_notes or "",
        }
    )

    attachments = None
    if provider == "ics":
        attachments = [Attachment(filename="performance-review.ics", content=build_ics(event, uid=str(ev.id)))]

    return send_templated_email(
        db,
        company_id=ev.company_id,
        template_type="meeting_scheduled",
        to=[ev.employee.email, ev.manager.email],
        context=ctx,
        attachments=attachments,
    )
