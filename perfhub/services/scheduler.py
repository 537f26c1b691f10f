import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date

from sqlalchemy.orm import Session

from perfhub.core.clock import today as utc_today
from perfhub.core.clock import utcnow
from perfhub.core.exceptions import NotFoundError
from perfhub.models.calendar import FrequencyCalendarDetails
from perfhub.models.evaluation import OPEN_STATUSES, TERMINAL_STATUSES, Evaluation
from perfhub.models.initiated_appraisal import InitiatedAppraisal, ScheduledAppraisalTask
from perfhub.services.notifications import notify_reminder
from perfhub.services.scheduling import initiate_for_period, reminders_due, timing_for

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    run_date: date
    tasks_executed: int = 0
    tasks_failed: int = 0
    evaluations_created: int = 0
    reminders_sent: int = 0
    evaluations_closed: int = 0
    appraisals_closed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


def _execute_pending_tasks(
    db: Session, today: date, summary: RunSummary, company_id: uuid.UUID | None = None
) -> None:
    q = (
        db.query(ScheduledAppraisalTask.id)
        .join(InitiatedAppraisal, InitiatedAppraisal.id == ScheduledAppraisalTask.initiated_appraisal_id)
        .filter(
            ScheduledAppraisalTask.status == "pending",
            ScheduledAppraisalTask.scheduled_date <= today,
            InitiatedAppraisal.status == "active",
        )
    )
    if company_id is not None:
        q = q.filter(InitiatedAppraisal.company_id == company_id)
    task_ids = [row[0] for row in q.order_by(ScheduledAppraisalTask.scheduled_date).all()]

    # each task commits on its own so one bad period does not undo the others
    for task_id in task_ids:
        task = db.get(ScheduledAppraisalTask, task_id)
        try:
            appraisal = db.get(InitiatedAppraisal, task.initiated_appraisal_id)
            detail = db.get(FrequencyCalendarDetails, task.frequency_calendar_detail_id)
            if appraisal is None or detail is None:
                raise NotFoundError("Appraisal or calendar period no longer exists")
            result = initiate_for_period(db, appraisal, detail)
            task.status = "completed"
            task.executed_at = utcnow()
            task.error = None
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception("Scheduled appraisal task failed", extra={"task_id": str(task_id)})
            task = db.get(ScheduledAppraisalTask, task_id)
            task.status = "failed"
            task.executed_at = utcnow()
            task.error = f"{type(exc).__name__}: {exc}"
            db.commit()
            summary.tasks_failed += 1
            continue

        summary.tasks_executed += 1
        summary.evaluations_created += len(result.created)


def _send_reminders(db: Session, today: date, summary: RunSummary, company_id: uuid.UUID | None = None) -> None:
    q = (
        db.query(Evaluation)
        .join(InitiatedAppraisal, InitiatedAppraisal.id == Evaluation.initiated_appraisal_id)
        .filter(
            Evaluation.status.in_(OPEN_STATUSES),
            Evaluation.due_date >= today,
            InitiatedAppraisal.status == "active",
        )
    )
    if company_id is not None:
        q = q.filter(InitiatedAppraisal.company_id == company_id)
    rows = q.all()

    for ev in rows:
        timing = timing_for(ev.appraisal, ev.frequency_calendar_detail_id)
        due = reminders_due(ev.initiated_on, timing, today)
        if due <= ev.reminders_sent:
            continue

        # one email per run even if several reminder dates were missed
        notify_reminder(db, ev)
        ev.reminders_sent = due
        ev.last_reminder_at = utcnow()
        summary.reminders_sent += 1
    db.commit()


def _close_overdue(db: Session, today: date, summary: RunSummary, company_id: uuid.UUID | None = None) -> None:
    overdue_q = db.query(Evaluation).filter(Evaluation.status.in_(OPEN_STATUSES), Evaluation.due_date < today)
    active_q = db.query(InitiatedAppraisal).filter(InitiatedAppraisal.status == "active")
    if company_id is not None:
        overdue_q = overdue_q.filter(Evaluation.company_id == company_id)
        active_q = active_q.filter(InitiatedAppraisal.company_id == company_id)

    overdue = overdue_q.all()
    for ev in overdue:
        ev.status = "closed"
        summary.evaluations_closed += 1
    db.flush()

    for appraisal in active_q.all():
        pending = (
            db.query(ScheduledAppraisalTask)
            .filter(
                ScheduledAppraisalTask.initiated_appraisal_id == appraisal.id,
                ScheduledAppraisalTask.status == "pending",
            )
            .count()
        )
        if pending:
            continue

        still_open = (
            db.query(Evaluation)
            .filter(
                Evaluation.initiated_appraisal_id == appraisal.id,
                Evaluation.status.notin_(TERMINAL_STATUSES),
            )
            .count()
        )
        if still_open:
            continue

        appraisal.status = "closed"
        appraisal.closed_at = utcnow()
        summary.appraisals_closed += 1
        logger.info("Appraisal closed", extra={"initiated_appraisal_id": str(appraisal.id)})
    db.commit()


def run_due_tasks(db: Session, today: date | None = None, company_id: uuid.UUID | None = None) -> RunSummary:
    """
    One polling pass, over every company or only `company_id`:
      1. execute pending scheduled tasks due on or before `today`
      2. send reminders whose date has been reached
      3. close overdue evaluations, then appraisals with nothing left to do
    """
    today = today or utc_today()
    summary = RunSummary(run_date=today)

    _execute_pending_tasks(db, today, summary, company_id)
    _send_reminders(db, today, summary, company_id)
    _close_overdue(db, today, summary, company_id)

    logger.info("Scheduler pass finished", extra=summary.as_dict())
    return summary
