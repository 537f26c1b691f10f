"""
Appraisal initiation.

For every calendar period an appraisal works out three things:

  initiate_on = max(period start, period end - days_to_initiate)
  close_on    = initiate_on + days_to_close
  reminder i  = initiate_on + floor(i * days_to_close / (N + 1)),  i = 1..N

Timing comes from the per-period InitiatedAppraisalDetailTiming row when one
exists, otherwise from the appraisal's own defaults.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy.orm import Session

from perfhub.core.clock import utcnow
from perfhub.core.exceptions import ConflictError, ValidationFailed
from perfhub.core.rbac import get_user_role_names
from perfhub.models.appraisal_group import AppraisalGroupMember
from perfhub.models.calendar import FrequencyCalendarDetails
from perfhub.models.evaluation import Evaluation
from perfhub.models.initiated_appraisal import InitiatedAppraisal, ScheduledAppraisalTask
from perfhub.models.questionnaire import QuestionnaireTemplate
from perfhub.models.user import User
from perfhub.services.notifications import notify_appraisal_initiated

logger = logging.getLogger(__name__)

TENURE_DAYS = 365


@dataclass(frozen=True)
class Timing:
    days_to_initiate: int
    days_to_close: int
    number_of_reminders: int


@dataclass(frozen=True)
class Window:
    initiate_on: date
    close_on: date
    reminder_dates: tuple[date, ...]


@dataclass
class Skipped:
    user_id: str
    reason: str


@dataclass
class InitiationResult:
    created: list[Evaluation] = field(default_factory=list)
    already_existing: int = 0
    skipped: list[Skipped] = field(default_factory=list)
    emails_sent: int = 0


@dataclass
class LaunchResult:
    evaluations_created: int = 0
    already_existing: int = 0
    tasks_scheduled: int = 0
    emails_sent: int = 0
    skipped: list[Skipped] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Window arithmetic
# ---------------------------------------------------------------------------

def window_from(initiate_on: date, timing: Timing) -> Window:
    n = timing.number_of_reminders
    reminders = tuple(
        initiate_on + timedelta(days=(i * timing.days_to_close) // (n + 1))
        for i in range(1, n + 1)
    )
    return Window(
        initiate_on=initiate_on,
        close_on=initiate_on + timedelta(days=timing.days_to_close),
        reminder_dates=reminders,
    )


def compute_window(start_date: date, end_date: date, timing: Timing) -> Window:
    initiate_on = max(start_date, end_date - timedelta(days=timing.days_to_initiate))
    return window_from(initiate_on, timing)


def reminders_due(initiated_on: date, timing: Timing, today: date) -> int:
    """How many reminders should have gone out by `today`."""
    return sum(1 for d in window_from(initiated_on, timing).reminder_dates if d <= today)


def default_timing(appraisal: InitiatedAppraisal) -> Timing:
    return Timing(
        days_to_initiate=appraisal.days_to_initiate,
        days_to_close=appraisal.days_to_close,
        number_of_reminders=appraisal.number_of_reminders,
    )


def timing_for(appraisal: InitiatedAppraisal, detail_id: uuid.UUID | None) -> Timing:
    if detail_id is not None:
        for t in appraisal.detail_timings:
            if t.frequency_calendar_detail_id == detail_id:
                return Timing(
                    days_to_initiate=t.days_to_initiate,
                    days_to_close=t.days_to_close,
                    number_of_reminders=t.number_of_reminders,
                )
    return default_timing(appraisal)


# ---------------------------------------------------------------------------
# Eligibility & questionnaire choice
# ---------------------------------------------------------------------------

def template_applies(template: QuestionnaireTemplate, user: User, role_names: set[str]) -> bool:
    if template.status != "active":
        return False
    if template.applicable_category:
        category = "manager" if "manager" in role_names else "employee"
        if category != template.applicable_category:
            return False
    if template.applicable_level_id and template.applicable_level_id != user.level_id:
        return False
    if template.applicable_grade_id and template.applicable_grade_id != user.grade_id:
        return False
    if template.applicable_location_id and template.applicable_location_id != user.location_id:
        return False
    return True


def pick_template(db: Session, appraisal: InitiatedAppraisal, user: User) -> QuestionnaireTemplate | None:
    """First applicable template, in the order the appraisal lists them."""
    role_names = get_user_role_names(db, user)
    for raw_id in appraisal.questionnaire_template_ids or []:
        template = db.get(QuestionnaireTemplate, uuid.UUID(str(raw_id)))
        if template is None or template.company_id not in (None, appraisal.company_id):
            continue
        if template_applies(template, user, role_names):
            return template
    return None


def eligible_employees(
    db: Session, appraisal: InitiatedAppraisal, on_date: date
) -> tuple[list[User], list[Skipped]]:
    excluded = {str(x) for x in appraisal.excluded_employee_ids or []}

    users: list[User] = []
    skipped: list[Skipped] = []
    members = (
        db.query(User)
        .join(AppraisalGroupMember, AppraisalGroupMember.user_id == User.id)
        .filter(AppraisalGroupMember.appraisal_group_id == appraisal.appraisal_group_id)
        .order_by(User.email)
        .all()
    )
    for u in members:
        if not u.is_active or u.company_id != appraisal.company_id or str(u.id) in excluded:
            continue

        if (
            appraisal.exclude_tenure_less_than_year
            and u.date_of_joining is not None
            and (on_date - u.date_of_joining).days < TENURE_DAYS
        ):
            skipped.append(Skipped(user_id=str(u.id), reason="tenure_less_than_year"))
            continue

        if u.reporting_manager_id is None:
            skipped.append(Skipped(user_id=str(u.id), reason="no_reporting_manager"))
            continue

        users.append(u)
    return users, skipped


# ---------------------------------------------------------------------------
# Initiation
# ---------------------------------------------------------------------------

def initiate_evaluations(
    db: Session,
    appraisal: InitiatedAppraisal,
    *,
    initiate_on: date,
    due_date: date,
    detail_id: uuid.UUID | None = None,
    notify: bool = True,
) -> InitiationResult:
    """
    Create one evaluation per eligible employee for the given period.
    Safe to call again: employees that already have an evaluation are counted, not duplicated.
    """
    result = InitiationResult()
    employees, result.skipped = eligible_employees(db, appraisal, initiate_on)

    q = db.query(Evaluation.employee_id).filter(Evaluation.initiated_appraisal_id == appraisal.id)
    if detail_id is None:
        q = q.filter(Evaluation.frequency_calendar_detail_id.is_(None))
    else:
        q = q.filter(Evaluation.frequency_calendar_detail_id == detail_id)
    existing = {row[0] for row in q.all()}

    for u in employees:
        if u.id in existing:
            result.already_existing += 1
            continue

        template_id = None
        if appraisal.appraisal_type == "questionnaire_based":
            template = pick_template(db, appraisal, u)
            if template is None:
                result.skipped.append(Skipped(user_id=str(u.id), reason="no_applicable_questionnaire"))
                continue
            template_id = template.id

        ev = Evaluation(
            company_id=appraisal.company_id,
            employee_id=u.id,
            manager_id=u.reporting_manager_id,
            initiated_appraisal_id=appraisal.id,
            frequency_calendar_detail_id=detail_id,
            questionnaire_template_id=template_id,
            status="not_started",
            initiated_on=initiate_on,
            due_date=due_date,
            reminders_sent=0,
        )
        ev.employee = u
        ev.manager = u.reporting_manager
        ev.appraisal = appraisal
        db.add(ev)
        result.created.append(ev)

    db.flush()

    if notify:
        for ev in result.created:
            if notify_appraisal_initiated(db, ev).sent:
                result.emails_sent += 1

    logger.info(
        "Evaluations initiated",
        extra={
            "initiated_appraisal_id": str(appraisal.id),
            "frequency_calendar_detail_id": str(detail_id) if detail_id else None,
            "evaluations_created": len(result.created),
            "already_existing": result.already_existing,
            "skipped": len(result.skipped),
        },
    )
    return result


def schedule_calendar_tasks(db: Session, appraisal: InitiatedAppraisal) -> int:
    """One pending task per active period, dated on the period's initiate day."""
    details = (
        db.query(FrequencyCalendarDetails)
        .filter(FrequencyCalendarDetails.frequency_calendar_id == appraisal.frequency_calendar_id)
        .order_by(FrequencyCalendarDetails.start_date)
        .all()
    )

    existing = {
        t.frequency_calendar_detail_id
        for t in db.query(ScheduledAppraisalTask)
        .filter(ScheduledAppraisalTask.initiated_appraisal_id == appraisal.id)
        .all()
    }

    created = 0
    for detail in details:
        if detail.status != "active" or detail.id in existing:
            continue
        window = compute_window(detail.start_date, detail.end_date, timing_for(appraisal, detail.id))
        db.add(
            ScheduledAppraisalTask(
                initiated_appraisal_id=appraisal.id,
                frequency_calendar_detail_id=detail.id,
                scheduled_date=window.initiate_on,
                status="pending",
            )
        )
        created += 1
    db.flush()
    return created


def initiate_for_period(
    db: Session, appraisal: InitiatedAppraisal, detail: FrequencyCalendarDetails
) -> InitiationResult:
    window = compute_window(detail.start_date, detail.end_date, timing_for(appraisal, detail.id))
    return initiate_evaluations(
        db,
        appraisal,
        initiate_on=window.initiate_on,
        due_date=window.close_on,
        detail_id=detail.id,
    )


def launch(db: Session, appraisal: InitiatedAppraisal, today: date) -> LaunchResult:
    """
    Activate an appraisal. "now" initiates one window starting today;
    "as_per_calendar" leaves the work to scheduled tasks.
    """
    if appraisal.status != "draft":
        raise ConflictError(f"Only draft appraisals can be launched (status is {appraisal.status})")
    if appraisal.publish_type == "as_per_calendar" and appraisal.frequency_calendar_id is None:
        raise ValidationFailed("as_per_calendar appraisals need a frequency calendar")

    appraisal.status = "active"
    appraisal.launched_at = utcnow()

    out = LaunchResult()
    if appraisal.publish_type == "as_per_calendar":
        out.tasks_scheduled = schedule_calendar_tasks(db, appraisal)
    else:
        window = window_from(today, default_timing(appraisal))
        result = initiate_evaluations(db, appraisal, initiate_on=today, due_date=window.close_on)
        out.evaluations_created = len(result.created)
        out.already_existing = result.already_existing
        out.emails_sent = result.emails_sent
        out.skipped = result.skipped

    logger.info(
        "Appraisal launched",
        extra={
            "initiated_appraisal_id": str(appraisal.id),
            "publish_type": appraisal.publish_type,
            "evaluations_created": out.evaluations_created,
            "tasks_scheduled": out.tasks_scheduled,
        },
    )
    return out
