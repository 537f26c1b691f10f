from datetime import date

import requests
from sqlalchemy.orm import Session

from perfhub.core.rbac import set_user_roles
from perfhub.models.appraisal_group import AppraisalGroup, AppraisalGroupMember
from perfhub.models.audit_event import AuditEvent
from perfhub.models.calendar import (
    AppraisalCycle,
    FrequencyCalendar,
    FrequencyCalendarDetails,
    ReviewFrequency,
)
from perfhub.models.company import Company
from perfhub.models.initiated_appraisal import InitiatedAppraisal
from perfhub.models.questionnaire import QuestionnaireTemplate
from perfhub.models.user import User

DEFAULT_QUESTIONS = [
    {"id": "q1", "text": "Rate your quarter", "type": "rating", "required": True, "min": 1, "max": 5},
    {"id": "q2", "text": "Anything else?", "type": "text", "required": False},
]


def headers(user: User | str, role: str | None = None) -> dict:
    email = user if isinstance(user, str) else user.email
    h = {"X-User-Email": email}
    if role:
        h["X-Active-Role"] = role
    return h


def create_company(db: Session, name="Acme Corp", company_url="acme", status="active") -> Company:
    c = Company(name=name, company_url=company_url, email=f"contact@{company_url}.test", status=status)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def create_user(
    db: Session,
    email: str,
    *,
    company: Company | None = None,
    role: str = "employee",
    roles: set[str] | None = None,
    manager: User | None = None,
    first_name: str | None = None,
    **fields,
) -> User:
    u = User(
        email=email,
        first_name=first_name or email.split("@")[0].title(),
        last_name="Test",
        role=role,
        status=fields.pop("status", "active"),
        company_id=company.id if company else None,
        reporting_manager_id=manager.id if manager else None,
        **fields,
    )
    db.add(u)
    db.flush()
    set_user_roles(db, u, {role} | (roles or set()))
    db.commit()
    db.refresh(u)
    return u


def create_calendar(
    db: Session,
    company: Company,
    periods: list[tuple[str, date, date]],
    code: str = "QTR-2030",
) -> tuple[FrequencyCalendar, list[FrequencyCalendarDetails]]:
    first, last = periods[0][1], periods[-1][2]
    cycle = AppraisalCycle(
        company_id=company.id, code=f"FY-{code}", description="Financial year", from_date=first, to_date=last
    )
    freq = ReviewFrequency(company_id=company.id, code=f"F-{code}", description="Quarterly")
    db.add_all([cycle, freq])
    db.flush()

    cal = FrequencyCalendar(
        company_id=company.id,
        code=code,
        description="Quarterly reviews",
        appraisal_cycle_id=cycle.id,
        review_frequency_id=freq.id,
    )
    db.add(cal)
    db.flush()

    details = []
    for name, start, end in periods:
        d = FrequencyCalendarDetails(
            company_id=company.id,
            frequency_calendar_id=cal.id,
            display_name=name,
            start_date=start,
            end_date=end,
        )
        db.add(d)
        details.append(d)
    db.commit()
    return cal, details


def create_template(
    db: Session,
    company: Company | None,
    name: str = "Quarterly review",
    questions: list[dict] | None = None,
    **fields,
) -> QuestionnaireTemplate:
    t = QuestionnaireTemplate(
        company_id=company.id if company else None,
        name=name,
        target_role=fields.pop("target_role", "employee"),
        questions=DEFAULT_QUESTIONS if questions is None else questions,
        status=fields.pop("status", "active"),
        **fields,
    )
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


def create_group(
    db: Session, company: Company, members: list[User], name: str = "Engineering", status="active"
) -> AppraisalGroup:
    g = AppraisalGroup(company_id=company.id, name=name, status=status)
    for u in members:
        g.members.append(AppraisalGroupMember(user_id=u.id, user=u))
    db.add(g)
    db.commit()
    db.refresh(g)
    return g


def create_appraisal(
    db: Session,
    company: Company,
    group: AppraisalGroup,
    templates: list[QuestionnaireTemplate],
    **fields,
) -> InitiatedAppraisal:
    """Stored directly; launching is left to the caller."""
    a = InitiatedAppraisal(
        company_id=company.id,
        appraisal_group_id=group.id,
        appraisal_type=fields.pop("appraisal_type", "questionnaire_based"),
        questionnaire_template_ids=[str(t.id) for t in templates],
        status=fields.pop("status", "draft"),
        days_to_initiate=fields.pop("days_to_initiate", 0),
        days_to_close=fields.pop("days_to_close", 30),
        number_of_reminders=fields.pop("number_of_reminders", 3),
        **fields,
    )
    a.group = group
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


def count_audit(db: Session, action: str, entity_id=None) -> int:
    q = db.query(AuditEvent).filter(AuditEvent.action == action)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    return q.count()


class FakeResponse:
    """Just enough of requests.Response for the calendar client."""

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")
