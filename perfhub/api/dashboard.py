from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from perfhub.core.clock import today
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import require_company
from perfhub.db.session import get_db
from perfhub.models.appraisal_group import AppraisalGroup
from perfhub.models.company import Company
from perfhub.models.evaluation import OPEN_STATUSES, Evaluation
from perfhub.models.initiated_appraisal import InitiatedAppraisal, ScheduledAppraisalTask
from perfhub.models.registration import Registration
from perfhub.models.user import User
from perfhub.schemas.dashboard import CompanyDashboard, CompanySummary, SuperAdminMetrics

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _count_by_status(db: Session, model, company_id) -> dict[str, int]:
    rows = (
        db.query(model.status, func.count(model.id))
        .filter(model.company_id == company_id)
        .group_by(model.status)
        .all()
    )
    return {s: n for s, n in rows}


@router.get("/super-admin/metrics", response_model=SuperAdminMetrics)
def super_admin_metrics(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("super_admin")),
):
    return SuperAdminMetrics(
        total_companies=db.query(Company).count(),
        active_companies=db.query(Company).filter(Company.status == "active").count(),
        total_users=db.query(User).count(),
        active_users=db.query(User).filter(User.status == "active").count(),
        pending_registrations=db.query(Registration).filter(Registration.status == "pending").count(),
        active_appraisals=db.query(InitiatedAppraisal).filter(InitiatedAppraisal.status == "active").count(),
    )


@router.get("/super-admin/companies", response_model=list[CompanySummary])
def super_admin_companies(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("super_admin")),
):
    users = dict(db.query(User.company_id, func.count(User.id)).group_by(User.company_id).all())
    appraisals = dict(
        db.query(InitiatedAppraisal.company_id, func.count(InitiatedAppraisal.id))
        .filter(InitiatedAppraisal.status == "active")
        .group_by(InitiatedAppraisal.company_id)
        .all()
    )
    return [
        CompanySummary(
            company_id=str(c.id),
            name=c.name,
            status=c.status,
            user_count=users.get(c.id, 0),
            active_appraisals=appraisals.get(c.id, 0),
        )
        for c in db.query(Company).order_by(Company.name).all()
    ]


@router.get("/company", response_model=CompanyDashboard)
def company_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    company_id = require_company(current_user)

    evaluations = _count_by_status(db, Evaluation, company_id)
    total = sum(evaluations.values())
    done = evaluations.get("completed", 0) + evaluations.get("finalized", 0)

    return CompanyDashboard(
        company_id=str(company_id),
        total_employees=db.query(User).filter(User.company_id == company_id).count(),
        active_employees=db.query(User).filter(User.company_id == company_id, User.status == "active").count(),
        appraisal_groups=db.query(AppraisalGroup).filter(AppraisalGroup.company_id == company_id).count(),
        appraisals_by_status=_count_by_status(db, InitiatedAppraisal, company_id),
        evaluations_by_status=evaluations,
        overdue_evaluations=db.query(Evaluation)
        .filter(
            Evaluation.company_id == company_id,
            Evaluation.status.in_(OPEN_STATUSES),
            Evaluation.due_date < today(),
        )
        .count(),
        completion_rate=round(done * 100 / total, 2) if total else 0.0,
        pending_tasks=db.query(ScheduledAppraisalTask)
        .join(InitiatedAppraisal, InitiatedAppraisal.id == ScheduledAppraisalTask.initiated_appraisal_id)
        .filter(InitiatedAppraisal.company_id == company_id, ScheduledAppraisalTask.status == "pending")
        .count(),
    )
