from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from perfhub.api.initiated_appraisals import task_to_out
from perfhub.core.audit import log_event
from perfhub.core.clock import today
from perfhub.core.rbac import get_active_role, require_roles
from perfhub.core.tenancy import parse_uuid, require_company
from perfhub.db.session import get_db
from perfhub.models.initiated_appraisal import InitiatedAppraisal, ScheduledAppraisalTask
from perfhub.models.user import User
from perfhub.schemas.initiated_appraisal import RunTasksOut
from perfhub.schemas.pagination import paginate
from perfhub.services.scheduler import run_due_tasks

router = APIRouter(prefix="/scheduled-tasks", tags=["scheduled-tasks"])


@router.get("")
def list_scheduled_tasks(
    status: str | None = Query(default=None, description="Filter by status (pending, completed, failed, cancelled)"),
    initiated_appraisal_id: str | None = Query(default=None),
    due_on_or_before: date | None = Query(default=None, description="Only tasks scheduled on or before this date"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    q = db.query(ScheduledAppraisalTask).join(
        InitiatedAppraisal, InitiatedAppraisal.id == ScheduledAppraisalTask.initiated_appraisal_id
    )
    if active_role != "super_admin":
        q = q.filter(InitiatedAppraisal.company_id == current_user.company_id)

    if status:
        q = q.filter(ScheduledAppraisalTask.status == status)
    if initiated_appraisal_id:
        q = q.filter(
            ScheduledAppraisalTask.initiated_appraisal_id == parse_uuid(initiated_appraisal_id, "Initiated appraisal")
        )
    if due_on_or_before:
        q = q.filter(ScheduledAppraisalTask.scheduled_date <= due_on_or_before)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=task_to_out,
        order_by=ScheduledAppraisalTask.scheduled_date,
    )


@router.post("/run", response_model=RunTasksOut)
def run_scheduled_tasks(
    run_date: date | None = Query(default=None, description="Run as of this date (defaults to today, UTC)"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin", "hr_manager")),
    active_role: str = Depends(get_active_role),
):
    """
    Trigger one scheduler pass now. Super admins run it for every company, the
    same as the background scheduler process does. Company admins and HR
    managers only run their own company, and not ahead of today.
    """
    company_id = None
    if active_role != "super_admin":
        company_id = require_company(current_user)
        if run_date and run_date > today():
            raise HTTPException(status_code=422, detail="run_date cannot be in the future")

    summary = run_due_tasks(db, run_date, company_id=company_id)

    log_event(
        db=db,
        actor=current_user,
        action="SCHEDULER_RUN",
        entity_type="scheduler",
        entity_id=current_user.id,
        metadata={k: str(v) if isinstance(v, date) else v for k, v in summary.as_dict().items()},
    )
    db.commit()

    return RunTasksOut(**summary.as_dict())
