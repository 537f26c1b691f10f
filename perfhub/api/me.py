from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from perfhub.api.evaluations import eval_to_out
from perfhub.core.rbac import get_active_role, get_user_role_names
from perfhub.core.security import get_current_user
from perfhub.db.session import get_db
from perfhub.models.company import Company
from perfhub.models.evaluation import Evaluation
from perfhub.models.user import User
from perfhub.schemas.evaluation import EvaluationOut

router = APIRouter(tags=["auth"])


@router.get("/me")
def me(
    current_user: User = Depends(get_current_user),
    active_role: str = Depends(get_active_role),
    db: Session = Depends(get_db),
):
    """Current user, the roles they can switch between and the one in effect."""
    company = db.get(Company, current_user.company_id) if current_user.company_id else None
    return {
        "id": str(current_user.id),
        "email": current_user.email,
        "full_name": current_user.full_name,
        "company_id": str(company.id) if company else None,
        "company_name": company.name if company else None,
        "company_url": company.company_url if company else None,
        "role": current_user.role,
        "roles": sorted(get_user_role_names(db, current_user)),
        "active_role": active_role,
        "reporting_manager_id": str(current_user.reporting_manager_id) if current_user.reporting_manager_id else None,
        "is_active": current_user.is_active,
    }


@router.get("/me/evaluations", response_model=list[EvaluationOut])
def my_evaluations(
    status: str | None = Query(default=None, description="Filter by status"),
    role: str | None = Query(default=None, description="Filter by my part: employee or manager"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Evaluations where the current user is the employee or the reporting manager.
    """
    query = db.query(Evaluation)

    if role == "employee":
        query = query.filter(Evaluation.employee_id == current_user.id)
    elif role == "manager":
        query = query.filter(Evaluation.manager_id == current_user.id)
    else:
        query = query.filter(
            (Evaluation.employee_id == current_user.id) | (Evaluation.manager_id == current_user.id)
        )

    if status:
        query = query.filter(Evaluation.status == status)

    evaluations = query.order_by(Evaluation.due_date.desc()).offset(offset).limit(limit).all()
    return [eval_to_out(e, current_user) for e in evaluations]
