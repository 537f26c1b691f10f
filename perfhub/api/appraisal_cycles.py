from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import (
    delete_or_409,
    ensure_code_available,
    get_scoped_or_404,
    require_company,
    scoped,
)
from perfhub.db.session import get_db
from perfhub.models.calendar import AppraisalCycle
from perfhub.models.user import User
from perfhub.schemas.calendar import AppraisalCycleCreate, AppraisalCycleOut, AppraisalCycleUpdate
from perfhub.schemas.pagination import paginate

router = APIRouter(prefix="/appraisal-cycles", tags=["appraisal-cycles"])


def to_out(c: AppraisalCycle) -> AppraisalCycleOut:
    return AppraisalCycleOut(
        id=str(c.id),
        company_id=str(c.company_id),
        code=c.code,
        description=c.description,
        from_date=c.from_date,
        to_date=c.to_date,
        status=c.status,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


@router.get("")
def list_appraisal_cycles(
    search: str | None = Query(default=None, description="Search by code or description"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    q = scoped(db, AppraisalCycle, current_user)
    if search:
        term = f"%{search.lower()}%"
        q = q.filter(or_(AppraisalCycle.code.ilike(term), AppraisalCycle.description.ilike(term)))
    if status:
        q = q.filter(AppraisalCycle.status == status)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=AppraisalCycle.from_date.desc(),
    )


@router.get("/{cycle_id}", response_model=AppraisalCycleOut)
def get_appraisal_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    return to_out(get_scoped_or_404(db, AppraisalCycle, cycle_id, current_user, "Appraisal cycle"))


@router.post("", response_model=AppraisalCycleOut, status_code=status.HTTP_201_CREATED)
def create_appraisal_cycle(
    payload: AppraisalCycleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    company_id = require_company(current_user)
    ensure_code_available(db, AppraisalCycle, company_id, payload.code)

    c = AppraisalCycle(company_id=company_id, created_by_user_id=current_user.id, **payload.model_dump())
    db.add(c)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_CYCLE_CREATED",
        entity_type="appraisal_cycle",
        entity_id=c.id,
        metadata={
            "code": c.code,
            "from_date": str(c.from_date),
            "to_date": str(c.to_date),
        },
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.patch("/{cycle_id}", response_model=AppraisalCycleOut)
def update_appraisal_cycle(
    cycle_id: str,
    payload: AppraisalCycleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    c = get_scoped_or_404(db, AppraisalCycle, cycle_id, current_user, "Appraisal cycle")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "code" in changes and changes["code"] != c.code:
        ensure_code_available(db, AppraisalCycle, c.company_id, changes["code"], exclude_id=c.id)

    from_date = changes.get("from_date", c.from_date)
    to_date = changes.get("to_date", c.to_date)
    if to_date < from_date:
        raise HTTPException(status_code=422, detail="to_date must be on or after from_date")

    before = {"from_date": str(c.from_date), "to_date": str(c.to_date), "status": c.status}
    for field, value in changes.items():
        setattr(c, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_CYCLE_UPDATED",
        entity_type="appraisal_cycle",
        entity_id=c.id,
        metadata={
            "before": before,
            "after": {"from_date": str(c.from_date), "to_date": str(c.to_date), "status": c.status},
        },
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.delete("/{cycle_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appraisal_cycle(
    cycle_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    c = get_scoped_or_404(db, AppraisalCycle, cycle_id, current_user, "Appraisal cycle")
    entity_id, code = c.id, c.code

    delete_or_409(db, c, "Appraisal cycle")

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_CYCLE_DELETED",
        entity_type="appraisal_cycle",
        entity_id=entity_id,
        metadata={"code": code},
    )
    db.commit()
