from fastapi import APIRouter, Depends, Query, status
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
from perfhub.models.calendar import ReviewFrequency
from perfhub.models.org_structure import Department, Grade, Level
from perfhub.models.user import User
from perfhub.schemas.org_structure import MasterDataCreate, MasterDataOut, MasterDataUpdate
from perfhub.schemas.pagination import paginate


def to_out(o) -> MasterDataOut:
    return MasterDataOut(
        id=str(o.id),
        company_id=str(o.company_id),
        code=o.code,
        description=o.description,
        status=o.status,
        created_at=o.created_at,
        updated_at=o.updated_at,
    )


def build_master_data_router(model, *, prefix: str, tag: str, label: str, entity_type: str) -> APIRouter:
    """
    CRUD router for the code/description/status tables.
    Admins write; admins and HR managers read.
    """
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.get("")
    def list_items(
        search: str | None = Query(default=None, description="Search by code or description"),
        status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
        limit: int = Query(default=100, ge=1, le=500),
        offset: int = Query(default=0, ge=0),
        include_pagination: bool = Query(default=False, description="Include pagination metadata"),
        db: Session = Depends(get_db),
        current_user: User = Depends(require_roles("admin", "hr_manager")),
    ):
        q = scoped(db, model, current_user)
        if search:
            term = f"%{search.lower()}%"
            q = q.filter(or_(model.code.ilike(term), model.description.ilike(term)))
        if status:
            q = q.filter(model.status == status)

        return paginate(
            q,
            limit=limit,
            offset=offset,
            include_pagination=include_pagination,
            to_out=to_out,
            order_by=model.code,
        )

    @router.get("/{item_id}", response_model=MasterDataOut)
    def get_item(
        item_id: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_roles("admin", "hr_manager")),
    ):
        return to_out(get_scoped_or_404(db, model, item_id, current_user, label))

    @router.post("", response_model=MasterDataOut, status_code=status.HTTP_201_CREATED)
    def create_item(
        payload: MasterDataCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_roles("admin")),
    ):
        company_id = require_company(current_user)
        ensure_code_available(db, model, company_id, payload.code)

        o = model(
            company_id=company_id,
            code=payload.code,
            description=payload.description,
            status=payload.status,
            created_by_user_id=current_user.id,
        )
        db.add(o)
        db.flush()

        log_event(
            db=db,
            actor=current_user,
            action=f"{entity_type.upper()}_CREATED",
            entity_type=entity_type,
            entity_id=o.id,
            metadata={"code": o.code},
        )

        db.commit()
        db.refresh(o)
        return to_out(o)

    @router.patch("/{item_id}", response_model=MasterDataOut)
    def update_item(
        item_id: str,
        payload: MasterDataUpdate,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_roles("admin")),
    ):
        o = get_scoped_or_404(db, model, item_id, current_user, label)

        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "code" in changes and changes["code"] != o.code:
            ensure_code_available(db, model, o.company_id, changes["code"], exclude_id=o.id)

        for field, value in changes.items():
            setattr(o, field, value)

        log_event(
            db=db,
            actor=current_user,
            action=f"{entity_type.upper()}_UPDATED",
            entity_type=entity_type,
            entity_id=o.id,
            metadata={"changes": changes},
        )

        db.commit()
        db.refresh(o)
        return to_out(o)

    @router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_item(
        item_id: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_roles("admin")),
    ):
        o = get_scoped_or_404(db, model, item_id, current_user, label)
        entity_id, code = o.id, o.code

        delete_or_409(db, o, label)

        log_event(
            db=db,
            actor=current_user,
            action=f"{entity_type.upper()}_DELETED",
            entity_type=entity_type,
            entity_id=entity_id,
            metadata={"code": code},
        )
        db.commit()

    return router


levels_router = build_master_data_router(
    Level, prefix="/levels", tag="levels", label="Level", entity_type="level"
)
grades_router = build_master_data_router(
    Grade, prefix="/grades", tag="grades", label="Grade", entity_type="grade"
)
departments_router = build_master_data_router(
    Department, prefix="/departments", tag="departments", label="Department", entity_type="department"
)
review_frequencies_router = build_master_data_router(
    ReviewFrequency,
    prefix="/review-frequencies",
    tag="review-frequencies",
    label="Review frequency",
    entity_type="review_frequency",
)
