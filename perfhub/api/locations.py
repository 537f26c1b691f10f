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
from perfhub.models.org_structure import Location
from perfhub.models.user import User
from perfhub.schemas.org_structure import LocationCreate, LocationOut, LocationUpdate
from perfhub.schemas.pagination import paginate

router = APIRouter(prefix="/locations", tags=["locations"])


def to_out(loc: Location) -> LocationOut:
    return LocationOut(
        id=str(loc.id),
        company_id=str(loc.company_id),
        code=loc.code,
        name=loc.name,
        state=loc.state,
        country=loc.country,
        status=loc.status,
        created_at=loc.created_at,
        updated_at=loc.updated_at,
    )


@router.get("")
def list_locations(
    search: str | None = Query(default=None, description="Search by code, name, state or country"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    q = scoped(db, Location, current_user)
    if search:
        term = f"%{search.lower()}%"
        q = q.filter(
            or_(
                Location.code.ilike(term),
                Location.name.ilike(term),
                Location.state.ilike(term),
                Location.country.ilike(term),
            )
        )
    if status:
        q = q.filter(Location.status == status)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=Location.name,
    )


@router.get("/{location_id}", response_model=LocationOut)
def get_location(
    location_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin", "hr_manager")),
):
    return to_out(get_scoped_or_404(db, Location, location_id, current_user, "Location"))


@router.post("", response_model=LocationOut, status_code=status.HTTP_201_CREATED)
def create_location(
    payload: LocationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    company_id = require_company(current_user)
    ensure_code_available(db, Location, company_id, payload.code)

    loc = Location(company_id=company_id, created_by_user_id=current_user.id, **payload.model_dump())
    db.add(loc)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="LOCATION_CREATED",
        entity_type="location",
        entity_id=loc.id,
        metadata={"code": loc.code, "name": loc.name},
    )

    db.commit()
    db.refresh(loc)
    return to_out(loc)


@router.patch("/{location_id}", response_model=LocationOut)
def update_location(
    location_id: str,
    payload: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    loc = get_scoped_or_404(db, Location, location_id, current_user, "Location")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "code" in changes and changes["code"] != loc.code:
        ensure_code_available(db, Location, loc.company_id, changes["code"], exclude_id=loc.id)

    for field, value in changes.items():
        setattr(loc, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="LOCATION_UPDATED",
        entity_type="location",
        entity_id=loc.id,
        metadata={"changes": changes},
    )

    db.commit()
    db.refresh(loc)
    return to_out(loc)


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_location(
    location_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("admin")),
):
    loc = get_scoped_or_404(db, Location, location_id, current_user, "Location")
    entity_id, code = loc.id, loc.code

    delete_or_409(db, loc, "Location")

    log_event(
        db=db,
        actor=current_user,
        action="LOCATION_DELETED",
        entity_type="location",
        entity_id=entity_id,
        metadata={"code": code},
    )
    db.commit()
