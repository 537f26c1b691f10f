import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import get_active_role, get_user_role_names, require_roles, set_user_roles
from perfhub.core.tenancy import delete_or_409, parse_uuid
from perfhub.db.session import get_db
from perfhub.models.company import Company
from perfhub.models.org_structure import Department, Grade, Level, Location
from perfhub.models.user import User
from perfhub.schemas.pagination import paginate
from perfhub.schemas.user import UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])

REFERENCE_FIELDS = {
    "department_id": (Department, "Department"),
    "location_id": (Location, "Location"),
    "level_id": (Level, "Level"),
    "grade_id": (Grade, "Grade"),
}


def to_out(db: Session, u: User) -> UserOut:
    def _s(v):
        return str(v) if v else None

    return UserOut(
        id=str(u.id),
        email=u.email,
        first_name=u.first_name,
        last_name=u.last_name,
        full_name=u.full_name,
        code=u.code,
        designation=u.designation,
        date_of_joining=u.date_of_joining,
        mobile_number=u.mobile_number,
        company_id=_s(u.company_id),
        reporting_manager_id=_s(u.reporting_manager_id),
        department_id=_s(u.department_id),
        location_id=_s(u.location_id),
        level_id=_s(u.level_id),
        grade_id=_s(u.grade_id),
        role=u.role,
        roles=sorted(get_user_role_names(db, u)),
        status=u.status,
        created_at=u.created_at,
        updated_at=u.updated_at,
    )


def _visible_user_or_404(db: Session, user_id: str, current_user: User, active_role: str) -> User:
    u = db.get(User, parse_uuid(user_id, "User"))
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    if active_role != "super_admin" and u.company_id != current_user.company_id:
        raise HTTPException(status_code=404, detail="User not found")
    return u


def _resolve_references(db: Session, company_id: uuid.UUID | None, data: dict) -> dict:
    """Turn id strings into UUIDs, checking each target lives in the same company."""
    resolved = {}
    for field, (model, label) in REFERENCE_FIELDS.items():
        if field not in data:
            continue
        raw = data[field]
        if raw is None:
            resolved[field] = None
            continue
        obj = db.get(model, parse_uuid(raw, label))
        if not obj or obj.company_id != company_id:
            raise HTTPException(status_code=422, detail=f"{label} does not belong to this company")
        resolved[field] = obj.id

    if "reporting_manager_id" in data:
        raw = data["reporting_manager_id"]
        if raw is None:
            resolved["reporting_manager_id"] = None
        else:
            mgr = db.get(User, parse_uuid(raw, "Reporting manager"))
            if not mgr or mgr.company_id != company_id:
                raise HTTPException(status_code=422, detail="Reporting manager does not belong to this company")
            resolved["reporting_manager_id"] = mgr.id
    return resolved


def _check_grantable(active_role: str, roles: set[str]) -> None:
    if active_role != "super_admin" and "super_admin" in roles:
        raise HTTPException(status_code=403, detail="Only super admins can grant the super_admin role")


@router.get("")
def list_users(
    search: str | None = Query(default=None, description="Search by name, email or employee code"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    role: str | None = Query(default=None, description="Filter by primary role"),
    company_id: str | None = Query(default=None, description="Filter by company (super admin only)"),
    department_id: str | None = Query(default=None),
    reporting_manager_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    q = db.query(User)
    if active_role == "super_admin":
        if company_id:
            q = q.filter(User.company_id == parse_uuid(company_id, "Company"))
    else:
        q = q.filter(User.company_id == current_user.company_id)

    if search:
        term = f"%{search.lower()}%"
        q = q.filter(
            or_(
                User.email.ilike(term),
                User.first_name.ilike(term),
                User.last_name.ilike(term),
                User.code.ilike(term),
            )
        )
    if status:
        q = q.filter(User.status == status)
    if role:
        q = q.filter(User.role == role)
    if department_id:
        q = q.filter(User.department_id == parse_uuid(department_id, "Department"))
    if reporting_manager_id:
        q = q.filter(User.reporting_manager_id == parse_uuid(reporting_manager_id, "User"))

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=lambda u: to_out(db, u),
        order_by=User.email,
    )


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    return to_out(db, _visible_user_or_404(db, user_id, current_user, active_role))


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    # admins always create users inside their own company
    if active_role == "super_admin" and payload.company_id:
        company = db.get(Company, parse_uuid(payload.company_id, "Company"))
        if not company:
            raise HTTPException(status_code=404, detail="Company not found")
        company_id = company.id
    else:
        company_id = current_user.company_id

    _check_grantable(active_role, set(payload.roles))

    if db.query(User.id).filter(User.email == payload.email).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")

    data = payload.model_dump(exclude={"company_id", "roles"})
    data.update(_resolve_references(db, company_id, data))

    u = User(company_id=company_id, created_by_user_id=current_user.id, **data)
    db.add(u)
    db.flush()
    set_user_roles(db, u, set(payload.roles))

    log_event(
        db=db,
        actor=current_user,
        action="USER_CREATED",
        entity_type="user",
        entity_id=u.id,
        company_id=company_id,
        metadata={"email": u.email, "role": u.role, "roles": sorted(payload.roles)},
    )

    db.commit()
    db.refresh(u)
    return to_out(db, u)


@router.patch("/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    u = _visible_user_or_404(db, user_id, current_user, active_role)

    changes = payload.model_dump(exclude_unset=True, exclude={"roles"})
    # nullable references may be cleared explicitly; other fields ignore nulls
    changes = {
        k: v
        for k, v in changes.items()
        if v is not None or k in REFERENCE_FIELDS or k == "reporting_manager_id"
    }
    if changes.get("reporting_manager_id") == str(u.id):
        raise HTTPException(status_code=422, detail="A user cannot report to themselves")

    changes.update(_resolve_references(db, u.company_id, changes))

    new_roles = set(payload.roles) if payload.roles is not None else None
    if "role" in changes or new_roles is not None:
        _check_grantable(active_role, (new_roles or set()) | {changes.get("role", u.role)})

    for field, value in changes.items():
        setattr(u, field, value)
    db.flush()

    if new_roles is not None:
        set_user_roles(db, u, new_roles)
    elif "role" in changes:
        set_user_roles(db, u, get_user_role_names(db, u))

    log_event(
        db=db,
        actor=current_user,
        action="USER_UPDATED",
        entity_type="user",
        entity_id=u.id,
        company_id=u.company_id,
        metadata={
            "changes": {k: (str(v) if v is not None else None) for k, v in changes.items()},
            "roles": sorted(new_roles) if new_roles is not None else None,
        },
    )

    db.commit()
    db.refresh(u)
    return to_out(db, u)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin", "admin")),
    active_role: str = Depends(get_active_role),
):
    u = _visible_user_or_404(db, user_id, current_user, active_role)
    if u.id == current_user.id:
        raise HTTPException(status_code=409, detail="You cannot delete your own account")
    entity_id, email, company_id = u.id, u.email, u.company_id

    delete_or_409(db, u, "User")

    log_event(
        db=db,
        actor=current_user,
        action="USER_DELETED",
        entity_type="user",
        entity_id=entity_id,
        company_id=company_id,
        metadata={"email": email},
    )
    db.commit()
