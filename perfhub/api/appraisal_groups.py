from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import delete_or_409, get_scoped_or_404, parse_uuid, require_company, scoped
from perfhub.db.session import get_db
from perfhub.models.appraisal_group import AppraisalGroup, AppraisalGroupMember
from perfhub.models.user import User
from perfhub.schemas.appraisal_group import (
    AddMembersPayload,
    AppraisalGroupCreate,
    AppraisalGroupOut,
    AppraisalGroupUpdate,
    GroupMemberOut,
)
from perfhub.schemas.pagination import paginate

router = APIRouter(prefix="/appraisal-groups", tags=["appraisal-groups"])


def to_out(g: AppraisalGroup, include_members: bool = True) -> AppraisalGroupOut:
    members = sorted(g.members, key=lambda m: m.user.email)
    return AppraisalGroupOut(
        id=str(g.id),
        company_id=str(g.company_id),
        name=g.name,
        description=g.description,
        status=g.status,
        member_count=len(members),
        members=[
            GroupMemberOut(
                user_id=str(m.user_id),
                email=m.user.email,
                full_name=m.user.full_name,
                code=m.user.code,
                status=m.user.status,
                added_at=m.added_at,
            )
            for m in members
        ]
        if include_members
        else [],
        created_at=g.created_at,
        updated_at=g.updated_at,
    )


def _company_users_or_422(db: Session, company_id, user_ids: list[str]) -> list[User]:
    users = []
    for raw in dict.fromkeys(user_ids):
        u = db.get(User, parse_uuid(raw, "User"))
        if not u or u.company_id != company_id:
            raise HTTPException(status_code=422, detail=f"User {raw} does not belong to this company")
        users.append(u)
    return users


def _add_members(g: AppraisalGroup, users: list[User], added_by: User) -> list[User]:
    existing = {m.user_id for m in g.members}
    added = []
    for u in users:
        if u.id in existing:
            continue
        g.members.append(AppraisalGroupMember(user_id=u.id, user=u, added_by_user_id=added_by.id))
        added.append(u)
    return added


@router.get("")
def list_appraisal_groups(
    search: str | None = Query(default=None, description="Search by group name"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    include_members: bool = Query(default=False, description="Include the member list for each group"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    q = scoped(db, AppraisalGroup, current_user)
    if search:
        q = q.filter(AppraisalGroup.name.ilike(f"%{search.lower()}%"))
    if status:
        q = q.filter(AppraisalGroup.status == status)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=lambda g: to_out(g, include_members=include_members),
        order_by=AppraisalGroup.name,
    )


@router.get("/{group_id}", response_model=AppraisalGroupOut)
def get_appraisal_group(
    group_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    return to_out(get_scoped_or_404(db, AppraisalGroup, group_id, current_user, "Appraisal group"))


@router.post("", response_model=AppraisalGroupOut, status_code=status.HTTP_201_CREATED)
def create_appraisal_group(
    payload: AppraisalGroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    company_id = require_company(current_user)
    users = _company_users_or_422(db, company_id, payload.member_ids)

    g = AppraisalGroup(
        company_id=company_id,
        name=payload.name,
        description=payload.description,
        status=payload.status,
        created_by_user_id=current_user.id,
    )
    db.add(g)
    _add_members(g, users, current_user)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_GROUP_CREATED",
        entity_type="appraisal_group",
        entity_id=g.id,
        metadata={"name": g.name, "members": len(users)},
    )

    db.commit()
    db.refresh(g)
    return to_out(g)


@router.patch("/{group_id}", response_model=AppraisalGroupOut)
def update_appraisal_group(
    group_id: str,
    payload: AppraisalGroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    g = get_scoped_or_404(db, AppraisalGroup, group_id, current_user, "Appraisal group")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(g, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_GROUP_UPDATED",
        entity_type="appraisal_group",
        entity_id=g.id,
        metadata={"changes": changes},
    )

    db.commit()
    db.refresh(g)
    return to_out(g)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appraisal_group(
    group_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    g = get_scoped_or_404(db, AppraisalGroup, group_id, current_user, "Appraisal group")
    entity_id, name = g.id, g.name

    delete_or_409(db, g, "Appraisal group")

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_GROUP_DELETED",
        entity_type="appraisal_group",
        entity_id=entity_id,
        metadata={"name": name},
    )
    db.commit()


@router.post("/{group_id}/members", response_model=AppraisalGroupOut)
def add_group_members(
    group_id: str,
    payload: AddMembersPayload,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    g = get_scoped_or_404(db, AppraisalGroup, group_id, current_user, "Appraisal group")
    users = _company_users_or_422(db, g.company_id, payload.user_ids)

    added = _add_members(g, users, current_user)
    db.flush()

    if added:
        log_event(
            db=db,
            actor=current_user,
            action="APPRAISAL_GROUP_MEMBERS_ADDED",
            entity_type="appraisal_group",
            entity_id=g.id,
            metadata={"user_ids": [str(u.id) for u in added]},
        )

    db.commit()
    db.refresh(g)
    return to_out(g)


@router.delete("/{group_id}/members/{user_id}", response_model=AppraisalGroupOut)
def remove_group_member(
    group_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("hr_manager")),
):
    g = get_scoped_or_404(db, AppraisalGroup, group_id, current_user, "Appraisal group")
    uid = parse_uuid(user_id, "Group member")

    member = next((m for m in g.members if m.user_id == uid), None)
    if member is None:
        raise HTTPException(status_code=404, detail="Group member not found")

    g.members.remove(member)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="APPRAISAL_GROUP_MEMBER_REMOVED",
        entity_type="appraisal_group",
        entity_id=g.id,
        metadata={"user_id": str(uid)},
    )

    db.commit()
    db.refresh(g)
    return to_out(g)
