from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from perfhub.core.security import get_current_user
from perfhub.db.session import get_db
from perfhub.models.user import User
from perfhub.models.rbac import Role, UserRole


def get_user_role_names(db: Session, user: User) -> set[str]:
    rows = (
        db.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user.id)
        .all()
    )
    return {r[0] for r in rows} | {user.role}


def set_user_roles(db: Session, user: User, role_names: set[str]) -> None:
    """Replace the user's role set (the primary role is always included)."""
    wanted = set(role_names) | {user.role}
    roles = {r.name: r for r in db.query(Role).filter(Role.name.in_(wanted)).all()}
    for name in wanted - roles.keys():
        role = Role(name=name)
        db.add(role)
        roles[name] = role
    db.flush()

    current = {
        ur.role_id: ur
        for ur in db.query(UserRole).filter(UserRole.user_id == user.id).all()
    }
    wanted_ids = {roles[name].id for name in wanted}
    for role_id, ur in current.items():
        if role_id not in wanted_ids:
            db.delete(ur)
    for role_id in wanted_ids - current.keys():
        db.add(UserRole(user_id=user.id, role_id=role_id))


def get_active_role(
    x_active_role: str | None = Header(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> str:
    """
    The role the user is acting as for this request (X-Active-Role header),
    defaulting to the user's primary role.
    """
    active = x_active_role or user.role
    if active not in get_user_role_names(db, user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access forbidden - invalid active role",
        )
    return active


def require_roles(*required: str):
    """
    Usage:
      Depends(require_roles("admin"))
      Depends(require_roles("admin", "hr_manager"))  # any-of, checked against the active role
    """
    required_set = set(required)

    def _dep(
        user: User = Depends(get_current_user),
        active_role: str = Depends(get_active_role),
    ) -> User:
        if active_role not in required_set:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access forbidden - insufficient permissions",
            )
        return user

    return _dep
