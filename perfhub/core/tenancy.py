import uuid

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from perfhub.models.user import User


def require_company(user: User) -> uuid.UUID:
    if user.company_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not associated with a company",
        )
    return user.company_id


def parse_uuid(value: str, label: str = "Resource") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=404, detail=f"{label} not found")


def scoped(db: Session, model, user: User) -> Query:
    """Query over `model` restricted to the user's company."""
    return db.query(model).filter(model.company_id == require_company(user))


def get_scoped_or_404(db: Session, model, obj_id: str, user: User, label: str):
    """Rows of other companies are indistinguishable from missing rows."""
    obj = db.get(model, parse_uuid(obj_id, label))
    if not obj or obj.company_id != require_company(user):
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def ensure_code_available(db: Session, model, company_id: uuid.UUID, code: str, exclude_id=None) -> None:
    q = db.query(model.id).filter(model.company_id == company_id, model.code == code)
    if exclude_id is not None:
        q = q.filter(model.id != exclude_id)
    if q.first():
        raise HTTPException(status_code=409, detail=f"Code '{code}' already exists")


def delete_or_409(db: Session, obj, label: str) -> None:
    """Delete a row; restrictive foreign keys surface as 409."""
    try:
        db.delete(obj)
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"{label} is in use and cannot be deleted")
