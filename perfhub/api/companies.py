from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from perfhub.core.audit import log_event
from perfhub.core.rbac import require_roles
from perfhub.core.tenancy import delete_or_409, parse_uuid
from perfhub.db.session import get_db
from perfhub.models.company import Company
from perfhub.models.user import User
from perfhub.schemas.company import CompanyCreate, CompanyOut, CompanyUpdate
from perfhub.schemas.pagination import paginate

router = APIRouter(prefix="/companies", tags=["companies"])


def to_out(c: Company) -> CompanyOut:
    return CompanyOut(
        id=str(c.id),
        name=c.name,
        address=c.address,
        client_contact=c.client_contact,
        email=c.email,
        contact_number=c.contact_number,
        gst_number=c.gst_number,
        logo_url=c.logo_url,
        url=c.url,
        company_url=c.company_url,
        status=c.status,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def _get_or_404(db: Session, company_id: str) -> Company:
    c = db.get(Company, parse_uuid(company_id, "Company"))
    if not c:
        raise HTTPException(status_code=404, detail="Company not found")
    return c


def _ensure_company_url_free(db: Session, company_url: str | None, exclude_id=None) -> None:
    if not company_url:
        return
    q = db.query(Company.id).filter(Company.company_url == company_url)
    if exclude_id is not None:
        q = q.filter(Company.id != exclude_id)
    if q.first():
        raise HTTPException(status_code=409, detail=f"Company URL '{company_url}' is already taken")


@router.get("")
def list_companies(
    search: str | None = Query(default=None, description="Search by name, email or company URL"),
    status: str | None = Query(default=None, description="Filter by status (active, inactive)"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("super_admin")),
):
    q = db.query(Company)
    if search:
        term = f"%{search.lower()}%"
        q = q.filter(or_(Company.name.ilike(term), Company.email.ilike(term), Company.company_url.ilike(term)))
    if status:
        q = q.filter(Company.status == status)

    return paginate(
        q,
        limit=limit,
        offset=offset,
        include_pagination=include_pagination,
        to_out=to_out,
        order_by=Company.name,
    )


@router.get("/by-url/{company_url}", response_model=CompanyOut)
def get_company_by_url(company_url: str, db: Session = Depends(get_db)):
    """Public lookup used by the tenant login page."""
    c = (
        db.query(Company)
        .filter(Company.company_url == company_url, Company.status == "active")
        .one_or_none()
    )
    if not c:
        raise HTTPException(status_code=404, detail="Company not found")
    return to_out(c)


@router.get("/{company_id}", response_model=CompanyOut)
def get_company(
    company_id: str,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("super_admin")),
):
    return to_out(_get_or_404(db, company_id))


@router.post("", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
def create_company(
    payload: CompanyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    _ensure_company_url_free(db, payload.company_url)

    c = Company(**payload.model_dump())
    db.add(c)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="COMPANY_CREATED",
        entity_type="company",
        entity_id=c.id,
        company_id=c.id,
        metadata={"name": c.name, "company_url": c.company_url},
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.patch("/{company_id}", response_model=CompanyOut)
def update_company(
    company_id: str,
    payload: CompanyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    c = _get_or_404(db, company_id)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "company_url" in changes:
        _ensure_company_url_free(db, changes["company_url"], exclude_id=c.id)

    for field, value in changes.items():
        setattr(c, field, value)

    log_event(
        db=db,
        actor=current_user,
        action="COMPANY_UPDATED",
        entity_type="company",
        entity_id=c.id,
        company_id=c.id,
        metadata={"changes": changes},
    )

    db.commit()
    db.refresh(c)
    return to_out(c)


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company(
    company_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("super_admin")),
):
    c = _get_or_404(db, company_id)
    entity_id, name = c.id, c.name

    delete_or_409(db, c, "Company")

    # the company's own audit rows are gone with it; record the deletion platform-wide
    log_event(
        db=db,
        actor=current_user,
        action="COMPANY_DELETED",
        entity_type="company",
        entity_id=entity_id,
        metadata={"name": name},
    )
    db.commit()
