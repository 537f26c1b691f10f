# seed_dev.py
from datetime import date

from sqlalchemy.orm import Session

from perfhub.core.rbac import set_user_roles
from perfhub.db.session import SessionLocal
from perfhub.models.appraisal_group import AppraisalGroup, AppraisalGroupMember
from perfhub.models.calendar import (
    AppraisalCycle,
    FrequencyCalendar,
    FrequencyCalendarDetails,
    ReviewFrequency,
)
from perfhub.models.company import Company
from perfhub.models.org_structure import Department, Grade, Level, Location
from perfhub.models.questionnaire import QuestionnaireTemplate
from perfhub.models.rbac import ROLE_NAMES, Role
from perfhub.models.user import User


# ---------- helpers: tenancy / RBAC ----------

def ensure_roles(db: Session) -> None:
    existing = {r.name for r in db.query(Role).all()}
    to_add = [Role(name=name) for name in ROLE_NAMES if name not in existing]
    if to_add:
        db.add_all(to_add)
        db.commit()


def get_or_create_company(db: Session, *, name: str, company_url: str) -> Company:
    c = db.query(Company).filter(Company.company_url == company_url).one_or_none()
    if c:
        return c
    c = Company(name=name, company_url=company_url, email=f"contact@{company_url}.test", status="active")
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def get_or_create_user(
    db: Session,
    email: str,
    first_name: str,
    last_name: str,
    *,
    role: str,
    extra_roles: set[str] | None = None,
    company: Company | None = None,
    manager: User | None = None,
    **fields,
) -> User:
    u = db.query(User).filter(User.email == email).one_or_none()
    if u:
        # keep these up to date in dev
        changed = False
        if u.status != "active":
            u.status = "active"
            changed = True
        if manager is not None and u.reporting_manager_id != manager.id:
            u.reporting_manager_id = manager.id
            changed = True
        if u.role != role:
            u.role = role
            changed = True
        if changed:
            db.commit()
            db.refresh(u)
    else:
        u = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=role,
            status="active",
            company_id=company.id if company else None,
            reporting_manager_id=manager.id if manager else None,
            **fields,
        )
        db.add(u)
        db.commit()
        db.refresh(u)

    set_user_roles(db, u, {role} | (extra_roles or set()))
    db.commit()
    return u


def get_or_create_coded(db: Session, model, company: Company, code: str, description: str, **fields):
    row = db.query(model).filter(model.company_id == company.id, model.code == code).one_or_none()
    if row:
        return row
    row = model(company_id=company.id, code=code, description=description, status="active", **fields)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_or_create_location(db: Session, company: Company, code: str, name: str, country: str) -> Location:
    loc = db.query(Location).filter(Location.company_id == company.id, Location.code == code).one_or_none()
    if loc:
        return loc
    loc = Location(company_id=company.id, code=code, name=name, country=country, status="active")
    db.add(loc)
    db.commit()
    db.refresh(loc)
    return loc


# ---------- helpers: calendar / questionnaire / group ----------

def ensure_quarters(db: Session, company: Company, calendar: FrequencyCalendar, year: int) -> list:
    quarters = [
        ("Q1", date(year, 1, 1), date(year, 3, 31)),
        ("Q2", date(year, 4, 1), date(year, 6, 30)),
        ("Q3", date(year, 7, 1), date(year, 9, 30)),
        ("Q4", date(year, 10, 1), date(year, 12, 31)),
    ]
    existing = {
        d.display_name: d
        for d in db.query(FrequencyCalendarDetails)
        .filter(FrequencyCalendarDetails.frequency_calendar_id == calendar.id)
        .all()
    }
    out = []
    for label, start, end in quarters:
        name = f"{label} {year}"
        d = existing.get(name)
        if d is None:
            d = FrequencyCalendarDetails(
                company_id=company.id,
                frequency_calendar_id=calendar.id,
                display_name=name,
                start_date=start,
                end_date=end,
                status="active",
            )
            db.add(d)
        out.append(d)
    db.commit()
    return out


def get_or_create_template(db: Session, company: Company, name: str, hr: User) -> QuestionnaireTemplate:
    t = (
        db.query(QuestionnaireTemplate)
        .filter(QuestionnaireTemplate.company_id == company.id, QuestionnaireTemplate.name == name)
        .one_or_none()
    )
    if t:
        return t
    t = QuestionnaireTemplate(
        company_id=company.id,
        created_by_user_id=hr.id,
        name=name,
        description="Dev seed questionnaire",
        target_role="employee",
        send_on_mail=True,
        questions=[
            {"id": "q1", "text": "Overall rating for the period", "type": "rating", "required": True, "min": 1, "max": 5},
            {"id": "q2", "text": "Key achievements", "type": "text", "required": True, "max_length": 2000},
            {"id": "q3", "text": "Areas to improve", "type": "text", "required": False},
        ],
        year=date.today().year,
        status="active",
    )
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


def get_or_create_group(db: Session, company: Company, name: str, members: list[User], hr: User) -> AppraisalGroup:
    g = (
        db.query(AppraisalGroup)
        .filter(AppraisalGroup.company_id == company.id, AppraisalGroup.name == name)
        .one_or_none()
    )
    if g is None:
        g = AppraisalGroup(company_id=company.id, name=name, status="active", created_by_user_id=hr.id)
        db.add(g)
        db.flush()

    current = {
        m.user_id
        for m in db.query(AppraisalGroupMember).filter(AppraisalGroupMember.appraisal_group_id == g.id).all()
    }
    for u in members:
        if u.id not in current:
            db.add(AppraisalGroupMember(appraisal_group_id=g.id, user_id=u.id, added_by_user_id=hr.id))
    db.commit()
    db.refresh(g)
    return g


# ---------- main ----------

def main():
    db = SessionLocal()
    try:
        ensure_roles(db)

        # ---- Platform ----
        super_admin = get_or_create_user(db, "superadmin@local.test", "Super", "Admin", role="super_admin")

        # ---- Tenant ----
        company = get_or_create_company(db, name="Acme Corp", company_url="acme")

        location = get_or_create_location(db, company, "BLR", "Bengaluru", "India")
        level = get_or_create_coded(db, Level, company, "L1", "Individual contributor")
        grade = get_or_create_coded(db, Grade, company, "G1", "Grade 1")
        department = get_or_create_coded(db, Department, company, "ENG", "Engineering")
        org = {"location_id": location.id, "level_id": level.id, "grade_id": grade.id, "department_id": department.id}

        admin = get_or_create_user(
            db, "admin@acme.test", "Ada", "Admin", role="admin", company=company, **org
        )
        hr = get_or_create_user(
            db, "hr@acme.test", "Harper", "Reyes", role="hr_manager", company=company, **org
        )
        manager = get_or_create_user(
            db,
            "manager@acme.test",
            "Morgan",
            "Lee",
            role="manager",
            extra_roles={"employee"},
            company=company,
            manager=hr,
            date_of_joining=date(2019, 4, 1),
            **org,
        )
        employee = get_or_create_user(
            db,
            "employee@acme.test",
            "Sam",
            "Patel",
            role="employee",
            company=company,
            manager=manager,
            date_of_joining=date(2022, 1, 10),
            **org,
        )

        # ---- Calendar ----
        year = date.today().year
        cycle = get_or_create_coded(
            db,
            AppraisalCycle,
            company,
            f"FY{year}",
            f"Financial year {year}",
            from_date=date(year, 1, 1),
            to_date=date(year, 12, 31),
        )
        quarterly = get_or_create_coded(db, ReviewFrequency, company, "QTR", "Quarterly")
        calendar = get_or_create_coded(
            db,
            FrequencyCalendar,
            company,
            f"QTR-{year}",
            f"Quarterly reviews {year}",
            appraisal_cycle_id=cycle.id,
            review_frequency_id=quarterly.id,
        )
        periods = ensure_quarters(db, company, calendar, year)

        # ---- Questionnaire + group ----
        template = get_or_create_template(db, company, "Quarterly self review", hr)
        group = get_or_create_group(db, company, "Engineering", [manager, employee], hr)

        print("\n=== DEV SEED COMPLETE ===")
        print("Users (send as X-User-Email):")
        print(f"  super_admin: {super_admin.email}")
        print(f"  admin:       {admin.email}")
        print(f"  hr_manager:  {hr.email}")
        print(f"  manager:     {manager.email}  (also employee; pick with X-Active-Role)")
        print(f"  employee:    {employee.email}")

        print("\nCompany:")
        print(f"  company_id: {company.id} (url=/{company.company_url})")

        print("\nCalendar:")
        print(f"  frequency_calendar_id: {calendar.id}")
        for p in periods:
            print(f"   - {p.display_name}: {p.start_date} .. {p.end_date}")

        print("\nQuestionnaire / group:")
        print(f"  questionnaire_template_id: {template.id}")
        print(f"  appraisal_group_id:        {group.id}")

        print("\nNext API steps:")
        print("  POST /initiated-appraisals  (as hr@acme.test) with the group and template ids above")
        print("  GET  /me/evaluations        (as employee@acme.test)")
        print("  python scripts/run_scheduler.py --once")

    finally:
        db.close()


if __name__ == "__main__":
    main()
