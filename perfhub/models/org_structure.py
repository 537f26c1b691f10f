import uuid

from sqlalchemy import CheckConstraint, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from perfhub.db.base import Base
from perfhub.models.mixins import CodedMixin, TenantMixin, TimestampMixin


class Location(TenantMixin, TimestampMixin, Base):
    __tablename__ = "locations"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_locations_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_locations_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    state: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")


class Level(CodedMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "levels"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_levels_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_levels_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class Grade(CodedMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "grades"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_grades_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_grades_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class Department(CodedMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "departments"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_departments_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_departments_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
