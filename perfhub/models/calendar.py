import uuid
from datetime import date

from sqlalchemy import CheckConstraint, Date, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from perfhub.db.base import Base
from perfhub.models.mixins import CodedMixin, TenantMixin, TimestampMixin


class AppraisalCycle(CodedMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "appraisal_cycles"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_appraisal_cycles_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_appraisal_cycles_status"),
        CheckConstraint("to_date >= from_date", name="ck_appraisal_cycles_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)


class ReviewFrequency(CodedMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "review_frequencies"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_review_frequencies_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_review_frequencies_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class FrequencyCalendar(CodedMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "frequency_calendars"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_frequency_calendars_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_frequency_calendars_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    appraisal_cycle_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appraisal_cycles.id", ondelete="RESTRICT"), nullable=False
    )
    review_frequency_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("review_frequencies.id", ondelete="RESTRICT"), nullable=False
    )

    details = relationship(
        "FrequencyCalendarDetails",
        back_populates="calendar",
        order_by="FrequencyCalendarDetails.start_date",
        lazy="selectin",
        passive_deletes="all",
    )


class FrequencyCalendarDetails(TenantMixin, TimestampMixin, Base):
    """One concrete period (e.g. "Q1 2025") of a frequency calendar."""

    __tablename__ = "frequency_calendar_details"
    __table_args__ = (
        CheckConstraint("status IN ('active','inactive')", name="ck_frequency_calendar_details_status"),
        CheckConstraint("end_date >= start_date", name="ck_frequency_calendar_details_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    frequency_calendar_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("frequency_calendars.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    calendar = relationship("FrequencyCalendar", back_populates="details")
