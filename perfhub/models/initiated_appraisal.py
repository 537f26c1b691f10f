import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from perfhub.db.base import Base
from perfhub.db.types import JSONType
from perfhub.models.mixins import TenantMixin, TimestampMixin

APPRAISAL_TYPES = ("questionnaire_based", "kpi_based", "mbo_based", "okr_based")
APPRAISAL_STATUSES = ("draft", "active", "closed", "cancelled")
PUBLISH_TYPES = ("now", "as_per_calendar")
TASK_STATUSES = ("pending", "completed", "failed", "cancelled")


class InitiatedAppraisal(TenantMixin, TimestampMixin, Base):
    __tablename__ = "initiated_appraisals"
    __table_args__ = (
        CheckConstraint(
            "appraisal_type IN ('questionnaire_based','kpi_based','mbo_based','okr_based')",
            name="ck_initiated_appraisals_type",
        ),
        CheckConstraint(
            "status IN ('draft','active','closed','cancelled')",
            name="ck_initiated_appraisals_status",
        ),
        CheckConstraint(
            "publish_type IN ('now','as_per_calendar')",
            name="ck_initiated_appraisals_publish_type",
        ),
        CheckConstraint(
            "days_to_initiate >= 0 AND days_to_close >= 0 AND number_of_reminders >= 0",
            name="ck_initiated_appraisals_timing",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    appraisal_group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appraisal_groups.id", ondelete="RESTRICT"), nullable=False
    )
    appraisal_type: Mapped[str] = mapped_column(String(30), nullable=False)
    questionnaire_template_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    document_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    frequency_calendar_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("frequency_calendars.id", ondelete="RESTRICT"), nullable=True
    )

    # defaults for every calendar period; InitiatedAppraisalDetailTiming overrides per period
    days_to_initiate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    days_to_close: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    number_of_reminders: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    exclude_tenure_less_than_year: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    excluded_employee_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    make_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    publish_type: Mapped[str] = mapped_column(String(20), nullable=False, default="now")

    launched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    group = relationship("AppraisalGroup", lazy="selectin")
    detail_timings = relationship(
        "InitiatedAppraisalDetailTiming",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class InitiatedAppraisalDetailTiming(TimestampMixin, Base):
    __tablename__ = "initiated_appraisal_detail_timings"
    __table_args__ = (
        UniqueConstraint(
            "initiated_appraisal_id", "frequency_calendar_detail_id", name="uq_detail_timing"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    initiated_appraisal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("initiated_appraisals.id", ondelete="CASCADE"), nullable=False
    )
    frequency_calendar_detail_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("frequency_calendar_details.id", ondelete="CASCADE"), nullable=False
    )
    days_to_initiate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    days_to_close: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    number_of_reminders: Mapped[int] = mapped_column(Integer, nullable=False, default=3)


class ScheduledAppraisalTask(TimestampMixin, Base):
    __tablename__ = "scheduled_appraisal_tasks"
    __table_args__ = (
        UniqueConstraint(
            "initiated_appraisal_id", "frequency_calendar_detail_id", name="uq_scheduled_task_period"
        ),
        CheckConstraint(
            "status IN ('pending','completed','failed','cancelled')",
            name="ck_scheduled_tasks_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    initiated_appraisal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("initiated_appraisals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    frequency_calendar_detail_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("frequency_calendar_details.id", ondelete="RESTRICT"), nullable=False
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
