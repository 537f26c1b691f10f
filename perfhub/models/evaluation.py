import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from perfhub.db.base import Base
from perfhub.db.types import JSONType
from perfhub.models.mixins import TimestampMixin

EVALUATION_STATUSES = ("not_started", "in_progress", "submitted", "completed", "finalized", "closed")
# statuses the scheduler still reminds about and may close
OPEN_STATUSES = ("not_started", "in_progress", "submitted")
TERMINAL_STATUSES = ("completed", "finalized", "closed")


class Evaluation(TimestampMixin, Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        # one evaluation per employee per appraisal period
        UniqueConstraint(
            "initiated_appraisal_id",
            "frequency_calendar_detail_id",
            "employee_id",
            name="uq_evaluation_period_employee",
        ),
        CheckConstraint(
            "status IN ('not_started','in_progress','submitted','completed','finalized','closed')",
            name="ck_evaluations_status",
        ),
        CheckConstraint(
            "overall_rating IS NULL OR (overall_rating >= 1 AND overall_rating <= 5)",
            name="ck_evaluations_rating",
        ),
        # Timestamp sanity (DB invariant)
        CheckConstraint(
            "(status NOT IN ('not_started','in_progress')) OR (self_evaluation_submitted_at IS NULL)",
            name="ck_eval_ts_self",
        ),
        CheckConstraint(
            "(status NOT IN ('completed','finalized')) OR (manager_evaluation_submitted_at IS NOT NULL)",
            name="ck_eval_ts_manager",
        ),
        CheckConstraint(
            "(status <> 'finalized') OR (finalized_at IS NOT NULL)",
            name="ck_eval_ts_finalized",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    manager_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    initiated_appraisal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("initiated_appraisals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # NULL for appraisals published "now" (no calendar period)
    frequency_calendar_detail_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("frequency_calendar_details.id", ondelete="RESTRICT"), nullable=True
    )
    questionnaire_template_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("questionnaire_templates.id", ondelete="SET NULL"), nullable=True
    )

    self_evaluation_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    self_evaluation_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    manager_evaluation_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    manager_evaluation_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    overall_rating: Mapped[float | None] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="not_started")

    # window computed at initiation
    initiated_on: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    reminders_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reminder_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    meeting_scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    meeting_location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    meeting_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    show_notes_to_employee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    meeting_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    calendar_provider: Mapped[str | None] = mapped_column(String(20), nullable=True)
    calendar_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    employee = relationship("User", foreign_keys=[employee_id], lazy="selectin")
    manager = relationship("User", foreign_keys=[manager_id], lazy="selectin")
    appraisal = relationship("InitiatedAppraisal", lazy="selectin")

    # Optimistic locking
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}
