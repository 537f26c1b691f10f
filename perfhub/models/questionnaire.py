import uuid

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from perfhub.db.base import Base
from perfhub.db.types import JSONType
from perfhub.models.mixins import TimestampMixin


class QuestionnaireTemplate(TimestampMixin, Base):
    __tablename__ = "questionnaire_templates"
    __table_args__ = (
        CheckConstraint("status IN ('active','inactive')", name="ck_questionnaire_templates_status"),
        CheckConstraint(
            "applicable_category IS NULL OR applicable_category IN ('employee','manager')",
            name="ck_questionnaire_templates_category",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # NULL company = global template published by a super admin
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL", use_alter=True), nullable=True
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    target_role: Mapped[str] = mapped_column(String(30), nullable=False)

    applicable_category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    applicable_level_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("levels.id", ondelete="SET NULL"), nullable=True
    )
    applicable_grade_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("grades.id", ondelete="SET NULL"), nullable=True
    )
    applicable_location_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True
    )

    send_on_mail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # [{"id": "q1", "text": "...", "type": "rating", "required": true, "min": 1, "max": 5}, ...]
    questions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")


class PublishQuestionnaire(TimestampMixin, Base):
    __tablename__ = "publish_questionnaires"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_publish_questionnaires_company_code"),
        CheckConstraint("status IN ('active','inactive')", name="ck_publish_questionnaires_status"),
        CheckConstraint("publish_type IN ('now','as_per_calendar')", name="ck_publish_questionnaires_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL", use_alter=True), nullable=True
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("questionnaire_templates.id", ondelete="RESTRICT"), nullable=False
    )
    frequency_calendar_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("frequency_calendars.id", ondelete="RESTRICT"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    publish_type: Mapped[str] = mapped_column(String(20), nullable=False, default="now")
