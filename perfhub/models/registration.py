import uuid

from sqlalchemy import Boolean, CheckConstraint, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from perfhub.db.base import Base
from perfhub.models.mixins import TimestampMixin


class Registration(TimestampMixin, Base):
    """Public sign-up request, reviewed by a super admin."""

    __tablename__ = "registrations"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','contacted','approved','rejected')",
            name="ck_registrations_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    designation: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    mobile: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
