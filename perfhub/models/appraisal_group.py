import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from perfhub.core.clock import utcnow
from perfhub.db.base import Base
from perfhub.models.mixins import TenantMixin, TimestampMixin


class AppraisalGroup(TenantMixin, TimestampMixin, Base):
    __tablename__ = "appraisal_groups"
    __table_args__ = (
        CheckConstraint("status IN ('active','inactive')", name="ck_appraisal_groups_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    members = relationship(
        "AppraisalGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class AppraisalGroupMember(Base):
    __tablename__ = "appraisal_group_members"
    __table_args__ = (
        UniqueConstraint("appraisal_group_id", "user_id", name="uq_appraisal_group_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    appraisal_group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appraisal_groups.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    added_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )

    group = relationship("AppraisalGroup", back_populates="members")
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
