import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workhive.common.enums import ProjectStatus
from workhive.db.base import BaseModel


class Project(BaseModel):
    __tablename__ = "projects"

    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    provider_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.IN_PROGRESS
    )
    budget_min: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    budget_max: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    # Relationships
    customer = relationship("User", foreign_keys=[customer_id], lazy="selectin")
    provider = relationship("User", foreign_keys=[provider_id], lazy="selectin")
    milestones = relationship(
        "Milestone",
        back_populates="project",
        order_by="Milestone.order",
        lazy="selectin",
    )
    disputes = relationship("Dispute", back_populates="project")

    def party_ids(self) -> set[uuid.UUID]:
        return {pid for pid in (self.customer_id, self.provider_id) if pid is not None}
