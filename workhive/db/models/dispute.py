import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workhive.common.enums import DisputeStatus
from workhive.db.base import BaseModel

# At most one open/under-review dispute per project, enforced by the store
ACTIONABLE_PREDICATE = text("status IN ('open', 'under_review')")


class Dispute(BaseModel):
    __tablename__ = "disputes"
    __table_args__ = (
        Index(
            "uq_disputes_actionable_project",
            "project_id",
            unique=True,
            postgresql_where=ACTIONABLE_PREDICATE,
            sqlite_where=ACTIONABLE_PREDICATE,
        ),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True
    )
    milestone_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("milestones.id"), nullable=True
    )
    payment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payments.id"), nullable=True
    )
    raised_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    status: Mapped[DisputeStatus] = mapped_column(
        String(20), nullable=False, default=DisputeStatus.OPEN
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    contested_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    suggested_resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    resolution: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    history: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)

    # Relationships
    project = relationship("Project", back_populates="disputes", lazy="selectin")
    milestone = relationship("Milestone", lazy="selectin")
    payment = relationship("Payment", lazy="selectin")
    raised_by = relationship("User", lazy="selectin")

    @property
    def dispute_status(self) -> DisputeStatus:
        return DisputeStatus(self.status)
