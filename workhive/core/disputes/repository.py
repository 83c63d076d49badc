"""Data access for disputes, including the upsert-by-project merge policy."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.common.enums import ACTIONABLE_DISPUTE_STATUSES, DisputeStatus
from workhive.common.exceptions import InvalidStateError, NotFoundError, TerminalStateError
from workhive.common.logging import get_logger
from workhive.core.disputes.schemas import DisputeInput, UpsertResult
from workhive.db.guard import savepoint, storage_guard
from workhive.db.models.dispute import Dispute
from workhive.db.models.project import Project
from workhive.db.models.user import User

logger = get_logger("disputes.repository")

# Scalars a later submission may overwrite; empty values keep the stored one
MERGEABLE_FIELDS = (
    "reason",
    "description",
    "contested_amount",
    "suggested_resolution",
    "milestone_id",
    "payment_id",
)

UPDATABLE_FIELDS = frozenset(
    MERGEABLE_FIELDS
    + ("status", "attachments", "resolution", "resolution_notes", "history")
)


def _supplied(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _history_entry(action: str, by: uuid.UUID | str | None, **extra: Any) -> dict[str, Any]:
    return {
        "action": action,
        "by": str(by) if by else "system",
        "at": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


class DisputeRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _query(self) -> Select:
        return select(Dispute).where(Dispute.is_deleted.is_(False))

    async def _first(self, query: Select, operation: str) -> Dispute | None:
        with storage_guard(operation):
            result = await self.db.execute(query.limit(1))
        return result.scalars().first()

    # ---------- Reads ----------

    async def get_by_id(self, dispute_id: uuid.UUID, for_update: bool = False) -> Dispute | None:
        query = self._query().where(Dispute.id == dispute_id)
        if for_update:
            query = query.with_for_update()
        return await self._first(query, "dispute lookup")

    async def get_by_project(self, project_id: uuid.UUID) -> Dispute | None:
        query = self._query().where(Dispute.project_id == project_id).order_by(
            Dispute.created_at.desc()
        )
        return await self._first(query, "dispute lookup by project")

    async def list_by_project(self, project_id: uuid.UUID) -> list[Dispute]:
        query = self._query().where(Dispute.project_id == project_id).order_by(
            Dispute.created_at.desc()
        )
        with storage_guard("dispute listing"):
            result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_actionable_by_project(
        self, project_id: uuid.UUID, for_update: bool = False
    ) -> Dispute | None:
        query = (
            self._query()
            .where(
                Dispute.project_id == project_id,
                Dispute.status.in_(ACTIONABLE_DISPUTE_STATUSES),
            )
            .order_by(Dispute.created_at.desc())
        )
        if for_update:
            query = query.with_for_update()
        return await self._first(query, "actionable dispute lookup")

    async def reload(self, dispute_id: uuid.UUID) -> Dispute:
        """Re-read a dispute and its display relations after a write."""
        query = (
            self._query()
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        dispute = await self._first(query, "dispute reload")
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    def admin_query(self, status: DisputeStatus | None = None, search: str | None = None) -> Select:
        query = self._query().order_by(Dispute.created_at.desc())
        if status is not None:
            query = query.where(Dispute.status == status.value)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    Dispute.reason.ilike(pattern),
                    Dispute.description.ilike(pattern),
                    Dispute.project.has(Project.title.ilike(pattern)),
                    Dispute.project.has(Project.customer.has(User.full_name.ilike(pattern))),
                    Dispute.project.has(Project.provider.has(User.full_name.ilike(pattern))),
                    Dispute.raised_by.has(User.full_name.ilike(pattern)),
                )
            )
        return query

    # ---------- Writes ----------

    async def create_dispute(self, data: DisputeInput) -> Dispute:
        existing = await self.find_actionable_by_project(data.project_id)
        if existing is not None:
            raise InvalidStateError(
                f"Project '{data.project_id}' already has an actionable dispute '{existing.id}'"
            )

        dispute = Dispute(
            project_id=data.project_id,
            milestone_id=data.milestone_id,
            payment_id=data.payment_id,
            raised_by_id=data.raised_by_id,
            reason=data.reason,
            description=data.description,
            contested_amount=data.contested_amount,
            suggested_resolution=data.suggested_resolution,
            attachments=list(data.attachments),
            status=DisputeStatus.OPEN.value,
            resolution_notes=[],
            history=[
                _history_entry(
                    "raised",
                    data.raised_by_id,
                    attachments_added=len(data.attachments),
                )
            ],
        )
        async with savepoint(self.db, "dispute create"):
            self.db.add(dispute)

        logger.info("Dispute %s opened on project %s", dispute.id, data.project_id)
        return await self.reload(dispute.id)

    async def upsert_dispute(self, data: DisputeInput) -> UpsertResult:
        current = await self.find_actionable_by_project(data.project_id, for_update=True)

        if current is None:
            latest = await self.get_by_project(data.project_id)
            if latest is not None:
                match latest.dispute_status:
                    case DisputeStatus.CLOSED:
                        raise TerminalStateError(str(data.project_id))
                    case DisputeStatus.RESOLVED | DisputeStatus.OPEN | DisputeStatus.UNDER_REVIEW:
                        current = latest

        if current is None:
            dispute = await self.create_dispute(data)
            return UpsertResult(dispute=dispute, created=True)

        previous_milestone_id = current.milestone_id
        reopened = current.dispute_status is DisputeStatus.RESOLVED
        dispute = await self._merge(current, data)
        return UpsertResult(
            dispute=dispute,
            created=False,
            previous_milestone_id=previous_milestone_id,
            reopened=reopened,
        )

    async def _merge(self, dispute: Dispute, data: DisputeInput) -> Dispute:
        changes: dict[str, Any] = {}
        for field in MERGEABLE_FIELDS:
            value = getattr(data, field)
            if _supplied(value) and value != getattr(dispute, field):
                changes[field] = value

        history = [*(dispute.history or [])]
        match dispute.dispute_status:
            case DisputeStatus.RESOLVED:
                changes["status"] = DisputeStatus.UNDER_REVIEW.value
                history.append(
                    _history_entry(
                        "reopened",
                        data.raised_by_id,
                        **{"from": DisputeStatus.RESOLVED.value, "to": DisputeStatus.UNDER_REVIEW.value},
                    )
                )
            case DisputeStatus.OPEN | DisputeStatus.UNDER_REVIEW:
                pass
            case DisputeStatus.CLOSED:
                raise TerminalStateError(str(dispute.project_id))

        history.append(
            _history_entry(
                "resubmitted",
                data.raised_by_id,
                fields=sorted(k for k in changes if k != "status"),
                attachments_added=len(data.attachments),
            )
        )
        attachments = [*(dispute.attachments or []), *data.attachments]

        async with savepoint(self.db, "dispute merge"):
            for field, value in changes.items():
                setattr(dispute, field, value)
            dispute.attachments = attachments
            dispute.history = history
            dispute.updated_at = func.now()

        logger.info(
            "Merged submission into dispute %s (fields=%s, attachments+%d)",
            dispute.id,
            ",".join(sorted(changes)) or "-",
            len(data.attachments),
        )
        return await self.reload(dispute.id)

    async def update_dispute_fields(self, dispute_id: uuid.UUID, fields: dict[str, Any]) -> Dispute:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update dispute fields: {', '.join(sorted(unknown))}")

        dispute = await self.get_by_id(dispute_id, for_update=True)
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))

        async with savepoint(self.db, "dispute update"):
            for field, value in fields.items():
                setattr(dispute, field, value)
            dispute.updated_at = func.now()

        logger.info("Updated dispute %s: %s", dispute_id, ",".join(sorted(fields)))
        return await self.reload(dispute_id)
