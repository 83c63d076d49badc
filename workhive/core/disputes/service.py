import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from workhive.common.enums import DisputeStatus
from workhive.common.exceptions import (
    ConflictError,
    ImmutableDisputeError,
    NotFoundError,
    TerminalStateError,
    ValidationFailedError,
)
from workhive.common.logging import get_logger
from workhive.config import settings
from workhive.core.disputes.mutator import EscrowStateMutator, assert_transition
from workhive.core.disputes.repository import DisputeRepository
from workhive.core.disputes.schemas import (
    DisputeInput,
    DisputeUpdate,
    UpsertResult,
    annotate_attachments,
    append_note,
)
from workhive.db.guard import storage_guard
from workhive.db.models.dispute import Dispute
from workhive.db.models.milestone import Milestone
from workhive.db.models.payment import Payment
from workhive.db.models.project import Project
from workhive.db.models.user import User

logger = get_logger("disputes.service")

UNKNOWN_ACTOR = "Unknown User"


class EscrowLifecycleService:
    """Keeps disputes, milestones and projects consistent as disputes move.

    Every public method runs inside the caller's session and applies all of
    its side effects before returning; committing is left to the caller.
    """

    def __init__(
        self,
        db: AsyncSession,
        repository: DisputeRepository | None = None,
        mutator: EscrowStateMutator | None = None,
    ):
        self.db = db
        self.repository = repository or DisputeRepository(db)
        self.mutator = mutator or EscrowStateMutator(db)

    # ---------- Raise / update ----------

    async def raise_or_update_dispute(self, data: DisputeInput) -> UpsertResult:
        await self._check_project(data.project_id)
        # A closed history wins over any other problem with the payload
        await self._ensure_history_open(data.project_id)
        await self._check_targets(data.project_id, data.milestone_id, data.payment_id)

        result = await self._upsert_with_retry(data)
        dispute = result.dispute

        # A reopened dispute is actionable again even with the same milestone
        if result.milestone_changed or result.reopened:
            await self._freeze(dispute.milestone_id, dispute.project_id)
            dispute = await self.repository.reload(dispute.id)

        logger.info(
            "Dispute %s %s for project %s by %s",
            dispute.id,
            "raised" if result.created else "updated",
            data.project_id,
            data.raised_by_id,
        )
        return UpsertResult(
            dispute=dispute,
            created=result.created,
            previous_milestone_id=result.previous_milestone_id,
            reopened=result.reopened,
        )

    async def _upsert_with_retry(self, data: DisputeInput) -> UpsertResult:
        retries = max(settings.DISPUTE_CREATE_RETRIES, 0)
        attempt = 0
        while True:
            try:
                return await self.repository.upsert_dispute(data)
            except ConflictError:
                if attempt >= retries:
                    logger.error(
                        "Dispute upsert for project %s still conflicting after %d retries",
                        data.project_id,
                        attempt,
                    )
                    raise
                attempt += 1
                logger.warning(
                    "Concurrent dispute create on project %s; retrying as update",
                    data.project_id,
                )

    async def update_dispute(
        self, dispute_id: uuid.UUID, updater_id: uuid.UUID, fields: DisputeUpdate
    ) -> Dispute:
        dispute = await self.repository.get_by_id(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))

        match dispute.dispute_status:
            case DisputeStatus.CLOSED | DisputeStatus.RESOLVED:
                raise ImmutableDisputeError(str(dispute_id), dispute.status)
            case DisputeStatus.OPEN | DisputeStatus.UNDER_REVIEW:
                pass

        if fields.project_id is not None and fields.project_id != dispute.project_id:
            raise ValidationFailedError("Dispute does not belong to this project")
        await self._check_targets(dispute.project_id, fields.milestone_id, fields.payment_id)

        now = datetime.now(timezone.utc)
        author = await self._actor_name(updater_id)
        changes: dict[str, Any] = {}
        for field in ("reason", "contested_amount", "suggested_resolution", "milestone_id", "payment_id"):
            value = getattr(fields, field)
            if value is not None:
                changes[field] = value

        description = fields.description or dispute.description
        if fields.additional_notes:
            description = append_note(description, fields.additional_notes, author, now)
        if fields.attachments:
            description = annotate_attachments(description, fields.attachments, author, now)
            changes["attachments"] = [*(dispute.attachments or []), *fields.attachments]
        if description != dispute.description:
            changes["description"] = description

        changes["history"] = [
            *(dispute.history or []),
            {
                "action": "updated",
                "by": str(updater_id),
                "at": now.isoformat(),
                "fields": sorted(changes),
                "notes": fields.additional_notes,
                "attachments_added": len(fields.attachments or []),
            },
        ]

        previous_milestone_id = dispute.milestone_id
        updated = await self.repository.update_dispute_fields(dispute.id, changes)

        if updated.milestone_id is not None and updated.milestone_id != previous_milestone_id:
            await self._freeze(updated.milestone_id, updated.project_id)
            updated = await self.repository.reload(updated.id)
        return updated

    # ---------- Administration ----------

    async def change_status(
        self,
        dispute_id: uuid.UUID,
        admin_id: uuid.UUID,
        target: DisputeStatus,
        note: str | None = None,
    ) -> Dispute:
        dispute = await self.repository.get_by_id(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))

        current = dispute.dispute_status
        assert_transition(current, target)

        now = datetime.now(timezone.utc).isoformat()
        fields: dict[str, Any] = {
            "status": target.value,
            "history": [
                *(dispute.history or []),
                {
                    "action": "status_changed",
                    "by": str(admin_id),
                    "at": now,
                    "from": current.value,
                    "to": target.value,
                },
            ],
        }
        if note:
            fields["resolution_notes"] = [
                *(dispute.resolution_notes or []),
                {
                    "note": note,
                    "created_at": now,
                    "admin_id": str(admin_id),
                    "admin_name": await self._actor_name(admin_id, default="Admin"),
                },
            ]

        match target:
            case DisputeStatus.RESOLVED | DisputeStatus.CLOSED:
                if note:
                    fields["resolution"] = note
            case DisputeStatus.OPEN | DisputeStatus.UNDER_REVIEW:
                pass

        updated = await self.repository.update_dispute_fields(dispute.id, fields)

        # A closed dispute keeps its milestone frozen for good
        if target is DisputeStatus.CLOSED:
            await self._freeze(updated.milestone_id, updated.project_id)
            updated = await self.repository.reload(updated.id)

        logger.info(
            "Dispute %s moved %s -> %s by admin %s", dispute_id, current.value, target.value, admin_id
        )
        return updated

    # ---------- Completion hook ----------

    async def auto_resolve_on_project_completion(self, project_id: uuid.UUID) -> Dispute | None:
        """Resolve the project's under-review dispute, if any.

        Callers treat this as best-effort: a failure here must not undo the
        project's completion.
        """
        return await self.mutator.auto_resolve_if_under_review(project_id)

    # ---------- Reads ----------

    async def get_dispute(self, dispute_id: uuid.UUID) -> Dispute:
        dispute = await self.repository.get_by_id(dispute_id)
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def get_dispute_for_project(self, project_id: uuid.UUID) -> Dispute | None:
        return await self.repository.get_by_project(project_id)

    async def list_disputes_for_project(self, project_id: uuid.UUID) -> list[Dispute]:
        return await self.repository.list_by_project(project_id)

    # ---------- Helpers ----------

    async def _freeze(self, milestone_id: uuid.UUID | None, project_id: uuid.UUID) -> None:
        if milestone_id is not None:
            await self.mutator.freeze_milestone(milestone_id)
        await self.mutator.flag_project_disputed(project_id)

    async def _check_project(self, project_id: uuid.UUID) -> Project:
        with storage_guard("project lookup"):
            project = await self.db.get(Project, project_id)
        if project is None or project.is_deleted:
            raise NotFoundError("Project", str(project_id))
        return project

    async def _ensure_history_open(self, project_id: uuid.UUID) -> None:
        if await self.repository.find_actionable_by_project(project_id) is not None:
            return
        latest = await self.repository.get_by_project(project_id)
        if latest is not None and latest.dispute_status is DisputeStatus.CLOSED:
            raise TerminalStateError(str(project_id))

    async def _check_targets(
        self,
        project_id: uuid.UUID,
        milestone_id: uuid.UUID | None,
        payment_id: uuid.UUID | None,
    ) -> None:
        with storage_guard("reference lookup"):
            if milestone_id is not None:
                milestone = await self.db.get(Milestone, milestone_id)
                if milestone is None or milestone.is_deleted or milestone.project_id != project_id:
                    raise NotFoundError("Milestone", str(milestone_id))

            if payment_id is not None:
                payment = await self.db.get(Payment, payment_id)
                if payment is None or payment.is_deleted or payment.project_id != project_id:
                    raise NotFoundError("Payment", str(payment_id))

    async def _actor_name(self, user_id: uuid.UUID, default: str = UNKNOWN_ACTOR) -> str:
        with storage_guard("actor lookup"):
            user = await self.db.get(User, user_id)
        return user.full_name if user is not None else default
