import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.common.enums import DisputeStatus, MilestoneStatus, ProjectStatus
from workhive.common.exceptions import InvalidStateError, NotFoundError
from workhive.common.logging import get_logger
from workhive.config import settings
from workhive.db.guard import savepoint, storage_guard
from workhive.db.models.dispute import Dispute
from workhive.db.models.milestone import Milestone
from workhive.db.models.project import Project

logger = get_logger("disputes.mutator")

DISPUTE_TRANSITIONS: dict[DisputeStatus, frozenset[DisputeStatus]] = {
    DisputeStatus.OPEN: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.CLOSED}),
    DisputeStatus.UNDER_REVIEW: frozenset({DisputeStatus.RESOLVED, DisputeStatus.CLOSED}),
    # Reopening a resolved dispute is the only way back into review
    DisputeStatus.RESOLVED: frozenset({DisputeStatus.UNDER_REVIEW, DisputeStatus.CLOSED}),
    DisputeStatus.CLOSED: frozenset(),
}


def assert_transition(current: DisputeStatus, target: DisputeStatus) -> None:
    if target not in DISPUTE_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Cannot move dispute from {current.value} to {target.value}"
        )


class EscrowStateMutator:
    """Side effects on milestones, projects and disputes that follow a dispute event."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _refresh(self, instance: object) -> None:
        with storage_guard("state refresh"):
            await self.db.refresh(instance)

    async def freeze_milestone(self, milestone_id: uuid.UUID) -> Milestone:
        with storage_guard("milestone lookup"):
            milestone = await self.db.get(Milestone, milestone_id)
        if milestone is None or milestone.is_deleted or milestone.project_id is None:
            raise NotFoundError("Milestone", str(milestone_id))

        async with savepoint(self.db, "milestone freeze"):
            milestone.status = MilestoneStatus.DISPUTED.value
        await self._refresh(milestone)

        logger.info("Milestone %s frozen (project %s)", milestone_id, milestone.project_id)
        return milestone

    async def flag_project_disputed(self, project_id: uuid.UUID) -> Project:
        with storage_guard("project lookup"):
            project = await self.db.get(Project, project_id)
        if project is None or project.is_deleted:
            raise NotFoundError("Project", str(project_id))

        if project.status != ProjectStatus.DISPUTED.value:
            async with savepoint(self.db, "project flag"):
                project.status = ProjectStatus.DISPUTED.value
            await self._refresh(project)
            logger.info("Project %s flagged as disputed", project_id)

        return project

    async def auto_resolve_if_under_review(self, project_id: uuid.UUID) -> Dispute | None:
        with storage_guard("dispute lookup by project"):
            result = await self.db.execute(
                select(Dispute)
                .where(Dispute.project_id == project_id, Dispute.is_deleted.is_(False))
                .order_by(Dispute.created_at.desc())
                .limit(1)
                .with_for_update()
            )
        dispute = result.scalars().first()
        if dispute is None:
            return None

        match dispute.dispute_status:
            case DisputeStatus.UNDER_REVIEW:
                pass
            case DisputeStatus.OPEN | DisputeStatus.RESOLVED | DisputeStatus.CLOSED:
                return None

        note = settings.AUTO_RESOLUTION_NOTE
        now = datetime.now(timezone.utc).isoformat()
        async with savepoint(self.db, "dispute auto-resolve"):
            dispute.status = DisputeStatus.RESOLVED.value
            dispute.resolution = note
            dispute.resolution_notes = [
                *(dispute.resolution_notes or []),
                {
                    "note": note,
                    "created_at": now,
                    "admin_id": None,
                    "admin_name": settings.SYSTEM_ACTOR_NAME,
                },
            ]
            dispute.history = [
                *(dispute.history or []),
                {
                    "action": "auto_resolved",
                    "by": "system",
                    "at": now,
                    "from": DisputeStatus.UNDER_REVIEW.value,
                    "to": DisputeStatus.RESOLVED.value,
                },
            ]
        await self._refresh(dispute)

        logger.info("Dispute %s auto-resolved on completion of project %s", dispute.id, project_id)
        return dispute
