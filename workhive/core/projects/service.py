import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from workhive.common.enums import ProjectStatus
from workhive.common.exceptions import BadRequestError, NotFoundError
from workhive.common.logging import get_logger
from workhive.core.disputes.service import EscrowLifecycleService
from workhive.db.guard import savepoint, storage_guard
from workhive.db.models.dispute import Dispute
from workhive.db.models.project import Project

logger = get_logger("projects.service")


async def complete_project(
    db: AsyncSession,
    project_id: uuid.UUID,
    escrow: EscrowLifecycleService | None = None,
) -> tuple[Project, Dispute | None]:
    """Mark a project completed, then auto-resolve its under-review dispute.

    The dispute bookkeeping runs after the completion and in its own
    savepoint; any failure there is logged and the completion stands.
    """
    with storage_guard("project lookup"):
        project = await db.get(Project, project_id)
    if project is None or project.is_deleted:
        raise NotFoundError("Project", str(project_id))

    match ProjectStatus(project.status):
        case ProjectStatus.COMPLETED:
            raise BadRequestError("Project is already completed")
        case ProjectStatus.IN_PROGRESS | ProjectStatus.DISPUTED:
            pass

    async with savepoint(db, "project completion"):
        project.status = ProjectStatus.COMPLETED.value
    with storage_guard("project refresh"):
        await db.refresh(project)
    logger.info("Project %s completed", project_id)

    escrow = escrow or EscrowLifecycleService(db)
    resolved = None
    try:
        async with db.begin_nested():
            resolved = await escrow.auto_resolve_on_project_completion(project.id)
    except Exception as e:
        logger.error("Auto-resolve after completing project %s failed: %s", project_id, e)
        # The rolled-back savepoint may have expired the project
        with storage_guard("project refresh"):
            await db.refresh(project)

    return project, resolved
