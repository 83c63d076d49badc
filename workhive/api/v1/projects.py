import uuid
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.api.deps import get_current_user, get_db, get_escrow_service
from workhive.common.enums import NotificationCategory, UserRole
from workhive.common.exceptions import NotFoundError, PermissionDeniedError
from workhive.config import settings
from workhive.core.disputes.service import EscrowLifecycleService
from workhive.core.notifications.service import notify_project_parties
from workhive.core.projects.service import complete_project
from workhive.db.models.project import Project
from workhive.db.models.user import User

router = APIRouter(prefix="/projects", tags=["Projects"])


# ---------- Schemas ----------


class MilestoneResponse(BaseModel):
    id: uuid.UUID
    title: str
    order: int
    amount: Decimal
    due_date: date | None
    status: str

    model_config = {"from_attributes": True}


class ProjectResponse(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    provider_id: uuid.UUID | None
    title: str
    description: str | None
    category: str | None
    status: str
    budget_min: Decimal | None
    budget_max: Decimal | None
    created_at: datetime
    milestones: list[MilestoneResponse]

    model_config = {"from_attributes": True}


class ProjectCompletionResponse(BaseModel):
    success: bool = True
    message: str
    data: ProjectResponse
    auto_resolved_dispute_id: uuid.UUID | None = None


# ---------- Endpoints ----------


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    project = await _get_project_for_user(project_id, current_user, db)
    return ProjectResponse.model_validate(project)


@router.post("/{project_id}/complete", response_model=ProjectCompletionResponse)
async def mark_project_complete(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    await _get_project_for_user(project_id, current_user, db)
    project, resolved = await complete_project(db, project_id, escrow=service)

    await notify_project_parties(
        db,
        project,
        NotificationCategory.PROJECT_COMPLETED,
        title=f"Project completed: {project.title}",
        body="The project has been marked as completed.",
        exclude_user_id=current_user.id,
        action_url=f"{settings.APP_URL}/projects/{project.id}",
    )
    if resolved is not None:
        await notify_project_parties(
            db,
            project,
            NotificationCategory.DISPUTE_RESOLVED,
            title=f"Dispute resolved: {project.title}",
            body=resolved.resolution or "",
            dispute_id=resolved.id,
        )

    return ProjectCompletionResponse(
        message="Project marked as completed",
        data=ProjectResponse.model_validate(project),
        auto_resolved_dispute_id=resolved.id if resolved else None,
    )


async def _get_project_for_user(
    project_id: uuid.UUID, user: User, db: AsyncSession
) -> Project:
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.is_deleted.is_(False))
    )
    project = result.scalar_one_or_none()
    if not project:
        raise NotFoundError("Project", str(project_id))
    if user.role != UserRole.ADMIN.value and user.id not in project.party_ids():
        raise PermissionDeniedError("You do not have access to this project")
    return project
