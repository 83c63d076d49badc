import uuid
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.api.deps import get_current_user, get_db, get_escrow_service
from workhive.common.enums import NotificationCategory, UserRole
from workhive.common.exceptions import NotFoundError, PermissionDeniedError
from workhive.config import settings
from workhive.core.disputes.schemas import (
    DisputeFields,
    DisputeInput,
    DisputeUpdate,
    annotate_attachments,
)
from workhive.core.disputes.service import EscrowLifecycleService
from workhive.core.notifications.service import notify_project_parties
from workhive.db.models.dispute import Dispute
from workhive.db.models.project import Project
from workhive.db.models.user import User

router = APIRouter(prefix="/disputes", tags=["Disputes"])


# ---------- Schemas ----------


class DisputeCreateRequest(DisputeFields):
    # Legacy clients send bare references here instead of ``attachments``
    attachment_urls: list[str] | None = None

    def attachment_refs(self) -> list[str]:
        return self.attachments or [ref for ref in (self.attachment_urls or []) if ref]


class DisputeUpdateRequest(DisputeUpdate):
    pass


class UserSummary(BaseModel):
    id: uuid.UUID
    full_name: str
    email: str

    model_config = {"from_attributes": True}


class ProjectSummary(BaseModel):
    id: uuid.UUID
    title: str
    status: str
    customer_id: uuid.UUID
    provider_id: uuid.UUID | None

    model_config = {"from_attributes": True}


class MilestoneSummary(BaseModel):
    id: uuid.UUID
    title: str
    amount: Decimal
    status: str

    model_config = {"from_attributes": True}


class PaymentSummary(BaseModel):
    id: uuid.UUID
    milestone_id: uuid.UUID
    amount: Decimal
    currency: str
    status: str

    model_config = {"from_attributes": True}


class DisputeResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    milestone_id: uuid.UUID | None
    payment_id: uuid.UUID | None
    raised_by_id: uuid.UUID
    status: str
    reason: str
    description: str
    contested_amount: Decimal | None
    suggested_resolution: str | None
    attachments: list[str]
    resolution: str | None
    resolution_notes: list[dict]
    created_at: datetime
    updated_at: datetime
    project: ProjectSummary | None = None
    milestone: MilestoneSummary | None = None
    payment: PaymentSummary | None = None
    raised_by: UserSummary | None = None


class DisputeEnvelope(BaseModel):
    success: bool = True
    message: str | None = None
    data: DisputeResponse | None


class DisputeListEnvelope(BaseModel):
    success: bool = True
    data: list[DisputeResponse]
    total: int


# ---------- Endpoints ----------


@router.post("", response_model=DisputeEnvelope)
async def raise_dispute(
    body: DisputeCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    project = await _verify_project_party(body.project_id, current_user, db)

    refs = body.attachment_refs()
    description = annotate_attachments(
        body.description, refs, current_user.full_name, datetime.now(timezone.utc)
    )
    data = DisputeInput(
        **body.model_dump(exclude={"attachment_urls", "attachments", "description"}),
        description=description,
        attachments=refs,
        raised_by_id=current_user.id,
    )
    result = await service.raise_or_update_dispute(data)

    category = (
        NotificationCategory.DISPUTE_RAISED if result.created else NotificationCategory.DISPUTE_UPDATED
    )
    await notify_project_parties(
        db,
        project,
        category,
        title=f"Dispute {'raised' if result.created else 'updated'}: {project.title}",
        body=result.dispute.reason,
        exclude_user_id=current_user.id,
        action_url=dispute_url(result.dispute.id),
        dispute_id=result.dispute.id,
    )

    return DisputeEnvelope(
        message="Dispute created successfully" if result.created else "Dispute updated successfully",
        data=dispute_to_response(result.dispute),
    )


@router.get("/project/{project_id}", response_model=DisputeEnvelope)
async def get_project_dispute(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    await _verify_project_party(project_id, current_user, db)
    dispute = await service.get_dispute_for_project(project_id)
    return DisputeEnvelope(data=dispute_to_response(dispute) if dispute else None)


@router.get("/project/{project_id}/all", response_model=DisputeListEnvelope)
async def list_project_disputes(
    project_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    await _verify_project_party(project_id, current_user, db)
    disputes = await service.list_disputes_for_project(project_id)
    return DisputeListEnvelope(
        data=[dispute_to_response(d) for d in disputes],
        total=len(disputes),
    )


@router.get("/{dispute_id}", response_model=DisputeEnvelope)
async def get_dispute(
    dispute_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    dispute = await service.get_dispute(dispute_id)
    await _verify_project_party(dispute.project_id, current_user, db)
    return DisputeEnvelope(data=dispute_to_response(dispute))


@router.patch("/{dispute_id}", response_model=DisputeEnvelope)
async def update_dispute(
    dispute_id: uuid.UUID,
    body: DisputeUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    dispute = await service.get_dispute(dispute_id)
    if current_user.role != UserRole.ADMIN.value and dispute.raised_by_id != current_user.id:
        raise PermissionDeniedError("Only the party who raised this dispute can update it")

    updated = await service.update_dispute(dispute_id, current_user.id, body)

    if updated.project is not None:
        await notify_project_parties(
            db,
            updated.project,
            NotificationCategory.DISPUTE_UPDATED,
            title=f"Dispute updated: {updated.project.title}",
            body=updated.reason,
            exclude_user_id=current_user.id,
            action_url=dispute_url(updated.id),
            dispute_id=updated.id,
        )

    return DisputeEnvelope(message="Dispute updated successfully", data=dispute_to_response(updated))


def dispute_url(dispute_id: uuid.UUID) -> str:
    return f"{settings.APP_URL}/disputes/{dispute_id}"


def dispute_to_response(dispute: Dispute) -> DisputeResponse:
    return DisputeResponse(
        id=dispute.id,
        project_id=dispute.project_id,
        milestone_id=dispute.milestone_id,
        payment_id=dispute.payment_id,
        raised_by_id=dispute.raised_by_id,
        status=dispute.status,
        reason=dispute.reason,
        description=dispute.description,
        contested_amount=dispute.contested_amount,
        suggested_resolution=dispute.suggested_resolution,
        attachments=list(dispute.attachments or []),
        resolution=dispute.resolution,
        resolution_notes=list(dispute.resolution_notes or []),
        created_at=dispute.created_at,
        updated_at=dispute.updated_at,
        project=ProjectSummary.model_validate(dispute.project) if dispute.project else None,
        milestone=MilestoneSummary.model_validate(dispute.milestone) if dispute.milestone else None,
        payment=PaymentSummary.model_validate(dispute.payment) if dispute.payment else None,
        raised_by=UserSummary.model_validate(dispute.raised_by) if dispute.raised_by else None,
    )


async def _verify_project_party(project_id: uuid.UUID, user: User, db: AsyncSession) -> Project:
    project = await db.get(Project, project_id)
    if not project or project.is_deleted:
        raise NotFoundError("Project", str(project_id))
    if user.role != UserRole.ADMIN.value and user.id not in project.party_ids():
        raise PermissionDeniedError("You do not have access to this project")
    return project
