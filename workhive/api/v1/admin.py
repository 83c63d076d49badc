import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel as PydanticModel
from sqlalchemy.ext.asyncio import AsyncSession

from workhive.api.deps import get_db, get_escrow_service, require_role
from workhive.api.v1.disputes import (
    DisputeEnvelope,
    DisputeResponse,
    dispute_to_response,
    dispute_url,
)
from workhive.common.enums import DisputeStatus, NotificationCategory, UserRole
from workhive.common.pagination import PaginatedResponse, PaginationParams, paginate
from workhive.core.disputes.service import EscrowLifecycleService
from workhive.core.notifications.service import notify_project_parties
from workhive.db.models.dispute import Dispute
from workhive.db.models.user import User

router = APIRouter(prefix="/admin/disputes", tags=["Admin"])

SORTABLE_COLUMNS = {
    "created_at": Dispute.created_at,
    "updated_at": Dispute.updated_at,
    "status": Dispute.status,
}

STATUS_CATEGORIES = {
    DisputeStatus.RESOLVED: NotificationCategory.DISPUTE_RESOLVED,
    DisputeStatus.CLOSED: NotificationCategory.DISPUTE_CLOSED,
}


# ---------- Schemas ----------


class DisputeStatusRequest(PydanticModel):
    status: DisputeStatus
    note: str | None = None


# ---------- Endpoints ----------


@router.get("", response_model=PaginatedResponse[DisputeResponse])
async def list_disputes(
    status: DisputeStatus | None = Query(None, description="Filter by dispute status"),
    search: str | None = Query(None, description="Match reason, description, project or party names"),
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    query = service.repository.admin_query(status=status, search=search)
    items, total = await paginate(db, query, pagination, sortable=SORTABLE_COLUMNS)
    return PaginatedResponse[DisputeResponse](
        items=[dispute_to_response(d) for d in items],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=pagination.total_pages(total),
    )


@router.get("/{dispute_id}", response_model=DisputeEnvelope)
async def get_dispute(
    dispute_id: uuid.UUID,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    dispute = await service.get_dispute(dispute_id)
    return DisputeEnvelope(data=dispute_to_response(dispute))


@router.patch("/{dispute_id}/status", response_model=DisputeEnvelope)
async def change_dispute_status(
    dispute_id: uuid.UUID,
    body: DisputeStatusRequest,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
    service: EscrowLifecycleService = Depends(get_escrow_service),
):
    dispute = await service.change_status(dispute_id, current_user.id, body.status, body.note)

    if dispute.project is not None:
        await notify_project_parties(
            db,
            dispute.project,
            STATUS_CATEGORIES.get(body.status, NotificationCategory.DISPUTE_UPDATED),
            title=f"Dispute {body.status.value.replace('_', ' ')}: {dispute.project.title}",
            body=body.note or dispute.reason,
            exclude_user_id=current_user.id,
            action_url=dispute_url(dispute.id),
            dispute_id=dispute.id,
            metadata={"status": body.status.value},
        )

    return DisputeEnvelope(
        message=f"Dispute status changed to {body.status.value}",
        data=dispute_to_response(dispute),
    )
