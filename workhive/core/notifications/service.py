"""Notification service for creating in-app notifications."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from workhive.common.enums import NotificationCategory
from workhive.common.logging import get_logger
from workhive.db.guard import savepoint
from workhive.db.models.notification import Notification
from workhive.db.models.project import Project

logger = get_logger("notifications.service")


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    category: NotificationCategory,
    title: str,
    body: str,
    project_id: uuid.UUID | None = None,
    dispute_id: uuid.UUID | None = None,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    """Persist an in-app notification for one user."""

    notification = Notification(
        user_id=user_id,
        project_id=project_id,
        category=category.value,
        title=title,
        body=body,
        action_url=action_url,
        dispute_id=dispute_id,
        metadata_=metadata or {},
    )
    async with savepoint(db, "notification create"):
        db.add(notification)

    logger.info("Created notification: category=%s user=%s title='%s'", category.value, user_id, title)
    return notification


async def notify_project_parties(
    db: AsyncSession,
    project: Project,
    category: NotificationCategory,
    title: str,
    body: str,
    exclude_user_id: uuid.UUID | None = None,
    dispute_id: uuid.UUID | None = None,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> list[Notification]:
    """Notify every party of a project except the actor.

    Best-effort: a failed notification is logged and skipped so it never
    fails the dispute operation that triggered it.
    """
    created = []
    for user_id in sorted(project.party_ids() - {exclude_user_id}, key=str):
        try:
            created.append(
                await create_notification(
                    db,
                    user_id=user_id,
                    category=category,
                    title=title,
                    body=body,
                    project_id=project.id,
                    dispute_id=dispute_id,
                    action_url=action_url,
                    metadata=metadata,
                )
            )
        except Exception as e:
            logger.warning("Notification to %s for project %s skipped: %s", user_id, project.id, e)
    return created
