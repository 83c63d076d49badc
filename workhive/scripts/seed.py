"""
Seed script for the WorkHive escrow service.

Populates the database with a small demo marketplace: a customer, a provider
and an administrator, two projects with milestones and escrowed payments,
and one dispute already under review.

Usage:
    python -m workhive.scripts.seed
"""

import asyncio
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select

from workhive.common.enums import (
    DisputeStatus,
    MilestoneStatus,
    PaymentStatus,
    ProjectStatus,
    UserRole,
)
from workhive.db.models import Dispute, Milestone, Payment, Project, User
from workhive.db.session import async_session_factory


async def main() -> None:
    async with async_session_factory() as session:
        # ------------------------------------------------------------------
        # Guard: skip if already seeded (check for admin user)
        # ------------------------------------------------------------------
        result = await session.execute(
            select(User).where(User.email == "admin@workhive.io")
        )
        if result.scalar_one_or_none() is not None:
            print("Database already seeded -- skipping.")
            return

        # ==================================================================
        # USERS
        # ==================================================================
        sarah = User(
            id=uuid.uuid4(),
            email="sarah@example.com",
            full_name="Sarah Chen",
            role=UserRole.CUSTOMER,
            is_active=True,
        )
        elena = User(
            id=uuid.uuid4(),
            email="elena@example.com",
            full_name="Elena Rodriguez",
            role=UserRole.PROVIDER,
            is_active=True,
        )
        admin = User(
            id=uuid.uuid4(),
            email="admin@workhive.io",
            full_name="Admin User",
            role=UserRole.ADMIN,
            is_active=True,
        )
        users = [sarah, elena, admin]
        session.add_all(users)
        await session.flush()

        # ==================================================================
        # PROJECTS
        # ==================================================================
        kitchen = Project(
            id=uuid.uuid4(),
            customer_id=sarah.id,
            provider_id=elena.id,
            title="Kitchen Remodel",
            description="Replace cabinets and counters, add under-cabinet lighting",
            category="renovation",
            status=ProjectStatus.IN_PROGRESS,
            budget_min=Decimal("8000.00"),
            budget_max=Decimal("12000.00"),
        )
        deck = Project(
            id=uuid.uuid4(),
            customer_id=sarah.id,
            provider_id=elena.id,
            title="Backyard Deck",
            description="12x16 composite deck with stairs",
            category="outdoor",
            status=ProjectStatus.DISPUTED,
            budget_min=Decimal("6000.00"),
            budget_max=Decimal("9000.00"),
        )
        session.add_all([kitchen, deck])
        await session.flush()

        # ==================================================================
        # MILESTONES
        # ==================================================================
        kitchen_demo = Milestone(
            id=uuid.uuid4(),
            project_id=kitchen.id,
            title="Demolition",
            order=1,
            amount=Decimal("2500.00"),
            due_date=date(2026, 11, 2),
            status=MilestoneStatus.SUBMITTED,
        )
        kitchen_install = Milestone(
            id=uuid.uuid4(),
            project_id=kitchen.id,
            title="Cabinet and counter install",
            order=2,
            amount=Decimal("7000.00"),
            due_date=date(2026, 11, 30),
            status=MilestoneStatus.PENDING,
        )
        deck_framing = Milestone(
            id=uuid.uuid4(),
            project_id=deck.id,
            title="Framing",
            order=1,
            amount=Decimal("3000.00"),
            due_date=date(2026, 10, 10),
            status=MilestoneStatus.DISPUTED,
        )
        session.add_all([kitchen_demo, kitchen_install, deck_framing])
        await session.flush()

        # ==================================================================
        # ESCROWED PAYMENTS
        # ==================================================================
        payments = [
            Payment(
                id=uuid.uuid4(),
                project_id=kitchen.id,
                milestone_id=kitchen_demo.id,
                amount=Decimal("2500.00"),
                status=PaymentStatus.ESCROWED,
                description="Escrow for demolition",
            ),
            Payment(
                id=uuid.uuid4(),
                project_id=deck.id,
                milestone_id=deck_framing.id,
                amount=Decimal("3000.00"),
                status=PaymentStatus.ESCROWED,
                description="Escrow for framing",
            ),
        ]
        session.add_all(payments)
        await session.flush()

        # ==================================================================
        # DISPUTE (under review, deck framing)
        # ==================================================================
        dispute = Dispute(
            id=uuid.uuid4(),
            project_id=deck.id,
            milestone_id=deck_framing.id,
            payment_id=payments[1].id,
            raised_by_id=sarah.id,
            status=DisputeStatus.UNDER_REVIEW,
            reason="Joist spacing does not match the plan",
            description="Joists were set at 24 inches instead of the agreed 16 inches.",
            contested_amount=Decimal("1200.00"),
            suggested_resolution="Re-space the joists before decking goes on",
            attachments=["disputes/deck/joists-1.jpg"],
            resolution_notes=[
                {
                    "note": "Requested framing photos from the provider",
                    "created_at": datetime(2026, 10, 12, 15, 0, tzinfo=timezone.utc).isoformat(),
                    "admin_id": str(admin.id),
                    "admin_name": admin.full_name,
                }
            ],
            history=[
                {"action": "raised", "by": str(sarah.id), "at": "2026-10-11T09:30:00+00:00"},
                {
                    "action": "status_changed",
                    "by": str(admin.id),
                    "at": "2026-10-12T15:00:00+00:00",
                    "from": "open",
                    "to": "under_review",
                },
            ],
        )
        session.add(dispute)

        # ==================================================================
        # COMMIT
        # ==================================================================
        await session.commit()

        # ==================================================================
        # SUMMARY
        # ==================================================================
        print(
            f"Seeded: {len(users)} users, 2 projects, 3 milestones, "
            f"{len(payments)} escrowed payments, 1 dispute"
        )


if __name__ == "__main__":
    asyncio.run(main())
