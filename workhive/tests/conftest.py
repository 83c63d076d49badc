import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workhive.common.enums import (
    DisputeStatus,
    MilestoneStatus,
    PaymentStatus,
    ProjectStatus,
    UserRole,
)
from workhive.db.base import Base
from workhive.db.models import *  # noqa: F401,F403 - ensure all models loaded
from workhive.db.models.dispute import Dispute
from workhive.db.models.milestone import Milestone
from workhive.db.models.payment import Payment
from workhive.db.models.project import Project
from workhive.db.models.user import User

# Use SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINTs work under pysqlite
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from workhive.api.deps import get_db
    from workhive.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db_session, role: UserRole, full_name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}_{uuid.uuid4().hex[:8]}@test.com",
        full_name=full_name,
        role=role.value,
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def customer_user(db_session):
    return await _make_user(db_session, UserRole.CUSTOMER, "Casey Customer")


@pytest.fixture
async def provider_user(db_session):
    return await _make_user(db_session, UserRole.PROVIDER, "Pat Provider")


@pytest.fixture
async def admin_user(db_session):
    return await _make_user(db_session, UserRole.ADMIN, "Avery Admin")


@pytest.fixture
async def outsider_user(db_session):
    return await _make_user(db_session, UserRole.CUSTOMER, "Olive Outsider")


@pytest.fixture
async def project(db_session, customer_user, provider_user):
    project = Project(
        id=uuid.uuid4(),
        customer_id=customer_user.id,
        provider_id=provider_user.id,
        title="Kitchen Remodel",
        description="Cabinets, counters and lighting",
        category="renovation",
        status=ProjectStatus.IN_PROGRESS.value,
        budget_min=Decimal("4000.00"),
        budget_max=Decimal("6000.00"),
    )
    db_session.add(project)
    await db_session.flush()
    await db_session.refresh(project)
    return project


@pytest.fixture
async def milestones(db_session, project):
    m1 = Milestone(
        id=uuid.uuid4(),
        project_id=project.id,
        title="Demolition",
        order=1,
        amount=Decimal("1500.00"),
        status=MilestoneStatus.SUBMITTED.value,
    )
    m2 = Milestone(
        id=uuid.uuid4(),
        project_id=project.id,
        title="Cabinet install",
        order=2,
        amount=Decimal("3000.00"),
        status=MilestoneStatus.IN_PROGRESS.value,
    )
    db_session.add_all([m1, m2])
    await db_session.flush()
    await db_session.refresh(project)
    return m1, m2


@pytest.fixture
async def escrowed_payment(db_session, project, milestones):
    payment = Payment(
        id=uuid.uuid4(),
        project_id=project.id,
        milestone_id=milestones[0].id,
        amount=Decimal("1500.00"),
        status=PaymentStatus.ESCROWED.value,
        description="Escrow for demolition",
    )
    db_session.add(payment)
    await db_session.flush()
    return payment


@pytest.fixture
async def other_project(db_session, outsider_user):
    project = Project(
        id=uuid.uuid4(),
        customer_id=outsider_user.id,
        title="Fence Repair",
        status=ProjectStatus.IN_PROGRESS.value,
    )
    milestone = Milestone(
        id=uuid.uuid4(),
        project_id=project.id,
        title="Posts",
        order=1,
        amount=Decimal("200.00"),
    )
    db_session.add(project)
    await db_session.flush()
    db_session.add(milestone)
    await db_session.flush()
    return project, milestone


@pytest.fixture
def make_dispute(db_session, customer_user):
    """Insert a dispute row directly, bypassing the lifecycle service."""

    async def _make(project, status=DisputeStatus.OPEN, age_minutes=0, **kwargs):
        dispute = Dispute(
            id=uuid.uuid4(),
            project_id=project.id,
            raised_by_id=kwargs.pop("raised_by_id", customer_user.id),
            status=status.value,
            reason=kwargs.pop("reason", "Work incomplete"),
            description=kwargs.pop("description", "Cabinets were left unfinished"),
            attachments=kwargs.pop("attachments", []),
            resolution_notes=[],
            history=[],
            created_at=datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
            **kwargs,
        )
        db_session.add(dispute)
        await db_session.flush()
        await db_session.refresh(dispute)
        return dispute

    return _make


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def customer_headers(customer_user):
    return _headers(customer_user)


@pytest.fixture
def provider_headers(provider_user):
    return _headers(provider_user)


@pytest.fixture
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture
def outsider_headers(outsider_user):
    return _headers(outsider_user)
