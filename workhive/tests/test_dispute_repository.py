import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from workhive.common.enums import DisputeStatus
from workhive.common.exceptions import ConflictError, InvalidStateError, NotFoundError, TerminalStateError
from workhive.core.disputes.repository import DisputeRepository
from workhive.core.disputes.schemas import DisputeInput
from workhive.db.models.dispute import Dispute


@pytest.fixture
def repo(db_session):
    return DisputeRepository(db_session)


def _input(project, user, **overrides):
    data = {
        "project_id": project.id,
        "raised_by_id": user.id,
        "reason": "quality",
        "description": "work incomplete",
    }
    data.update(overrides)
    return DisputeInput(**data)


@pytest.mark.asyncio
async def test_create_dispute_starts_open(repo, project, customer_user):
    dispute = await repo.create_dispute(_input(project, customer_user, attachments=["a.pdf"]))

    assert dispute.status == DisputeStatus.OPEN.value
    assert dispute.attachments == ["a.pdf"]
    assert dispute.resolution_notes == []
    assert dispute.history[0]["action"] == "raised"
    assert dispute.history[0]["by"] == str(customer_user.id)
    assert dispute.raised_by.full_name == "Casey Customer"
    assert dispute.project.title == "Kitchen Remodel"


@pytest.mark.asyncio
async def test_create_refuses_second_actionable(repo, project, customer_user, make_dispute):
    await make_dispute(project, status=DisputeStatus.UNDER_REVIEW)

    with pytest.raises(InvalidStateError):
        await repo.create_dispute(_input(project, customer_user))


@pytest.mark.asyncio
async def test_unique_index_rejects_two_actionable_rows(db_session, project, customer_user):
    rows = [
        Dispute(
            project_id=project.id,
            raised_by_id=customer_user.id,
            status=status.value,
            reason="duplicate",
            description="duplicate",
            attachments=[],
        )
        for status in (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)
    ]

    with pytest.raises(IntegrityError):
        async with db_session.begin_nested():
            db_session.add_all(rows)


@pytest.mark.asyncio
async def test_unique_index_allows_finished_history(db_session, project, customer_user, make_dispute):
    await make_dispute(project, status=DisputeStatus.CLOSED, age_minutes=30)
    await make_dispute(project, status=DisputeStatus.RESOLVED, age_minutes=20)
    await make_dispute(project, status=DisputeStatus.OPEN)

    repo = DisputeRepository(db_session)
    assert len(await repo.list_by_project(project.id)) == 3


@pytest.mark.asyncio
async def test_racing_create_surfaces_conflict(
    repo, db_session, monkeypatch, project, customer_user, make_dispute
):
    winner = await make_dispute(project)

    async def stale_lookup(project_id, for_update=False):
        return None

    monkeypatch.setattr(repo, "find_actionable_by_project", stale_lookup)

    with pytest.raises(ConflictError):
        await repo.create_dispute(_input(project, customer_user))

    # The savepoint rolled back only the losing insert
    monkeypatch.undo()
    current = await repo.find_actionable_by_project(project.id)
    assert current.id == winner.id


@pytest.mark.asyncio
async def test_get_by_project_returns_latest(repo, project, make_dispute):
    await make_dispute(project, status=DisputeStatus.RESOLVED, age_minutes=60, reason="older")
    latest = await make_dispute(project, status=DisputeStatus.CLOSED, age_minutes=5, reason="newer")

    found = await repo.get_by_project(project.id)

    assert found.id == latest.id


@pytest.mark.asyncio
async def test_list_by_project_newest_first(repo, project, make_dispute):
    oldest = await make_dispute(project, status=DisputeStatus.CLOSED, age_minutes=90)
    middle = await make_dispute(project, status=DisputeStatus.RESOLVED, age_minutes=45)
    newest = await make_dispute(project, status=DisputeStatus.OPEN, age_minutes=1)

    disputes = await repo.list_by_project(project.id)

    assert [d.id for d in disputes] == [newest.id, middle.id, oldest.id]


@pytest.mark.asyncio
async def test_soft_deleted_disputes_are_hidden(repo, project, make_dispute):
    await make_dispute(project, is_deleted=True, deleted_at=datetime.now(timezone.utc))

    assert await repo.get_by_project(project.id) is None
    assert await repo.list_by_project(project.id) == []
    assert await repo.find_actionable_by_project(project.id) is None


@pytest.mark.asyncio
async def test_upsert_creates_when_no_history(repo, project, customer_user):
    result = await repo.upsert_dispute(_input(project, customer_user))

    assert result.created is True
    assert result.previous_milestone_id is None


@pytest.mark.asyncio
async def test_upsert_refuses_closed_history(repo, project, customer_user, make_dispute):
    await make_dispute(project, status=DisputeStatus.CLOSED)

    with pytest.raises(TerminalStateError):
        await repo.upsert_dispute(_input(project, customer_user))


@pytest.mark.asyncio
async def test_upsert_merge_reports_previous_milestone(
    repo, project, milestones, customer_user, make_dispute
):
    m1, m2 = milestones
    await make_dispute(project, milestone_id=m1.id)

    result = await repo.upsert_dispute(_input(project, customer_user, milestone_id=m2.id))

    assert result.created is False
    assert result.previous_milestone_id == m1.id
    assert result.milestone_changed is True
    assert result.dispute.milestone.title == "Cabinet install"


@pytest.mark.asyncio
async def test_upsert_same_milestone_is_not_a_change(
    repo, project, milestones, customer_user, make_dispute
):
    m1, _ = milestones
    await make_dispute(project, milestone_id=m1.id)

    result = await repo.upsert_dispute(_input(project, customer_user, milestone_id=m1.id))

    assert result.milestone_changed is False


@pytest.mark.asyncio
async def test_update_dispute_fields_rejects_unknown_field(repo, project, make_dispute):
    dispute = await make_dispute(project)

    with pytest.raises(ValueError):
        await repo.update_dispute_fields(dispute.id, {"raised_by_id": uuid.uuid4()})


@pytest.mark.asyncio
async def test_update_dispute_fields_missing(repo):
    with pytest.raises(NotFoundError):
        await repo.update_dispute_fields(uuid.uuid4(), {"reason": "gone"})


@pytest.mark.asyncio
async def test_admin_query_filters_and_searches(
    repo, db_session, project, other_project, outsider_user, make_dispute
):
    foreign_project, _ = other_project
    await make_dispute(project, reason="Leaking sink")
    await make_dispute(
        foreign_project,
        status=DisputeStatus.UNDER_REVIEW,
        reason="Fence posts crooked",
        raised_by_id=outsider_user.id,
    )

    async def run(**kwargs):
        result = await db_session.execute(repo.admin_query(**kwargs))
        return [d.reason for d in result.scalars().all()]

    assert sorted(await run()) == ["Fence posts crooked", "Leaking sink"]
    assert await run(status=DisputeStatus.UNDER_REVIEW) == ["Fence posts crooked"]
    assert await run(search="sink") == ["Leaking sink"]
    assert await run(search="Kitchen") == ["Leaking sink"]
    assert await run(search="Olive") == ["Fence posts crooked"]
    assert await run(search="Pat Provider") == ["Leaking sink"]


@pytest.mark.asyncio
async def test_reload_missing_dispute(repo):
    with pytest.raises(NotFoundError):
        await repo.reload(uuid.uuid4())

