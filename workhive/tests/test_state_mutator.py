import uuid

import pytest

from workhive.common.enums import DisputeStatus, MilestoneStatus, ProjectStatus
from workhive.common.exceptions import InvalidStateError, NotFoundError
from workhive.core.disputes.mutator import DISPUTE_TRANSITIONS, EscrowStateMutator, assert_transition


@pytest.fixture
def mutator(db_session):
    return EscrowStateMutator(db_session)


@pytest.mark.asyncio
async def test_freeze_milestone(mutator, milestones):
    m1, _ = milestones

    frozen = await mutator.freeze_milestone(m1.id)

    assert frozen.id == m1.id
    assert frozen.status == MilestoneStatus.DISPUTED.value


@pytest.mark.asyncio
async def test_freeze_unknown_milestone(mutator):
    with pytest.raises(NotFoundError):
        await mutator.freeze_milestone(uuid.uuid4())


@pytest.mark.asyncio
async def test_flag_project_disputed_is_idempotent(mutator, project):
    first = await mutator.flag_project_disputed(project.id)
    second = await mutator.flag_project_disputed(project.id)

    assert first.status == ProjectStatus.DISPUTED.value
    assert second.status == ProjectStatus.DISPUTED.value


@pytest.mark.asyncio
async def test_flag_unknown_project(mutator):
    with pytest.raises(NotFoundError):
        await mutator.flag_project_disputed(uuid.uuid4())


@pytest.mark.asyncio
async def test_auto_resolve_picks_most_recent_dispute(mutator, project, make_dispute):
    # Only the latest dispute is considered
    await make_dispute(project, status=DisputeStatus.RESOLVED, age_minutes=60)
    await make_dispute(project, status=DisputeStatus.OPEN)

    assert await mutator.auto_resolve_if_under_review(project.id) is None


@pytest.mark.asyncio
async def test_auto_resolve_appends_to_existing_notes(mutator, db_session, project, make_dispute):
    dispute = await make_dispute(project, status=DisputeStatus.UNDER_REVIEW)
    dispute.resolution_notes = [{"note": "Asked for photos", "admin_name": "Avery Admin"}]
    await db_session.flush()

    resolved = await mutator.auto_resolve_if_under_review(project.id)

    assert [n["note"] for n in resolved.resolution_notes] == [
        "Asked for photos",
        "Project completed peacefully; dispute automatically resolved.",
    ]
    assert resolved.history[-1]["action"] == "auto_resolved"
    assert resolved.history[-1]["by"] == "system"


@pytest.mark.asyncio
async def test_auto_resolve_unknown_project(mutator):
    assert await mutator.auto_resolve_if_under_review(uuid.uuid4()) is None


def test_transition_table_covers_every_status():
    assert set(DISPUTE_TRANSITIONS) == set(DisputeStatus)
    assert DISPUTE_TRANSITIONS[DisputeStatus.CLOSED] == frozenset()


@pytest.mark.parametrize(
    "current,target",
    [
        (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW),
        (DisputeStatus.OPEN, DisputeStatus.CLOSED),
        (DisputeStatus.UNDER_REVIEW, DisputeStatus.RESOLVED),
        (DisputeStatus.RESOLVED, DisputeStatus.UNDER_REVIEW),
        (DisputeStatus.RESOLVED, DisputeStatus.CLOSED),
    ],
)
def test_allowed_transitions(current, target):
    assert_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (DisputeStatus.OPEN, DisputeStatus.RESOLVED),
        (DisputeStatus.UNDER_REVIEW, DisputeStatus.OPEN),
        (DisputeStatus.CLOSED, DisputeStatus.OPEN),
        (DisputeStatus.CLOSED, DisputeStatus.UNDER_REVIEW),
    ],
)
def test_rejected_transitions(current, target):
    with pytest.raises(InvalidStateError):
        assert_transition(current, target)
