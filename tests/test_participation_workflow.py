"""Tests for applying to missions and approving or rejecting applications."""

import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from fluzio import create_app
from fluzio.errors import (
    AlreadyAppliedError,
    AlreadyDecidedError,
    ForbiddenError,
    InvalidStateError,
    MissionExpiredError,
    MissionFullError,
    MissionInactiveError,
    NotFoundError,
)
from fluzio.models import LifecycleStatus, ParticipationStatus, UserPointsBalance, db
from fluzio.services.lifecycle import MissionDraft, MissionLifecycleManager
from fluzio.services.participation import ParticipationWorkflow
from fluzio.stores import MissionStore, PointsLedger


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "LOG_DIR": str(tmp_path / "logs"),
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            },
        }
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def workflow(app):
    return ParticipationWorkflow()


def _mission(workflow, **overrides):
    fields = {"title": "Story mention", "reward_points": 100}
    fields.update(overrides)
    return workflow.lifecycle.create_mission("biz-1", MissionDraft(**fields))


def test_apply_creates_pending_participation(workflow):
    mission = _mission(workflow)

    participation = workflow.apply(mission.id, "user-1")

    assert participation.status == ParticipationStatus.PENDING
    assert participation.business_id == "biz-1"
    assert participation.approved_at is None
    assert participation.to_dict()["points"] is None


def test_apply_to_paused_mission_fails(workflow):
    mission = _mission(workflow, start_paused=True)

    with pytest.raises(MissionInactiveError):
        workflow.apply(mission.id, "user-1")


def test_apply_to_expired_mission_completes_it(workflow):
    now = datetime.now(timezone.utc)
    mission = _mission(workflow, valid_until=now + timedelta(minutes=1))

    with pytest.raises(MissionExpiredError):
        workflow.apply(mission.id, "user-1", now=now + timedelta(minutes=5))
    assert MissionStore().require(mission.id).lifecycle_status == LifecycleStatus.COMPLETED


def test_apply_beyond_capacity_fails(workflow):
    mission = _mission(workflow, max_participants=1)
    first = workflow.apply(mission.id, "user-1")
    workflow.approve(first.id, business_id="biz-1")

    with pytest.raises(MissionFullError):
        workflow.apply(mission.id, "user-2")


def test_apply_twice_fails(workflow):
    mission = _mission(workflow)
    workflow.apply(mission.id, "user-1")

    with pytest.raises(AlreadyAppliedError):
        workflow.apply(mission.id, "user-1")
    assert len(workflow.list_by_mission(mission.id, business_id="biz-1")) == 1


def test_apply_to_unknown_mission(workflow):
    with pytest.raises(NotFoundError):
        workflow.apply("nope", "user-1")


def test_approve_credits_points_and_counts_participant(workflow):
    mission = _mission(workflow, reward_points=100)
    participation = workflow.apply(mission.id, "user-1")

    approved = workflow.approve(participation.id, business_id="biz-1")

    assert approved.status == ParticipationStatus.APPROVED
    assert approved.approved_at is not None
    assert approved.points == 100
    assert PointsLedger().balance("user-1") == 100
    assert MissionStore().require(mission.id).current_participants == 1


def test_second_approve_is_already_decided_without_side_effects(workflow):
    mission = _mission(workflow, reward_points=100)
    participation = workflow.apply(mission.id, "user-1")
    workflow.approve(participation.id, business_id="biz-1")

    with pytest.raises(AlreadyDecidedError):
        workflow.approve(participation.id, business_id="biz-1")

    assert PointsLedger().balance("user-1") == 100
    assert MissionStore().require(mission.id).current_participants == 1


def test_losing_a_concurrent_approve_has_no_side_effects(workflow, monkeypatch):
    mission = _mission(workflow, reward_points=100)
    participation = workflow.apply(mission.id, "user-1")
    workflow.approve(participation.id, business_id="biz-1")

    # The second caller read the row while it was still PENDING.
    real_require = workflow.participations.require
    calls = []

    def stale_require(participation_id, *, deadline=None):
        current = real_require(participation_id, deadline=deadline)
        calls.append(participation_id)
        if len(calls) == 1:
            return SimpleNamespace(
                id=current.id,
                mission_id=current.mission_id,
                user_id=current.user_id,
                business_id=current.business_id,
                status=ParticipationStatus.PENDING,
                is_decided=False,
            )
        return current

    monkeypatch.setattr(workflow.participations, "require", stale_require)

    with pytest.raises(AlreadyDecidedError):
        workflow.approve(participation.id, business_id="biz-1")

    assert PointsLedger().balance("user-1") == 100
    assert MissionStore().require(mission.id).current_participants == 1


def test_approve_on_completed_mission_changes_nothing(workflow):
    mission = _mission(workflow, reward_points=100)
    participation = workflow.apply(mission.id, "user-1")
    workflow.lifecycle.complete_mission(mission.id, business_id="biz-1")

    with pytest.raises(InvalidStateError):
        workflow.approve(participation.id, business_id="biz-1")

    stored = MissionStore().require(mission.id)
    assert stored.lifecycle_status == LifecycleStatus.COMPLETED
    assert stored.current_participants == 0
    assert PointsLedger().balance("user-1") == 0
    assert workflow.participations.require(participation.id).status == ParticipationStatus.PENDING


def test_approval_filling_the_cap_completes_mission(workflow):
    mission = _mission(workflow, reward_points=100, max_participants=1)
    first = workflow.apply(mission.id, "user-1")
    second = workflow.apply(mission.id, "user-2")

    workflow.approve(first.id, business_id="biz-1")

    stored = MissionStore().require(mission.id)
    assert stored.current_participants == 1
    assert stored.lifecycle_status == LifecycleStatus.COMPLETED
    assert stored.is_active is False
    assert stored.completed_at is not None

    with pytest.raises(InvalidStateError):
        workflow.approve(second.id, business_id="biz-1")
    assert MissionStore().require(mission.id).current_participants == 1
    assert PointsLedger().balance("user-2") == 0


def test_approve_on_full_open_mission_is_mission_full(workflow):
    mission = _mission(workflow, reward_points=100, max_participants=2)
    first = workflow.apply(mission.id, "user-1")
    second = workflow.apply(mission.id, "user-2")
    # Counter already at the cap while the mission is still open.
    MissionStore().update(mission.id, {"current_participants": 2})
    db.session.commit()

    with pytest.raises(MissionFullError):
        workflow.approve(first.id, business_id="biz-1")

    stored = MissionStore().require(mission.id)
    assert stored.current_participants == 2
    assert stored.lifecycle_status == LifecycleStatus.ACTIVE
    assert PointsLedger().balance("user-1") == 0
    assert workflow.participations.require(first.id).status == ParticipationStatus.PENDING
    assert workflow.participations.require(second.id).status == ParticipationStatus.PENDING


def test_filled_template_mission_can_be_activated_again(workflow):
    activation = workflow.lifecycle.activate_template("CHECKIN_VISIT", "biz-unknown")
    mission = activation.mission
    for index in range(mission.max_participants):
        participation = workflow.apply(mission.id, f"user-{index}")
        workflow.approve(participation.id, business_id="biz-unknown")

    stored = MissionStore().require(mission.id)
    assert stored.lifecycle_status == LifecycleStatus.COMPLETED
    assert stored.template_key is None

    again = workflow.lifecycle.activate_template("CHECKIN_VISIT", "biz-unknown")
    assert again.created is True
    assert again.mission.id != mission.id


def test_reject_has_no_award(workflow):
    mission = _mission(workflow)
    participation = workflow.apply(mission.id, "user-1")

    rejected = workflow.reject(participation.id, business_id="biz-1", feedback="Blurry photo")

    assert rejected.status == ParticipationStatus.REJECTED
    assert rejected.approved_at is None
    assert rejected.rejected_at is not None
    assert rejected.feedback == "Blurry photo"
    assert PointsLedger().balance("user-1") == 0
    assert MissionStore().require(mission.id).current_participants == 0

    with pytest.raises(AlreadyDecidedError):
        workflow.approve(participation.id, business_id="biz-1")


def test_only_owning_business_can_decide(workflow):
    mission = _mission(workflow)
    participation = workflow.apply(mission.id, "user-1")

    with pytest.raises(ForbiddenError):
        workflow.approve(participation.id, business_id="biz-2")
    with pytest.raises(ForbiddenError):
        workflow.list_by_mission(mission.id, business_id="biz-2")

    assert workflow.participations.require(participation.id).status == ParticipationStatus.PENDING


def test_points_snapshot_survives_reward_change(workflow):
    mission = _mission(workflow, reward_points=100)
    participation = workflow.apply(mission.id, "user-1")
    workflow.approve(participation.id, business_id="biz-1")

    MissionStore().update(mission.id, {"reward_points": 300})
    db.session.commit()

    stored = workflow.participations.require(participation.id)
    assert stored.points == 100


def test_listing_filters_and_orders_newest_first(workflow):
    mission = _mission(workflow)
    base = datetime.now(timezone.utc)
    ids = [
        workflow.apply(mission.id, f"user-{i}", now=base + timedelta(minutes=i)).id
        for i in range(3)
    ]
    workflow.approve(ids[1], business_id="biz-1")

    everything = workflow.list_by_business("biz-1")
    assert [p.id for p in everything] == list(reversed(ids))

    pending = workflow.list_by_business("biz-1", status=ParticipationStatus.PENDING)
    assert [p.id for p in pending] == [ids[2], ids[0]]

    approved = workflow.list_by_mission(
        mission.id, business_id="biz-1", status=ParticipationStatus.APPROVED
    )
    assert [p.id for p in approved] == [ids[1]]


def test_business_stats(workflow):
    lifecycle: MissionLifecycleManager = workflow.lifecycle
    active = _mission(workflow, reward_points=40)
    _mission(workflow, title="Paused one", start_paused=True)
    done = _mission(workflow, title="Done one")
    lifecycle.complete_mission(done.id, business_id="biz-1")

    first = workflow.apply(active.id, "user-1")
    second = workflow.apply(active.id, "user-2")
    workflow.apply(active.id, "user-3")
    workflow.approve(first.id, business_id="biz-1")
    workflow.reject(second.id, business_id="biz-1")

    stats = workflow.business_stats("biz-1")

    assert stats["total_missions"] == 3
    assert stats["active_missions"] == 1
    assert stats["paused_missions"] == 1
    assert stats["completed_missions"] == 1
    assert stats["total_applications"] == 3
    assert stats["pending_reviews"] == 1
    assert stats["approved_participations"] == 1
    assert stats["points_awarded"] == 40


def test_ledger_accumulates_points_and_level_across_missions(workflow):
    for title in ("Morning visit", "Evening visit"):
        mission = _mission(workflow, title=title, reward_points=150)
        participation = workflow.apply(mission.id, "user-1")
        workflow.approve(participation.id, business_id="biz-1")

    balance = db.session.get(UserPointsBalance, "user-1")
    assert balance.points == 300
    assert balance.level == 4
    assert balance.last_credited_at is not None
