"""Tests for the mission lifecycle state machine and template activation."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from fluzio import create_app
from fluzio.errors import (
    ForbiddenError,
    InvalidStateError,
    MissionExpiredError,
    NotFoundError,
    ValidationError,
)
from fluzio.models import BusinessProfile, LifecycleStatus, Mission, SubscriptionLevel, db
from fluzio.services.lifecycle import MissionDraft, MissionLifecycleManager
from fluzio.services.templates import STANDARD_MISSION_TEMPLATES
from fluzio.stores import MissionStore, commit


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
        db.session.add(
            BusinessProfile(
                id="biz-1",
                name="Caffe Centrale",
                city="Catania",
                category="Food",
                subscription_level=SubscriptionLevel.GOLD,
            )
        )
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def manager(app):
    return MissionLifecycleManager()


def _mission_count(business_id="biz-1") -> int:
    return db.session.execute(
        select(func.count()).select_from(Mission).where(Mission.business_id == business_id)
    ).scalar_one()


def _create(manager, **overrides):
    fields = {"title": "Latte art photo", "reward_points": 100}
    fields.update(overrides)
    return manager.create_mission("biz-1", MissionDraft(**fields))


def test_create_mission_starts_active_and_inherits_city(manager):
    mission = _create(manager)

    assert mission.lifecycle_status == LifecycleStatus.ACTIVE
    assert mission.is_active is True
    assert mission.city == "Catania"
    assert mission.current_participants == 0


def test_create_mission_can_start_paused(manager):
    mission = _create(manager, start_paused=True)

    assert mission.lifecycle_status == LifecycleStatus.PAUSED
    assert mission.is_active is False


def test_create_mission_rejects_past_expiry(manager):
    with pytest.raises(ValidationError):
        _create(manager, valid_until=datetime.now(timezone.utc) - timedelta(days=1))


def test_draft_from_payload_validates_enumerations():
    draft = MissionDraft.from_payload(
        {"title": " Review ", "reward_points": "80", "mission_type": "write_review_app"}
    )
    assert draft.title == "Review"
    assert draft.reward_points == 80
    assert draft.mission_type.value == "WRITE_REVIEW_APP"

    with pytest.raises(ValidationError):
        MissionDraft.from_payload({"title": "x", "reward_points": 10, "mission_type": "DANCE"})
    with pytest.raises(ValidationError):
        MissionDraft.from_payload({"title": "x", "reward_points": -1})
    with pytest.raises(ValidationError):
        MissionDraft.from_payload({"reward_points": 10})


def test_toggle_round_trips_are_idempotent(manager):
    mission = _create(manager)

    for _ in range(2):
        paused = manager.toggle_mission_status(mission.id, True, business_id="biz-1")
        assert paused.lifecycle_status == LifecycleStatus.PAUSED
        assert paused.is_active is False
        resumed = manager.toggle_mission_status(mission.id, False, business_id="biz-1")
        assert resumed.lifecycle_status == LifecycleStatus.ACTIVE
        assert resumed.is_active is True

    final = MissionStore().require(mission.id)
    assert final.lifecycle_status == LifecycleStatus.ACTIVE
    assert final.current_participants == 0
    assert _mission_count() == 1


def test_toggle_to_current_target_is_noop(manager):
    mission = _create(manager, start_paused=True)

    # Caller believes it is active and wants it paused; it already is.
    result = manager.toggle_mission_status(mission.id, True, business_id="biz-1")

    assert result.lifecycle_status == LifecycleStatus.PAUSED


def test_toggle_completed_mission_is_rejected(manager):
    mission = _create(manager)
    manager.complete_mission(mission.id, business_id="biz-1")

    with pytest.raises(InvalidStateError):
        manager.toggle_mission_status(mission.id, False, business_id="biz-1")
    assert MissionStore().require(mission.id).lifecycle_status == LifecycleStatus.COMPLETED


def test_toggle_requires_owner(manager):
    mission = _create(manager)

    with pytest.raises(ForbiddenError):
        manager.toggle_mission_status(mission.id, True, business_id="biz-2")
    assert MissionStore().require(mission.id).lifecycle_status == LifecycleStatus.ACTIVE


def test_toggle_unknown_mission(manager):
    with pytest.raises(NotFoundError):
        manager.toggle_mission_status("missing", True, business_id="biz-1")


def test_toggle_expired_mission_completes_it(manager):
    now = datetime.now(timezone.utc)
    mission = _create(manager, valid_until=now + timedelta(hours=1))

    with pytest.raises(MissionExpiredError):
        manager.toggle_mission_status(
            mission.id, True, business_id="biz-1", now=now + timedelta(hours=2)
        )

    stored = MissionStore().require(mission.id)
    assert stored.lifecycle_status == LifecycleStatus.COMPLETED
    assert stored.is_active is False
    assert stored.completed_at is not None


def test_activate_template_twice_creates_one_mission(manager):
    first = manager.activate_template("GOOGLE_REVIEW", "biz-1")
    second = manager.activate_template("google_review", "biz-1")

    assert first.outcome == "created"
    assert second.outcome == "already_active"
    assert first.mission.id == second.mission.id
    assert _mission_count() == 1


def test_activate_template_uses_catalogue_and_subscription_cap(manager):
    activation = manager.activate_template("INSTAGRAM_STORY", "biz-1")
    template = STANDARD_MISSION_TEMPLATES["INSTAGRAM_STORY"]

    mission = activation.mission
    assert mission.title == template.title
    assert mission.reward_points == template.default_reward
    assert mission.mission_type == template.mission_type
    assert mission.max_participants == 50
    assert mission.category == "Food"
    assert mission.valid_until is not None


def test_activate_template_reactivates_paused_match(manager):
    created = manager.activate_template("CHECKIN_VISIT", "biz-1").mission
    manager.toggle_mission_status(created.id, True, business_id="biz-1")

    activation = manager.activate_template("CHECKIN_VISIT", "biz-1")

    assert activation.outcome == "reactivated"
    assert activation.mission.id == created.id
    assert activation.mission.lifecycle_status == LifecycleStatus.ACTIVE
    assert _mission_count() == 1


def test_activate_template_matches_custom_mission_by_title(manager):
    template = STANDARD_MISSION_TEMPLATES["BRING_A_FRIEND"]
    custom = _create(manager, title=template.title, start_paused=True)

    activation = manager.activate_template("BRING_A_FRIEND", "biz-1")

    assert activation.outcome == "reactivated"
    assert activation.mission.id == custom.id
    assert _mission_count() == 1


def test_insert_conflict_resolves_to_existing_mission(manager, monkeypatch):
    existing = manager.activate_template("FOLLOW_BUSINESS", "biz-1").mission

    # Simulate a concurrent writer: the title lookup misses, the insert loses.
    store = manager.store
    real_find = store.find_open_by_title
    calls = []

    def racing_find(business_id, title, *, deadline=None):
        calls.append(title)
        if len(calls) == 1:
            return None
        return real_find(business_id, title, deadline=deadline)

    monkeypatch.setattr(store, "find_open_by_title", racing_find)

    activation = manager.activate_template("FOLLOW_BUSINESS", "biz-1")

    assert activation.outcome == "already_active"
    assert activation.mission.id == existing.id
    assert _mission_count() == 1


def test_completion_releases_template_for_reactivation(manager):
    first = manager.activate_template("GOOGLE_REVIEW_PHOTOS", "biz-1").mission
    completed = manager.complete_mission(first.id, business_id="biz-1")
    assert completed.template_key is None

    second = manager.activate_template("GOOGLE_REVIEW_PHOTOS", "biz-1")

    assert second.outcome == "created"
    assert second.mission.id != first.id
    assert _mission_count() == 2


def test_activate_unknown_template(manager):
    with pytest.raises(NotFoundError):
        manager.activate_template("SKYDIVING", "biz-1")


def test_activate_template_for_unknown_business_uses_free_cap(manager):
    activation = manager.activate_template("CHECKIN_VISIT", "biz-unknown")

    assert activation.mission.max_participants == 5
    assert activation.mission.city is None


def test_expire_missions_sweeps_open_missions(manager):
    now = datetime.now(timezone.utc)
    expiring = _create(manager, title="Soon", valid_until=now + timedelta(minutes=5))
    paused = _create(
        manager, title="Soon paused", valid_until=now + timedelta(minutes=5), start_paused=True
    )
    lasting = _create(manager, title="Later", valid_until=now + timedelta(days=5))
    forever = _create(manager, title="Forever")

    completed = manager.expire_missions(now=now + timedelta(hours=1))

    assert completed == 2
    store = MissionStore()
    assert store.require(expiring.id).lifecycle_status == LifecycleStatus.COMPLETED
    assert store.require(paused.id).lifecycle_status == LifecycleStatus.COMPLETED
    assert store.require(lasting.id).lifecycle_status == LifecycleStatus.ACTIVE
    assert store.require(forever.id).lifecycle_status == LifecycleStatus.ACTIVE
    assert manager.expire_missions(now=now + timedelta(hours=1)) == 0


def test_mutations_invalidate_the_mirror(manager):
    mission = _create(manager)
    snapshot = manager.business_missions("biz-1")
    assert snapshot[0]["lifecycle_status"] == "ACTIVE"

    manager.toggle_mission_status(mission.id, True, business_id="biz-1")

    assert manager.mirror.peek("biz-1") is None
    assert manager.business_missions("biz-1")[0]["lifecycle_status"] == "PAUSED"


def test_decisions_ignore_a_stale_mirror(manager):
    mission = _create(manager)
    manager.business_missions("biz-1")

    # Pause behind the mirror's back; the mirror still says ACTIVE.
    MissionStore().transition(mission.id, (LifecycleStatus.ACTIVE,), LifecycleStatus.PAUSED)
    commit("test_pause")
    assert manager.mirror.peek("biz-1")[0]["lifecycle_status"] == "ACTIVE"

    result = manager.toggle_mission_status(mission.id, False, business_id="biz-1")

    assert result.lifecycle_status == LifecycleStatus.ACTIVE
