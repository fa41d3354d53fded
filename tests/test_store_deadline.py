"""Tests for store deadlines and driver error mapping."""

import os

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from fluzio import create_app
from fluzio.errors import StoreTimeoutError, StoreUnavailableError
from fluzio.models import Mission, db
from fluzio.services.lifecycle import MissionDraft, MissionLifecycleManager
from fluzio.services.participation import ParticipationWorkflow
from fluzio.stores import Deadline, MissionStore, PointsLedger, commit


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


def _count() -> int:
    return db.session.execute(select(func.count()).select_from(Mission)).scalar_one()


def test_deadline_helpers():
    assert Deadline.after(0).expired() is True
    generous = Deadline.after(60)
    assert generous.expired() is False
    assert 0 < generous.remaining() <= 60


def test_expired_deadline_fails_before_touching_the_store(app):
    with pytest.raises(StoreTimeoutError):
        MissionStore().query_by_business("biz-1", deadline=Deadline.after(0))


def test_timed_out_operation_leaves_no_partial_state(app):
    with pytest.raises(StoreTimeoutError):
        MissionLifecycleManager().create_mission(
            "biz-1",
            MissionDraft(title="Late", reward_points=10),
            deadline=Deadline.after(0),
        )

    assert _count() == 0


def test_commit_after_deadline_rolls_back(app):
    MissionStore().create(Mission(business_id="biz-1", title="Pending write", reward_points=1))

    with pytest.raises(StoreTimeoutError):
        commit("late_commit", Deadline.after(0))

    assert _count() == 0


def test_approve_past_deadline_awards_nothing(app):
    mission = MissionLifecycleManager().create_mission(
        "biz-1", MissionDraft(title="Award", reward_points=100)
    )
    workflow = ParticipationWorkflow()
    participation = workflow.apply(mission.id, "user-1")

    with pytest.raises(StoreTimeoutError):
        workflow.approve(participation.id, business_id="biz-1", deadline=Deadline.after(0))

    assert PointsLedger().balance("user-1") == 0
    assert MissionStore().require(mission.id).current_participants == 0


def test_driver_errors_become_store_unavailable(app, monkeypatch):
    def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr(db.session, "execute", broken_execute)

    with pytest.raises(StoreUnavailableError) as excinfo:
        MissionStore().query_by_business("biz-1")

    assert excinfo.value.retryable is True
    assert excinfo.value.to_dict()["error"] == "store_unavailable"
