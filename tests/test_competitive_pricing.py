"""Tests for the starting-reward estimator."""

import os

import pytest
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from fluzio import create_app
from fluzio.errors import StoreUnavailableError, ValidationError
from fluzio.models import BusinessProfile, db
from fluzio.services.estimator import CompetitivePricingEstimator
from fluzio.services.lifecycle import MissionDraft, MissionLifecycleManager


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
        db.session.add_all(
            [
                BusinessProfile(id="biz-1", name="Trattoria", city="Catania", category="Food"),
                BusinessProfile(id="biz-2", name="Pasticceria", city="Catania", category="Food"),
                BusinessProfile(id="biz-3", name="Bar Sport", city="Palermo", category="Food"),
                BusinessProfile(id="biz-nocity", name="Online shop", city=None),
            ]
        )
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def estimator(app):
    return CompetitivePricingEstimator()


def _competitor(business_id, reward_points, *, category="Food", paused=False, city=None):
    return MissionLifecycleManager().create_mission(
        business_id,
        MissionDraft(
            title=f"{business_id}-{reward_points}",
            reward_points=reward_points,
            category=category,
            city=city,
            start_paused=paused,
        ),
    )


@pytest.mark.parametrize(
    "mission_type, expected",
    [
        ("FOLLOW_BUSINESS_APP", 80),
        ("WRITE_REVIEW_APP", 120),
        ("REVIEW_WITH_PHOTO_APP", 150),
        ("SHARE_PHOTO_APP", 130),
        ("IN_PERSON", 100),
        ("CUSTOM", 110),
    ],
)
def test_medium_without_competitors_applies_only_type_multiplier(estimator, mission_type, expected):
    assert estimator.estimate_starting_points("biz-1", mission_type, "Food", "MEDIUM") == expected


def test_competitor_average_with_premium(estimator):
    _competitor("biz-2", 100)
    _competitor("biz-2", 200)

    # avg 150 * 1.1 = 165, IN_PERSON multiplier 1.0
    assert estimator.estimate_starting_points("biz-1", "IN_PERSON", "Food", "EASY") == 165


def test_ignores_own_paused_and_other_city_missions(estimator):
    _competitor("biz-1", 400)
    _competitor("biz-2", 300, paused=True)
    _competitor("biz-3", 300)
    _competitor("biz-2", 100, category="Retail")

    assert estimator.estimate_starting_points("biz-1", "IN_PERSON", "Food", "HARD") == 200


def test_zero_reward_competitors_are_ignored(estimator):
    _competitor("biz-2", 0)

    assert estimator.estimate_starting_points("biz-1", "IN_PERSON", "Food", "MEDIUM") == 100


def test_result_is_clamped(estimator):
    _competitor("biz-2", 480)

    # 480 * 1.1 = 528 -> 528 * 1.5 = 792 -> 500
    assert estimator.estimate_starting_points("biz-1", "REVIEW_WITH_PHOTO_APP", "Food", "HARD") == 500
    # 50 * 0.8 = 40 stays within bounds; a lower cap still clamps it.
    low = CompetitivePricingEstimator(min_points=45)
    assert low.estimate_starting_points("biz-1", "FOLLOW_BUSINESS_APP", "Retail", "EASY") == 45


def test_unresolved_business_returns_base(estimator):
    assert estimator.estimate_starting_points("ghost", "REVIEW_WITH_PHOTO_APP", "Food", "HARD") == 200
    assert estimator.estimate_starting_points("biz-nocity", "CUSTOM", "Food", "EASY") == 50


def test_store_failure_returns_base(estimator, monkeypatch):
    def unavailable(*args, **kwargs):
        raise StoreUnavailableError("down")

    monkeypatch.setattr(estimator.missions, "query_active_by_city_category", unavailable)

    assert estimator.estimate_starting_points("biz-1", "CUSTOM", "Food", "MEDIUM") == 100


def test_unknown_enumerations_are_rejected_at_the_boundary(estimator):
    with pytest.raises(ValidationError):
        estimator.estimate_starting_points("biz-1", "CUSTOM", "Food", "EXTREME")
    with pytest.raises(ValidationError):
        estimator.estimate_starting_points("biz-1", "TIKTOK_DANCE", "Food", "EASY")
