"""Mission model and the closed enumerations that describe a mission."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from uuid import uuid4

from ..errors import ValidationError
from ..utils.time import normalize_datetime, to_iso_utc
from . import db


class _ParsableEnum(str, enum.Enum):
    @classmethod
    def parse(cls, raw):
        """Validate a free-text value at the boundary."""
        if isinstance(raw, cls):
            return raw
        normalized = str(raw or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValidationError(
                f"Unknown {cls.__name__} {raw!r}; expected one of {allowed}",
                field=cls.__name__,
            ) from None


class LifecycleStatus(_ParsableEnum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


class MissionType(_ParsableEnum):
    FOLLOW_BUSINESS_APP = "FOLLOW_BUSINESS_APP"
    WRITE_REVIEW_APP = "WRITE_REVIEW_APP"
    REVIEW_WITH_PHOTO_APP = "REVIEW_WITH_PHOTO_APP"
    SHARE_PHOTO_APP = "SHARE_PHOTO_APP"
    IN_PERSON = "IN_PERSON"
    CUSTOM = "CUSTOM"


class Complexity(_ParsableEnum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class Mission(db.Model):
    """A task a business offers to creators for a point reward."""

    __tablename__ = "missions"
    __table_args__ = (
        db.Index("ix_missions_business_id", "business_id"),
        db.Index("ix_missions_city_category", "city", "category"),
        db.Index("ix_missions_valid_until", "valid_until"),
        db.UniqueConstraint(
            "business_id", "template_key", name="uq_missions_business_template"
        ),
        db.CheckConstraint("reward_points >= 0", name="ck_missions_reward_non_negative"),
        db.CheckConstraint(
            "current_participants >= 0", name="ck_missions_participants_non_negative"
        ),
        db.CheckConstraint(
            "(lifecycle_status = 'ACTIVE' AND is_active) "
            "OR (lifecycle_status <> 'ACTIVE' AND NOT is_active)",
            name="ck_missions_active_flag_consistent",
        ),
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid4().hex)
    business_id = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False, default="Other")
    mission_type = db.Column(
        db.Enum(MissionType, native_enum=False, length=32),
        nullable=False,
        default=MissionType.CUSTOM,
    )
    reward_points = db.Column(db.Integer, nullable=False, default=0)
    lifecycle_status = db.Column(
        db.Enum(LifecycleStatus, native_enum=False, length=16),
        nullable=False,
        default=LifecycleStatus.ACTIVE,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    max_participants = db.Column(db.Integer, nullable=True)
    current_participants = db.Column(
        db.Integer, nullable=False, default=0, server_default="0"
    )
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    # Impression telemetry; NULL until a tracker reports real views.
    view_count = db.Column(db.Integer, nullable=True)
    # Set only for template-spawned missions, released on completion.
    template_key = db.Column(db.String(200), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=db.func.now(),
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Mission id={self.id} business_id={self.business_id} "
            f"status={self.lifecycle_status} reward={self.reward_points}>"
        )

    @property
    def is_completed(self) -> bool:
        return self.lifecycle_status == LifecycleStatus.COMPLETED

    @property
    def has_capacity(self) -> bool:
        if self.max_participants is None:
            return True
        return (self.current_participants or 0) < self.max_participants

    def is_expired(self, now: datetime | None = None) -> bool:
        """True when ``valid_until`` has passed on a mission not yet completed."""
        if self.is_completed or self.valid_until is None:
            return False
        now = normalize_datetime(now or datetime.now(timezone.utc))
        return now > normalize_datetime(self.valid_until)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "mission_type": self.mission_type.value if self.mission_type else None,
            "reward_points": self.reward_points,
            "lifecycle_status": (
                self.lifecycle_status.value if self.lifecycle_status else None
            ),
            "is_active": bool(self.is_active),
            "max_participants": self.max_participants,
            "current_participants": self.current_participants or 0,
            "valid_until": to_iso_utc(self.valid_until),
            "city": self.city,
            "view_count": self.view_count,
            "template_key": self.template_key,
            "created_at": to_iso_utc(self.created_at),
            "updated_at": to_iso_utc(self.updated_at),
            "completed_at": to_iso_utc(self.completed_at),
        }


def status_fields(status: LifecycleStatus) -> dict:
    """Column values that keep ``is_active`` consistent with ``status``."""
    return {
        "lifecycle_status": status,
        "is_active": status == LifecycleStatus.ACTIVE,
    }


__all__ = ["Complexity", "LifecycleStatus", "Mission", "MissionType", "status_fields"]
